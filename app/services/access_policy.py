"""访问控制策略

所有订单相关操作只在这里判断角色、归属和商家标志位，
路由层拿到的是一个 AccessDecision，而不是分散的角色比较。
"""

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from app.core.exceptions import (
    Forbidden,
    ForbiddenDisabledAccount,
    ForbiddenNoPermission,
    OrderServiceError,
    Unauthenticated,
)
from app.models.user import UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """当前操作用户（由认证层解析后传入）"""

    id: int
    role: UserRole
    name: str = ""
    email: str = ""
    is_active: bool = True
    can_add_products: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_vendor(self) -> bool:
        return self.role == UserRole.VENDOR

    @classmethod
    def from_user(cls, user) -> "Principal":
        return cls(
            id=user.id,
            role=UserRole(user.role),
            name=user.name,
            email=user.email,
            is_active=bool(user.is_active),
            can_add_products=bool(user.can_add_products),
        )


class OrderScope(str, enum.Enum):
    """订单操作的适用范围"""

    CUSTOMER = "customer"  # 仅管理员和下单用户（查看、取消）
    VENDOR = "vendor"      # 仅管理员和订单中有自己商品的商家
    ANY = "any"


class Grant(str, enum.Enum):
    ADMIN = "admin"
    OWNER = "owner"
    VENDOR = "vendor"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    grant: Optional[Grant] = None
    error: Optional[OrderServiceError] = None

    @classmethod
    def allow(cls, grant: Grant) -> "AccessDecision":
        return cls(allowed=True, grant=grant)

    @classmethod
    def deny(cls, error: OrderServiceError) -> "AccessDecision":
        return cls(allowed=False, error=error)

    def enforce(self) -> Grant:
        if not self.allowed:
            raise self.error
        return self.grant


class AccessPolicy:
    """订单访问规则"""

    @staticmethod
    def _vendor_flags_error(principal: Principal) -> Optional[OrderServiceError]:
        if not principal.is_active:
            return ForbiddenDisabledAccount()
        if not principal.can_add_products:
            return ForbiddenNoPermission()
        return None

    def evaluate_order(
        self,
        principal: Optional[Principal],
        owner_id: Optional[int],
        vendor_ids: Iterable[int] = (),
        scope: OrderScope = OrderScope.ANY,
    ) -> AccessDecision:
        """评估 principal 能否操作某个订单

        Args:
            owner_id: 订单的下单用户ID
            vendor_ids: 订单明细中商品所属的商家ID集合
            scope: 操作范围，决定是否允许下单用户/商家分支
        """
        if principal is None:
            return AccessDecision.deny(Unauthenticated())

        if principal.is_admin:
            return AccessDecision.allow(Grant.ADMIN)

        if scope in (OrderScope.CUSTOMER, OrderScope.ANY) and principal.id == owner_id:
            return AccessDecision.allow(Grant.OWNER)

        if principal.is_vendor and scope in (OrderScope.VENDOR, OrderScope.ANY):
            error = self._vendor_flags_error(principal)
            if error is not None:
                return AccessDecision.deny(error)
            if principal.id in set(vendor_ids):
                return AccessDecision.allow(Grant.VENDOR)
            logger.info(f"商家 {principal.id} 不拥有订单中的任何商品，拒绝访问")
            return AccessDecision.deny(Forbidden("只能访问包含自己商品的订单"))

        return AccessDecision.deny(Forbidden("只能访问自己的订单"))

    def authorize_order(
        self,
        principal: Optional[Principal],
        owner_id: Optional[int],
        vendor_ids: Iterable[int] = (),
        scope: OrderScope = OrderScope.ANY,
    ) -> Grant:
        return self.evaluate_order(principal, owner_id, vendor_ids, scope).enforce()

    def require_admin(self, principal: Optional[Principal]) -> Grant:
        if principal is None:
            raise Unauthenticated()
        if not principal.is_admin:
            raise Forbidden("需要管理员权限")
        return Grant.ADMIN

    def require_vendor_access(self, principal: Optional[Principal]) -> Grant:
        """商家级别的列表接口：管理员或已启用且有商品权限的商家"""
        if principal is None:
            raise Unauthenticated()
        if principal.is_admin:
            return Grant.ADMIN
        if not principal.is_vendor:
            raise Forbidden("需要商家权限")
        error = self._vendor_flags_error(principal)
        if error is not None:
            raise error
        return Grant.VENDOR


access_policy = AccessPolicy()

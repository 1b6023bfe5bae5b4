"""订单服务实现"""

import logging
import math
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from fastapi import HTTPException
from sqlalchemy import case, cast, func, or_, select, update, String
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import InternalError, InvalidInput, OrderNotFound, Unauthenticated
from app.models.order import Order, OrderStatus, PaymentMethod
from app.models.order_item import OrderItem
from app.models.product import Product
from app.models.user import User, UserRole
from app.services.access_policy import AccessPolicy, Grant, OrderScope, Principal, access_policy
from app.services.notification_service import NotificationFanout
from app.services import status_machine
from app.services.stock_ledger import StockLedger

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")


def _field(item: Any, name: str) -> Any:
    return item[name] if isinstance(item, dict) else getattr(item, name)


class OrderService:
    """订单核心服务类

    通知分发器通过构造参数注入；为 None 时只做数据变更，不发送任何通知。
    """

    def __init__(
        self,
        db: Session,
        fanout: Optional[NotificationFanout] = None,
        policy: AccessPolicy = access_policy,
    ):
        self.db = db
        self.fanout = fanout
        self.policy = policy
        self.ledger = StockLedger(db)

    # ==================== 创建订单 ====================

    @staticmethod
    def _normalize_items(items: Iterable[Any]) -> List[Tuple[int, int, Decimal]]:
        lines = []
        for item in items or []:
            try:
                product_id = int(_field(item, "product_id"))
                raw_quantity = _field(item, "quantity")
                if isinstance(raw_quantity, bool):
                    raise TypeError("quantity")
                quantity = int(raw_quantity)
                # 2.7 之类的小数不能截断成整数
                if Decimal(str(raw_quantity)) != quantity:
                    raise ValueError("quantity")
                price = Decimal(str(_field(item, "price"))).quantize(TWO_PLACES)
            except (KeyError, AttributeError, TypeError, ValueError, OverflowError, InvalidOperation):
                raise InvalidInput("订单明细格式错误")
            if quantity <= 0:
                raise InvalidInput(f"商品 {product_id} 的购买数量必须为正整数")
            if price <= 0:
                raise InvalidInput(f"商品 {product_id} 的价格必须大于0")
            lines.append((product_id, quantity, price))
        if not lines:
            raise InvalidInput("订单至少需要包含一件商品")
        return lines

    @staticmethod
    def calculate_total(lines: Iterable[Tuple[int, int, Decimal]]) -> Decimal:
        """订单总额 = Σ 数量 × 下单单价"""
        return sum((price * quantity for _, quantity, price in lines), Decimal("0")).quantize(TWO_PLACES)

    def create_order(
        self,
        customer_id: int,
        items: Iterable[Any],
        shipping_address: Any,
        payment_method: Union[PaymentMethod, str],
        notes: Optional[str] = None,
    ) -> Order:
        """创建订单（订单、明细、库存扣减在同一事务中，全部成功或全部回滚）"""
        lines = self._normalize_items(items)
        try:
            payment_method = PaymentMethod(payment_method)
        except ValueError:
            raise InvalidInput(f"不支持的支付方式: {payment_method}")
        if hasattr(shipping_address, "model_dump"):
            shipping_address = shipping_address.model_dump()

        order = Order(
            customer_id=customer_id,
            total_amount=self.calculate_total(lines),
            shipping_address=shipping_address,
            payment_method=payment_method,
            notes=notes,
            status=OrderStatus.PENDING,
        )

        try:
            self.db.add(order)
            self.db.flush()  # 生成订单ID

            for product_id, quantity, price in lines:
                self.db.add(
                    OrderItem(
                        order_id=order.id,
                        product_id=product_id,
                        quantity=quantity,
                        price=price,
                    )
                )
                self.ledger.reserve(product_id, quantity, order_id=order.id)

            self.db.commit()
        except HTTPException:
            self.db.rollback()
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"创建订单失败: customer_id={customer_id}, error={str(e)}")
            raise InternalError("创建订单失败") from e

        self.db.refresh(order)
        logger.info(f"创建订单成功: order_id={order.id}, customer_id={customer_id}, total={order.total_amount}")
        return order

    def place_order(
        self,
        customer: Principal,
        items: Iterable[Any],
        shipping_address: Any,
        payment_method: Union[PaymentMethod, str],
        notes: Optional[str] = None,
    ) -> Tuple[Order, List[OrderItem], int]:
        """下单并在事务提交后通知相关商家，返回 (订单, 明细, 通知的商家数)"""
        order = self.create_order(customer.id, items, shipping_address, payment_method, notes)
        order_items = self.get_order_items(order.id)

        vendors_notified = 0
        if self.fanout is not None:
            try:
                vendors_notified = self.fanout.notify_order_created(order, order_items, customer)
            except Exception as e:
                logger.error(f"下单通知失败: order_id={order.id}, error={str(e)}")

        return order, order_items, vendors_notified

    # ==================== 查询 ====================

    def get_by_id(self, order_id: int) -> Optional[Order]:
        return self.db.get(Order, order_id, populate_existing=True)

    def require_order(self, order_id: int) -> Order:
        order = self.get_by_id(order_id)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def get_order_items(self, order_id: int) -> List[OrderItem]:
        return list(
            self.db.execute(
                select(OrderItem)
                .where(OrderItem.order_id == order_id)
                .order_by(OrderItem.id)
            ).scalars().all()
        )

    def get_order_with_items(self, order_id: int) -> Optional[Tuple[Order, List[OrderItem]]]:
        order = self.get_by_id(order_id)
        if order is None:
            return None
        return order, self.get_order_items(order_id)

    def get_order_vendor_ids(self, order_id: int) -> Set[int]:
        """订单明细中商品所属的全部商家ID"""
        rows = self.db.execute(
            select(Product.vendor_id)
            .join(OrderItem, OrderItem.product_id == Product.id)
            .where(OrderItem.order_id == order_id)
            .distinct()
        ).scalars().all()
        return set(rows)

    def get_vendor_order_items(self, order_id: int, vendor_id: int) -> List[OrderItem]:
        """只返回该商家自己的订单明细"""
        return list(
            self.db.execute(
                select(OrderItem)
                .join(Product, OrderItem.product_id == Product.id)
                .where(OrderItem.order_id == order_id, Product.vendor_id == vendor_id)
                .order_by(OrderItem.id)
            ).scalars().all()
        )

    def get_by_customer(
        self,
        customer_id: int,
        limit: int = 20,
        offset: int = 0,
        status: Optional[str] = None,
    ) -> List[Order]:
        stmt = select(Order).where(Order.customer_id == customer_id)
        if status:
            stmt = stmt.where(Order.status == OrderStatus(status))
        stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset)
        return list(self.db.execute(stmt).scalars().all())

    def get_all(self, filters: Optional[Dict[str, Any]] = None, limit: int = 50, offset: int = 0) -> Dict[str, Any]:
        """管理员订单列表

        filters 支持: status, customer_id, search（用户名/邮箱/订单号模糊匹配）,
        start_date, end_date
        """
        filters = filters or {}
        conditions = []

        if filters.get("status"):
            conditions.append(Order.status == OrderStatus(filters["status"]))
        if filters.get("customer_id"):
            conditions.append(Order.customer_id == filters["customer_id"])
        if filters.get("search"):
            pattern = f"%{filters['search']}%"
            conditions.append(
                or_(
                    User.name.ilike(pattern),
                    User.email.ilike(pattern),
                    cast(Order.id, String).ilike(pattern),
                )
            )
        if filters.get("start_date"):
            conditions.append(Order.created_at >= filters["start_date"])
        if filters.get("end_date"):
            conditions.append(Order.created_at <= filters["end_date"])

        total = self.db.execute(
            select(func.count(Order.id))
            .select_from(Order)
            .outerjoin(User, Order.customer_id == User.id)
            .where(*conditions)
        ).scalar_one()

        orders = self.db.execute(
            select(Order)
            .outerjoin(User, Order.customer_id == User.id)
            .where(*conditions)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(limit)
            .offset(offset)
        ).scalars().all()

        return {
            "orders": list(orders),
            "pagination": {
                "total": total,
                "limit": limit,
                "offset": offset,
                "pages": math.ceil(total / limit) if limit else 0,
            },
        }

    def get_vendor_orders(
        self,
        vendor_id: int,
        limit: int = 20,
        offset: int = 0,
        status: Optional[str] = None,
    ) -> List[Order]:
        """包含该商家商品的订单"""
        vendor_order_ids = (
            select(OrderItem.order_id)
            .join(Product, OrderItem.product_id == Product.id)
            .where(Product.vendor_id == vendor_id)
        )
        stmt = select(Order).where(Order.id.in_(vendor_order_ids))
        if status:
            stmt = stmt.where(Order.status == OrderStatus(status))
        stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset)
        return list(self.db.execute(stmt).scalars().all())

    def get_vendor_orders_with_items(
        self,
        vendor_id: int,
        limit: int = 20,
        offset: int = 0,
        status: Optional[str] = None,
    ) -> List[Tuple[Order, List[OrderItem]]]:
        """商家订单列表，每个订单只附带该商家自己的明细"""
        return [
            (order, self.get_vendor_order_items(order.id, vendor_id))
            for order in self.get_vendor_orders(vendor_id, limit, offset, status)
        ]

    def get_analytics(self, start_date: datetime, end_date: datetime) -> Dict[str, Any]:
        """统计闭区间 [start_date, end_date] 内的订单"""
        in_period = Order.created_at.between(start_date, end_date)

        total_orders, total_revenue, average = self.db.execute(
            select(
                func.count(Order.id),
                func.sum(Order.total_amount),
                func.avg(Order.total_amount),
            ).where(in_period)
        ).one()

        status_counts = {status.value: 0 for status in OrderStatus}
        for status, count in self.db.execute(
            select(Order.status, func.count(Order.id)).where(in_period).group_by(Order.status)
        ).all():
            status_counts[OrderStatus(status).value] = count

        return {
            "total_orders": total_orders,
            "total_revenue": Decimal(str(total_revenue or 0)).quantize(TWO_PLACES),
            "average_order_value": Decimal(str(average or 0)).quantize(TWO_PLACES),
            "status_counts": status_counts,
            "period": {"start_date": start_date, "end_date": end_date},
        }

    # ==================== 权限 ====================

    def authorize(
        self,
        principal: Optional[Principal],
        order_id: int,
        scope: OrderScope = OrderScope.ANY,
    ) -> Tuple[Order, Grant]:
        """校验登录后加载订单并校验访问权限"""
        if principal is None:
            raise Unauthenticated()
        order = self.require_order(order_id)
        vendor_ids = self.get_order_vendor_ids(order_id) if scope != OrderScope.CUSTOMER else set()
        grant = self.policy.authorize_order(principal, order.customer_id, vendor_ids, scope)
        return order, grant

    # ==================== 状态变更 ====================

    @staticmethod
    def _append_note(note: str):
        """备注追加写入：已有备注时以换行分隔，保留历史顺序"""
        return case(
            (or_(Order.admin_notes.is_(None), Order.admin_notes == ""), note),
            else_=Order.admin_notes + "\n" + note,
        )

    def update_status(self, order_id: int, new_status: Union[OrderStatus, str], notes: Optional[str] = None) -> Order:
        """直接写入订单状态（不校验状态流转，合法性由调用方负责）"""
        values = {
            "status": OrderStatus(new_status),
            "updated_at": func.now(),
        }
        if notes:
            values["admin_notes"] = self._append_note(notes)

        try:
            result = self.db.execute(
                update(Order)
                .where(Order.id == order_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                self.db.rollback()
                raise OrderNotFound(order_id)
            self.db.commit()
        except HTTPException:
            raise
        except Exception as e:
            self.db.rollback()
            logger.error(f"更新订单状态失败: order_id={order_id}, error={str(e)}")
            raise InternalError("更新订单状态失败") from e

        logger.info(f"订单状态已更新: order_id={order_id}, status={OrderStatus(new_status).value}")
        return self.require_order(order_id)

    def change_status(
        self,
        order_id: int,
        new_status: Union[OrderStatus, str],
        notes: Optional[str] = None,
        updated_by: str = "admin",
    ) -> Order:
        """校验状态流转后更新，并通知下单用户"""
        new_status = OrderStatus(new_status)
        order = self.require_order(order_id)
        status_machine.ensure_transition(order.status, new_status)

        updated = self.update_status(order_id, new_status, notes)

        if self.fanout is not None:
            try:
                self.fanout.notify_status_changed(updated, new_status, notes, updated_by)
            except Exception as e:
                logger.error(f"状态变更通知失败: order_id={order_id}, error={str(e)}")

        return updated

    def cancel(
        self,
        order_id: int,
        actor_role: Union[UserRole, str],
        reason: Optional[str] = None,
    ) -> Order:
        """取消订单，只有可取消状态的订单才能取消"""
        order = self.require_order(order_id)
        status_machine.ensure_cancellable(order.status)

        reason = reason or settings.DEFAULT_CANCEL_REASON
        cancelled_by = "admin" if UserRole(actor_role) == UserRole.ADMIN else "customer"

        updated = self.update_status(order_id, OrderStatus.CANCELLED, reason)
        logger.info(f"订单已取消: order_id={order_id}, cancelled_by={cancelled_by}")

        if self.fanout is not None:
            try:
                self.fanout.notify_cancelled(updated, reason, cancelled_by)
            except Exception as e:
                logger.error(f"取消通知失败: order_id={order_id}, error={str(e)}")

        return updated

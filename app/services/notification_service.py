"""订单通知分发

根据订单明细计算需要通知的对象（每个商家一条，状态变更/取消时通知下单用户），
再经由各投递渠道（站内通知表、Redis 实时推送）逐条发送。
通知只在订单事务提交之后发送，任何通知失败都只记录日志，不影响订单本身。
"""

import enum
import json
import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from redis import Redis
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.notification import Notification, NotificationType
from app.models.order import Order, OrderStatus
from app.models.product import Product
from app.models.user import User, UserRole
from app.services.access_policy import Principal
from tasks.notification_tasks import (
    send_order_confirmation_email,
    send_order_status_email,
)

logger = logging.getLogger(__name__)


class NotificationCategory(str, enum.Enum):
    ORDER_CREATED = "order_created"
    STATUS_CHANGED = "status_changed"
    CANCELLED = "cancelled"


# 实时推送事件名（与前端 socket 事件保持一致）
EVENT_VENDOR_NEW_ORDER = "vendor:new_order"
EVENT_ADMIN_PRODUCT_ORDER = "admin:product_order"
EVENT_ORDER_STATUS_UPDATED = "order:status_updated"

_CATEGORY_TYPES = {
    NotificationCategory.ORDER_CREATED: NotificationType.ORDER,
    NotificationCategory.STATUS_CHANGED: NotificationType.ORDER_UPDATE,
    NotificationCategory.CANCELLED: NotificationType.ORDER_CANCELLED,
}


@dataclass
class NotificationIntent:
    """一条待投递的通知，不持久化，交给投递渠道处理"""

    recipient_id: int
    category: NotificationCategory
    event: str
    title: str
    message: str
    payload: Dict[str, Any] = field(default_factory=dict)
    is_admin_product: bool = False


@dataclass
class VendorGroup:
    """同一商家在订单中的商品明细及小计"""

    vendor_id: int
    products: List[Dict[str, Any]] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")

    def add(self, product_id: int, name: str, quantity: int, price: Decimal) -> None:
        price = Decimal(price)
        line_total = price * quantity
        self.products.append({
            "product_id": product_id,
            "name": name,
            "quantity": quantity,
            "price": float(price),
            "total": float(line_total),
        })
        self.subtotal += line_total


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _status_value(status) -> str:
    return getattr(status, "value", status)


def group_items_by_vendor(
    items: Iterable[Any],
    lookup: Callable[[int], Tuple[int, str]],
) -> "OrderedDict[int, VendorGroup]":
    """按商品所属商家分组

    Args:
        items: 订单明细（需要 product_id / quantity / price 属性）
        lookup: product_id -> (vendor_id, product_name)

    单个商品解析失败只跳过该商品，不影响其他分组。
    """
    groups: "OrderedDict[int, VendorGroup]" = OrderedDict()
    for item in items:
        try:
            vendor_id, product_name = lookup(item.product_id)
        except Exception as e:
            logger.error(f"解析商品所属商家失败: product_id={item.product_id}, error={str(e)}")
            continue
        group = groups.setdefault(vendor_id, VendorGroup(vendor_id=vendor_id))
        group.add(item.product_id, product_name, item.quantity, item.price)
    return groups


# ==================== 投递渠道 ====================

class DeliveryChannel:
    """投递渠道基类"""

    name = "channel"

    def deliver(self, intent: NotificationIntent) -> None:
        raise NotImplementedError


class NotificationStore(DeliveryChannel):
    """写入站内通知表"""

    name = "store"

    def __init__(self, db: Session):
        self.db = db

    def deliver(self, intent: NotificationIntent) -> None:
        notification = Notification(
            user_id=intent.recipient_id,
            type=_CATEGORY_TYPES[intent.category].value,
            title=intent.title,
            message=intent.message,
            data=intent.payload,
        )
        try:
            self.db.add(notification)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


class RealtimePublisher(DeliveryChannel):
    """通过 Redis PUBLISH 推送给在线用户"""

    name = "realtime"

    def __init__(self, redis: Optional[Redis], prefix: str = settings.REALTIME_CHANNEL_PREFIX):
        self.redis = redis
        self.prefix = prefix

    def channel_for(self, user_id: int) -> str:
        return f"{self.prefix}:{user_id}"

    def deliver(self, intent: NotificationIntent) -> None:
        if self.redis is None:
            logger.debug(f"Redis 不可用，跳过实时推送: user_id={intent.recipient_id}")
            return
        message = json.dumps({"event": intent.event, "data": intent.payload}, default=str)
        receivers = self.redis.publish(self.channel_for(intent.recipient_id), message)
        logger.debug(f"实时推送 {intent.event} -> user {intent.recipient_id}, 在线连接数 {receivers}")


class EmailNotifier:
    """邮件通知（交给 Celery 异步发送）"""

    def send_order_confirmation(self, customer: Principal, order: Order, items: Iterable[Any]) -> None:
        send_order_confirmation_email.delay(
            customer.email,
            customer.name,
            serialize_order(order),
            [serialize_item(item) for item in items],
        )

    def send_status_update(self, customer: User, order: Order, new_status: str) -> None:
        send_order_status_email.delay(
            customer.email,
            customer.name,
            serialize_order(order),
            new_status,
        )


def serialize_order(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "status": _status_value(order.status),
        "total_amount": str(order.total_amount),
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }


def serialize_item(item: Any) -> Dict[str, Any]:
    product = getattr(item, "product", None)
    return {
        "product_id": item.product_id,
        "product_name": product.name if product is not None else str(item.product_id),
        "quantity": item.quantity,
        "price": str(item.price),
    }


# ==================== 通知分发 ====================

class NotificationFanout:
    """订单通知分发器"""

    def __init__(
        self,
        db: Session,
        channels: Optional[List[DeliveryChannel]] = None,
        email: Optional[EmailNotifier] = None,
    ):
        self.db = db
        self.channels = channels if channels is not None else [NotificationStore(db)]
        self.email = email

    def _lookup_product(self, product_id: int) -> Tuple[int, str]:
        product = self.db.get(Product, product_id)
        if product is None:
            raise LookupError(f"商品不存在: {product_id}")
        return product.vendor_id, product.name

    def dispatch(self, intent: NotificationIntent) -> bool:
        """逐个渠道投递，单个渠道失败不影响其他渠道；任一渠道成功即返回 True"""
        delivered = False
        for channel in self.channels:
            try:
                channel.deliver(intent)
                delivered = True
            except Exception as e:
                logger.error(
                    f"通知投递失败: channel={channel.name}, user_id={intent.recipient_id}, "
                    f"event={intent.event}, error={str(e)}"
                )
        return delivered

    # ---------- 下单 ----------

    def build_vendor_intent(
        self,
        order: Order,
        group: VendorGroup,
        vendor: Optional[User],
        customer: Principal,
    ) -> NotificationIntent:
        is_admin = vendor is not None and UserRole(vendor.role) == UserRole.ADMIN
        amount = f"₹{group.subtotal:.2f}"
        if is_admin:
            title = "您上架的商品有新订单！"
            message = f"您上架的商品收到新订单 #{order.id}，金额 {amount}，下单用户 {customer.name}"
            event = EVENT_ADMIN_PRODUCT_ORDER
        else:
            title = "收到新订单！"
            message = f"您收到新订单 #{order.id}，金额 {amount}，下单用户 {customer.name}"
            event = EVENT_VENDOR_NEW_ORDER

        return NotificationIntent(
            recipient_id=group.vendor_id,
            category=NotificationCategory.ORDER_CREATED,
            event=event,
            title=title,
            message=message,
            payload={
                "order_id": order.id,
                "customer_name": customer.name,
                "customer_email": customer.email,
                "total_amount": float(group.subtotal),
                "products": group.products,
                "order_status": _status_value(order.status),
                "is_admin_product": is_admin,
                "timestamp": _now_iso(),
            },
            is_admin_product=is_admin,
        )

    def build_order_created_intents(
        self,
        order: Order,
        items: Iterable[Any],
        customer: Principal,
    ) -> List[NotificationIntent]:
        """每个商家一条通知，只携带该商家自己的商品和小计"""
        intents = []
        for group in group_items_by_vendor(items, self._lookup_product).values():
            try:
                vendor = self.db.get(User, group.vendor_id)
                intents.append(self.build_vendor_intent(order, group, vendor, customer))
            except Exception as e:
                logger.error(f"构建商家通知失败: vendor_id={group.vendor_id}, order_id={order.id}, error={str(e)}")
        return intents

    def notify_order_created(self, order: Order, items: List[Any], customer: Principal) -> int:
        """下单通知：通知所有相关商家并给下单用户发确认邮件，返回通知的商家数"""
        intents = self.build_order_created_intents(order, items, customer)
        for intent in intents:
            if self.dispatch(intent):
                logger.info(
                    f"✅ 已通知{'管理员' if intent.is_admin_product else '商家'} "
                    f"{intent.recipient_id}: order_id={order.id}"
                )

        if self.email is not None:
            try:
                self.email.send_order_confirmation(customer, order, items)
            except Exception as e:
                logger.error(f"订单确认邮件发送失败: order_id={order.id}, error={str(e)}")

        return len(intents)

    # ---------- 状态变更 / 取消 ----------

    def build_status_intent(
        self,
        order: Order,
        new_status,
        notes: Optional[str] = None,
        updated_by: str = "admin",
    ) -> NotificationIntent:
        new_status = _status_value(new_status)
        suffix = "（由商家更新）" if updated_by == "vendor" else ""
        notes_key = "vendor_notes" if updated_by == "vendor" else "admin_notes"
        return NotificationIntent(
            recipient_id=order.customer_id,
            category=NotificationCategory.STATUS_CHANGED,
            event=EVENT_ORDER_STATUS_UPDATED,
            title="订单状态已更新",
            message=f"您的订单 #{order.id} 状态已更新为 \"{new_status}\"{suffix}",
            payload={
                "order_id": order.id,
                "new_status": new_status,
                notes_key: notes,
                "updated_by": updated_by,
                "timestamp": _now_iso(),
            },
        )

    def build_cancellation_intent(self, order: Order, reason: str, cancelled_by: str) -> NotificationIntent:
        return NotificationIntent(
            recipient_id=order.customer_id,
            category=NotificationCategory.CANCELLED,
            event=EVENT_ORDER_STATUS_UPDATED,
            title="订单已取消",
            message=f"您的订单 #{order.id} 已取消，原因：{reason}",
            payload={
                "order_id": order.id,
                "new_status": OrderStatus.CANCELLED.value,
                "cancel_reason": reason,
                "cancelled_by": cancelled_by,
                "timestamp": _now_iso(),
            },
        )

    def _send_status_email(self, order: Order, new_status: str) -> None:
        if self.email is None:
            return
        try:
            customer = self.db.get(User, order.customer_id)
            if customer is not None:
                self.email.send_status_update(customer, order, new_status)
        except Exception as e:
            logger.error(f"订单状态邮件发送失败: order_id={order.id}, error={str(e)}")

    def notify_status_changed(
        self,
        order: Order,
        new_status,
        notes: Optional[str] = None,
        updated_by: str = "admin",
    ) -> NotificationIntent:
        intent = self.build_status_intent(order, new_status, notes, updated_by)
        self.dispatch(intent)
        self._send_status_email(order, intent.payload["new_status"])
        return intent

    def notify_cancelled(self, order: Order, reason: str, cancelled_by: str) -> NotificationIntent:
        intent = self.build_cancellation_intent(order, reason, cancelled_by)
        self.dispatch(intent)
        self._send_status_email(order, OrderStatus.CANCELLED.value)
        return intent

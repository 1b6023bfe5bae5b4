"""订单通知分发单元测试"""
import json
import pytest
from unittest.mock import Mock, patch
from decimal import Decimal
from types import SimpleNamespace
from sqlalchemy import select

from app.models.notification import Notification
from app.models.order import OrderStatus, PaymentMethod
from app.services.notification_service import (
    EVENT_ADMIN_PRODUCT_ORDER,
    EVENT_ORDER_STATUS_UPDATED,
    EVENT_VENDOR_NEW_ORDER,
    DeliveryChannel,
    EmailNotifier,
    NotificationCategory,
    NotificationFanout,
    NotificationStore,
    RealtimePublisher,
    group_items_by_vendor,
)
from app.services.order_service import OrderService


class RecordingChannel(DeliveryChannel):
    """记录投递内容，可指定对某些接收人投递失败"""

    name = "recording"

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.delivered = []

    def deliver(self, intent):
        if intent.recipient_id in self.fail_for:
            raise ConnectionError(f"投递失败: {intent.recipient_id}")
        self.delivered.append(intent)


@pytest.fixture
def placed_order(mock_db_session, users, products, sample_shipping_address):
    """订单：P1×2@10.00（商家一）、P2×1@5.00（商家二）、P3×1@20.00（管理员）"""
    service = OrderService(mock_db_session)
    items = [
        {"product_id": products["p1"].id, "quantity": 2, "price": "10.00"},
        {"product_id": products["p2"].id, "quantity": 1, "price": "5.00"},
        {"product_id": products["p3"].id, "quantity": 1, "price": "20.00"},
    ]
    order = service.create_order(users["customer"].id, items, sample_shipping_address, PaymentMethod.CARD)
    return order, service.get_order_items(order.id)


class TestGrouping:
    """按商家分组测试类"""

    def test_group_items_by_vendor(self):
        """测试按商家分组并计算小计"""
        items = [
            SimpleNamespace(product_id=1, quantity=2, price=Decimal("10.00")),
            SimpleNamespace(product_id=2, quantity=1, price=Decimal("5.00")),
            SimpleNamespace(product_id=3, quantity=3, price=Decimal("1.50")),
        ]
        owners = {1: (10, "A"), 2: (20, "B"), 3: (10, "C")}

        groups = group_items_by_vendor(items, owners.__getitem__)

        assert list(groups) == [10, 20]
        assert groups[10].subtotal == Decimal("24.50")
        assert groups[20].subtotal == Decimal("5.00")
        assert [p["name"] for p in groups[10].products] == ["A", "C"]

    def test_group_skips_failed_lookup(self):
        """测试单个商品解析失败只跳过该商品"""
        items = [
            SimpleNamespace(product_id=1, quantity=1, price=Decimal("10.00")),
            SimpleNamespace(product_id=404, quantity=1, price=Decimal("5.00")),
        ]

        def lookup(product_id):
            if product_id == 404:
                raise LookupError("商品不存在")
            return 10, "A"

        groups = group_items_by_vendor(items, lookup)

        assert list(groups) == [10]
        assert groups[10].subtotal == Decimal("10.00")


class TestOrderCreatedFanout:
    """下单通知测试类"""

    def test_one_intent_per_vendor_with_own_subtotal(self, mock_db_session, users, principals, placed_order):
        """测试每个商家一条通知，只包含自己的商品和小计"""
        order, items = placed_order
        fanout = NotificationFanout(mock_db_session, channels=[])

        intents = fanout.build_order_created_intents(order, items, principals["customer"])
        by_recipient = {intent.recipient_id: intent for intent in intents}

        assert set(by_recipient) == {users["vendor1"].id, users["vendor2"].id, users["admin"].id}

        vendor1 = by_recipient[users["vendor1"].id]
        assert vendor1.category == NotificationCategory.ORDER_CREATED
        assert vendor1.event == EVENT_VENDOR_NEW_ORDER
        assert vendor1.payload["total_amount"] == 20.0
        assert [p["name"] for p in vendor1.payload["products"]] == ["机械键盘"]
        assert vendor1.payload["customer_name"] == "张三"
        assert vendor1.payload["order_status"] == "pending"
        assert vendor1.is_admin_product is False

        assert by_recipient[users["vendor2"].id].payload["total_amount"] == 5.0

    def test_admin_owned_product_uses_admin_wording(self, mock_db_session, users, principals, placed_order):
        """测试管理员上架的商品使用管理员通知文案和事件"""
        order, items = placed_order
        fanout = NotificationFanout(mock_db_session, channels=[])

        intents = fanout.build_order_created_intents(order, items, principals["customer"])
        admin_intent = next(i for i in intents if i.recipient_id == users["admin"].id)

        assert admin_intent.event == EVENT_ADMIN_PRODUCT_ORDER
        assert admin_intent.is_admin_product is True
        assert admin_intent.payload["is_admin_product"] is True
        assert admin_intent.payload["total_amount"] == 20.0
        assert "您上架的商品" in admin_intent.message

    def test_notify_order_created_persists_notifications(
        self, mock_db_session, mock_redis, users, principals, placed_order
    ):
        """测试下单通知写入站内通知并实时推送"""
        order, items = placed_order
        fanout = NotificationFanout(
            mock_db_session,
            channels=[NotificationStore(mock_db_session), RealtimePublisher(mock_redis)],
        )

        notified = fanout.notify_order_created(order, items, principals["customer"])

        assert notified == 3
        rows = mock_db_session.execute(select(Notification)).scalars().all()
        assert {row.user_id for row in rows} == {users["vendor1"].id, users["vendor2"].id, users["admin"].id}
        assert {row.type for row in rows} == {"order"}
        assert mock_redis.publish.call_count == 3

        channel, message = mock_redis.publish.call_args_list[0].args
        assert channel == f"notifications:user:{users['vendor1'].id}"
        assert json.loads(message)["event"] == EVENT_VENDOR_NEW_ORDER

    def test_one_vendor_failure_does_not_block_others(self, mock_db_session, users, principals, placed_order):
        """测试某个商家投递失败，其他商家仍然收到通知"""
        order, items = placed_order
        failing = RecordingChannel(fail_for={users["vendor1"].id})
        fanout = NotificationFanout(mock_db_session, channels=[failing])

        notified = fanout.notify_order_created(order, items, principals["customer"])

        assert notified == 3
        delivered = {intent.recipient_id: intent for intent in failing.delivered}
        assert set(delivered) == {users["vendor2"].id, users["admin"].id}
        assert delivered[users["vendor2"].id].payload["total_amount"] == 5.0

    def test_channel_failure_does_not_block_other_channels(self, mock_db_session, users, principals, placed_order):
        """测试单个渠道失败不影响其他渠道"""
        order, items = placed_order
        broken = RecordingChannel(fail_for={users["vendor1"].id, users["vendor2"].id, users["admin"].id})
        healthy = RecordingChannel()
        fanout = NotificationFanout(mock_db_session, channels=[broken, healthy])

        fanout.notify_order_created(order, items, principals["customer"])

        assert len(healthy.delivered) == 3

    def test_redis_unavailable_is_skipped(self, mock_db_session, principals, placed_order):
        """测试 Redis 不可用时跳过实时推送"""
        order, items = placed_order
        store = RecordingChannel()
        fanout = NotificationFanout(mock_db_session, channels=[RealtimePublisher(None), store])

        assert fanout.notify_order_created(order, items, principals["customer"]) == 3
        assert len(store.delivered) == 3

    def test_confirmation_email(self, mock_db_session, principals, placed_order):
        """测试下单确认邮件"""
        order, items = placed_order
        email = Mock()
        fanout = NotificationFanout(mock_db_session, channels=[], email=email)

        fanout.notify_order_created(order, items, principals["customer"])

        email.send_order_confirmation.assert_called_once_with(principals["customer"], order, items)

    def test_confirmation_email_failure_is_swallowed(self, mock_db_session, principals, placed_order):
        """测试邮件入队失败不影响通知结果"""
        order, items = placed_order
        email = Mock()
        email.send_order_confirmation.side_effect = Exception("broker 不可用")
        fanout = NotificationFanout(mock_db_session, channels=[], email=email)

        assert fanout.notify_order_created(order, items, principals["customer"]) == 3


class TestStatusFanout:
    """状态变更 / 取消通知测试类"""

    def test_status_intent_targets_customer(self, mock_db_session, users, placed_order):
        """测试状态变更只通知下单用户"""
        order, _ = placed_order
        channel = RecordingChannel()
        fanout = NotificationFanout(mock_db_session, channels=[channel])

        intent = fanout.notify_status_changed(order, OrderStatus.SHIPPED, "顺丰 SF123")

        assert [i.recipient_id for i in channel.delivered] == [users["customer"].id]
        assert intent.event == EVENT_ORDER_STATUS_UPDATED
        assert intent.category == NotificationCategory.STATUS_CHANGED
        assert intent.payload["new_status"] == "shipped"
        assert intent.payload["admin_notes"] == "顺丰 SF123"
        assert intent.payload["updated_by"] == "admin"
        assert "shipped" in intent.message

    def test_vendor_status_intent(self, mock_db_session, placed_order):
        """测试商家更新状态时的通知内容"""
        order, _ = placed_order
        fanout = NotificationFanout(mock_db_session, channels=[])

        intent = fanout.build_status_intent(order, "processing", "已备货", updated_by="vendor")

        assert intent.payload["vendor_notes"] == "已备货"
        assert "admin_notes" not in intent.payload
        assert "由商家更新" in intent.message

    def test_cancellation_intent(self, mock_db_session, users, placed_order):
        """测试取消通知"""
        order, _ = placed_order
        channel = RecordingChannel()
        fanout = NotificationFanout(mock_db_session, channels=[NotificationStore(mock_db_session), channel])

        intent = fanout.notify_cancelled(order, "不想要了", "customer")

        assert intent.category == NotificationCategory.CANCELLED
        assert intent.payload["new_status"] == "cancelled"
        assert intent.payload["cancel_reason"] == "不想要了"
        assert intent.payload["cancelled_by"] == "customer"
        assert [i.recipient_id for i in channel.delivered] == [users["customer"].id]
        row = mock_db_session.execute(select(Notification)).scalar_one()
        assert row.type == "order_cancelled"

    def test_status_email_sent_to_customer(self, mock_db_session, users, placed_order):
        """测试状态变更邮件发送给下单用户"""
        order, _ = placed_order
        email = Mock()
        fanout = NotificationFanout(mock_db_session, channels=[], email=email)

        fanout.notify_status_changed(order, OrderStatus.DELIVERED)

        email.send_status_update.assert_called_once_with(users["customer"], order, "delivered")

    def test_status_email_failure_is_swallowed(self, mock_db_session, placed_order):
        """测试状态邮件失败不向上抛出"""
        order, _ = placed_order
        email = Mock()
        email.send_status_update.side_effect = Exception("broker 不可用")
        fanout = NotificationFanout(mock_db_session, channels=[], email=email)

        intent = fanout.notify_cancelled(order, "缺货", "admin")

        assert intent.payload["cancelled_by"] == "admin"


class TestDeliveryChannels:
    """投递渠道测试类"""

    def test_store_rolls_back_on_failure(self):
        """测试写入通知失败时回滚"""
        db = Mock()
        db.commit.side_effect = Exception("数据库错误")
        store = NotificationStore(db)
        intent = SimpleNamespace(
            recipient_id=1,
            category=NotificationCategory.ORDER_CREATED,
            title="t",
            message="m",
            payload={},
        )

        with pytest.raises(Exception):
            store.deliver(intent)

        db.rollback.assert_called_once()

    def test_realtime_channel_name(self, mock_redis):
        """测试实时推送频道命名"""
        publisher = RealtimePublisher(mock_redis, prefix="notifications:user")
        assert publisher.channel_for(7) == "notifications:user:7"

    def test_email_notifier_enqueues_tasks(self, placed_order, principals):
        """测试邮件通知交给 Celery 异步发送"""
        order, items = placed_order
        notifier = EmailNotifier()

        with patch("app.services.notification_service.send_order_confirmation_email") as confirm_task, \
             patch("app.services.notification_service.send_order_status_email") as status_task:
            notifier.send_order_confirmation(principals["customer"], order, items)
            notifier.send_status_update(principals["customer"], order, "shipped")

        args = confirm_task.delay.call_args.args
        assert args[0] == "customer@example.com"
        assert args[1] == "张三"
        assert args[2]["id"] == order.id
        assert args[2]["total_amount"] == "45.00"
        assert [item["product_name"] for item in args[3]] == ["机械键盘", "鼠标垫", "显示器支架"]

        status_args = status_task.delay.call_args.args
        assert status_args[0] == "customer@example.com"
        assert status_args[3] == "shipped"

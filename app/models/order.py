import enum

from sqlalchemy import (
    Column,
    Integer,
    Numeric,
    Text,
    ForeignKey,
    TIMESTAMP,
    JSON,
    Enum,
    Index,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from app.db.base import Base


# 1️ 订单状态枚举

class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


# 2️ 支付方式枚举

class PaymentMethod(str, enum.Enum):
    CASH_ON_DELIVERY = "cash_on_delivery"
    CARD = "card"
    UPI = "upi"
    NET_BANKING = "net_banking"
    WALLET = "wallet"


# 3️ 订单表

class Order(Base):
    __tablename__ = "orders"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    customer_id = Column(
        Integer,
        ForeignKey("users.id"),
        nullable=False,
        index=True,
        comment="下单用户ID",
    )

    # 创建时按明细计算，之后不再重算
    total_amount = Column(
        Numeric(10, 2),
        nullable=False,
        comment="订单总金额",
    )

    shipping_address = Column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
        comment="收货地址快照",
    )

    payment_method = Column(
        Enum(
            PaymentMethod,
            name="payment_method_type",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        comment="支付方式",
    )

    notes = Column(
        Text,
        nullable=True,
        comment="用户备注",
    )

    admin_notes = Column(
        Text,
        nullable=True,
        comment="管理员/商家备注（追加写入，换行分隔）",
    )

    status = Column(
        Enum(
            OrderStatus,
            name="order_status_type",
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
        default=OrderStatus.PENDING,
        comment="订单状态",
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    items = relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.id",
        lazy="selectin",
    )

    customer = relationship("User", lazy="joined")

    @property
    def customer_name(self):
        return self.customer.name if self.customer is not None else None

    @property
    def customer_email(self):
        return self.customer.email if self.customer is not None else None


# 4️ 高频查询优化索引

Index(
    "idx_orders_customer_created_desc",
    Order.customer_id,
    Order.created_at.desc(),
)

Index(
    "idx_orders_status",
    Order.status,
)

import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    ForeignKey,
    TIMESTAMP,
    JSON,
    Index,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from app.db.base import Base


# 1️ 通知类型（与前端约定的字符串保持一致）

class NotificationType(str, enum.Enum):
    ORDER = "order"
    ORDER_UPDATE = "order_update"
    ORDER_CANCELLED = "order_cancelled"


# 2️ 站内通知表

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="接收人ID",
    )

    type = Column(
        String(32),
        nullable=False,
        comment="通知类型",
    )

    title = Column(
        String(255),
        nullable=False,
    )

    message = Column(
        Text,
        nullable=False,
    )

    data = Column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
        comment="结构化负载（订单ID、金额、商品列表）",
    )

    read = Column(
        Boolean,
        nullable=False,
        default=False,
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


# 3️ 按用户倒序拉取通知

Index(
    "idx_notifications_user_created",
    Notification.user_id,
    Notification.created_at.desc(),
)

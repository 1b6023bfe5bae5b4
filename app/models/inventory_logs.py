import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    TIMESTAMP,
    Enum,
    Index,
    func,
)
from app.db.base import Base

# 1定义库存变更类型（数据库 ENUM）
class ChangeType(str, enum.Enum):
    ORDER_PLACED = "ORDER_PLACED"   # 下单扣减
# 2️库存日志表
class InventoryLog(Base):
    __tablename__ = "inventory_logs"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    product_id = Column(
        Integer,
        nullable=False,
        index=True,
        comment="商品ID",
    )

    order_id = Column(
        Integer,
        nullable=True,
        index=True,
        comment="订单ID",
    )

    change_type = Column(
        Enum(
            ChangeType,
            name="inventory_change_type",  # 重要！PostgreSQL ENUM 类型名
        ),
        nullable=False,
        comment="库存变更类型",
    )

    quantity = Column(
        Integer,
        nullable=False,
        comment="变更数量（扣减为负数）",
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    operator = Column(
        String(64),
        nullable=True,
        comment="操作人/服务名",
    )

    source = Column(
        String(50),
        nullable=True,
        comment="来源：order_service / manual",
    )

# 3️组合索引（高频查询优化）


Index(
    "idx_inventory_logs_product_created_desc",
    InventoryLog.product_id,
    InventoryLog.created_at.desc(),
)

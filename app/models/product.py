from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    ForeignKey,
    CheckConstraint,
    TIMESTAMP,
    func,
    Index,
)
from app.db.base import Base


class Product(Base):
    __tablename__ = "products"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    sku = Column(
        String(64),
        nullable=False,
        unique=True,
        comment="商品唯一SKU",
    )

    name = Column(
        String(255),
        nullable=False,
        comment="商品名称",
    )

    # 商品归属用户，可能是 vendor，也可能是自己上架商品的 admin
    vendor_id = Column(
        Integer,
        ForeignKey("users.id"),
        nullable=False,
        index=True,
        comment="商品所属商家ID",
    )

    price = Column(
        Numeric(10, 2),
        nullable=False,
        comment="当前售价（下单时价格以订单明细为准）",
    )

    stock_quantity = Column(
        Integer,
        nullable=False,
        server_default="0",
        comment="当前可售库存",
    )

    created_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    updated_at = Column(
        TIMESTAMP(timezone=True),
        server_default=func.now(),
        nullable=False,
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            "stock_quantity >= 0",
            name="ck_stock_quantity_non_negative",
        ),
    )


Index(
    "idx_products_name",
    Product.name,
)

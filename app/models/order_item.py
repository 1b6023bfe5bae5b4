from sqlalchemy import (
    Column,
    Integer,
    Numeric,
    ForeignKey,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from app.db.base import Base


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )

    order_id = Column(
        Integer,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        comment="订单ID",
    )

    product_id = Column(
        Integer,
        ForeignKey("products.id"),
        nullable=False,
        index=True,
        comment="商品ID",
    )

    quantity = Column(
        Integer,
        nullable=False,
        comment="购买数量",
    )

    # 下单时的单价，与商品实时价格解耦
    price = Column(
        Numeric(10, 2),
        nullable=False,
        comment="下单单价",
    )

    order = relationship("Order", back_populates="items")
    product = relationship("Product", lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "quantity > 0",
            name="ck_order_item_quantity_positive",
        ),
    )

    @property
    def product_name(self):
        return self.product.name if self.product is not None else None

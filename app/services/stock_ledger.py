"""库存台账：下单扣减库存"""

import logging
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.exceptions import InsufficientStock, ProductNotFound
from app.models.product import Product
from app.models.inventory_logs import InventoryLog, ChangeType

logger = logging.getLogger(__name__)


class StockLedger:
    """库存扣减服务

    扣减只在调用方的事务中执行，不自行提交；
    多商品订单中任一商品失败，由调用方回滚整个事务。
    """

    def __init__(self, db: Session):
        self.db = db

    def get_stock(self, product_id: int) -> int:
        """查询商品可用库存"""
        stock = self.db.execute(
            select(Product.stock_quantity).where(Product.id == product_id)
        ).scalar_one_or_none()
        return stock if stock is not None else 0

    def reserve(self, product_id: int, quantity: int, order_id: Optional[int] = None) -> bool:
        """扣减库存（比较并扣减在同一条 UPDATE 语句中完成）

        并发下单同一商品时，由数据库保证只有库存充足的一方能更新成功，
        不存在先读后写的丢失更新。
        """
        result = self.db.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.stock_quantity >= quantity,
            )
            .values(stock_quantity=Product.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            exists = self.db.execute(
                select(Product.id).where(Product.id == product_id)
            ).first()
            if exists is None:
                logger.warning(f"扣减库存失败，商品不存在: product_id={product_id}")
                raise ProductNotFound(product_id)
            logger.warning(
                f"扣减库存失败，库存不足: product_id={product_id}, quantity={quantity}"
            )
            raise InsufficientStock(product_id)

        self.db.add(
            InventoryLog(
                product_id=product_id,
                order_id=order_id,
                change_type=ChangeType.ORDER_PLACED,
                quantity=-quantity,
                operator=f"order_service_{order_id}",
                source="order_service",
            )
        )
        logger.debug(f"库存扣减: product_id={product_id}, quantity={quantity}, order_id={order_id}")
        return True

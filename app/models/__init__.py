# Models
from .user import User, UserRole
from .product import Product
from .order import Order, OrderStatus, PaymentMethod
from .order_item import OrderItem
from .notification import Notification, NotificationType
from .inventory_logs import InventoryLog, ChangeType

__all__ = [
    "User",
    "UserRole",
    "Product",
    "Order",
    "OrderStatus",
    "PaymentMethod",
    "OrderItem",
    "Notification",
    "NotificationType",
    "InventoryLog",
    "ChangeType",
]

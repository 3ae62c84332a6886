from .order import Order, OrderStatus, PaymentStatus
from .order_item import OrderItem
from .history import OrderStatusHistory, PaymentHistory
from .notification import OrderNotification

__all__ = [
    "Order",
    "OrderStatus",
    "PaymentStatus",
    "OrderItem",
    "OrderStatusHistory",
    "PaymentHistory",
    "OrderNotification",
]

from .order import (
    OrderItemSerializer,
    OrderPaymentStatusSerializer,
    OrderSerializer,
    OrderStatusHistorySerializer,
    PaymentHistorySerializer,
)
from .commands import (
    AddressSerializer,
    CheckoutInputSerializer,
    CheckoutLineSerializer,
    PaymentStatusUpdateSerializer,
    StatusUpdateSerializer,
)

__all__ = [
    "OrderItemSerializer",
    "OrderPaymentStatusSerializer",
    "OrderSerializer",
    "OrderStatusHistorySerializer",
    "PaymentHistorySerializer",
    "AddressSerializer",
    "CheckoutInputSerializer",
    "CheckoutLineSerializer",
    "PaymentStatusUpdateSerializer",
    "StatusUpdateSerializer",
]

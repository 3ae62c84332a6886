from .orders import (
    OrderDetailView,
    OrderListCreateView,
    OrderPaymentStatusView,
    OrderStatusView,
)

__all__ = [
    "OrderDetailView",
    "OrderListCreateView",
    "OrderPaymentStatusView",
    "OrderStatusView",
]

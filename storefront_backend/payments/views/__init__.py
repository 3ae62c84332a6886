from .webhook import PaymentWebhookView
from .payments import (
    PaymentIntentView,
    PaymentLookupView,
    PaymentRefundView,
    PublicPaymentConfigView,
)

__all__ = [
    "PaymentWebhookView",
    "PaymentIntentView",
    "PaymentLookupView",
    "PaymentRefundView",
    "PublicPaymentConfigView",
]

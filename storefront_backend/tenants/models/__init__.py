from .payment_config import StorePaymentConfig
from .store import Store

__all__ = ["Store", "StorePaymentConfig"]

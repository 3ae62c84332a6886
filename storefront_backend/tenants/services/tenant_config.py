# tenants/services/tenant_config.py

"""
TENANT CONFIG (collaborator contract)

Read-only view of a store's configuration as consumed by checkout and the
payment gateway adapter:
- get_payment_config(store_id): gateway enablement + effective credentials
- get_business_config(store): pricing inputs (tax rate, shipping policy)

Store credentials win over platform credentials; blanks fall back.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings

from tenants.models import Store, StorePaymentConfig


@dataclass(frozen=True)
class PaymentConfig:
    store_id: str
    provider: str
    enabled: bool
    access_token: str
    public_key: str
    webhook_secret: str
    mode: str

    @property
    def has_credentials(self) -> bool:
        return bool(self.access_token)

    @property
    def is_production(self) -> bool:
        return self.mode == "production"


@dataclass(frozen=True)
class BusinessConfig:
    currency: str
    tax_rate: Decimal
    shipping_cost: Decimal
    free_shipping_enabled: bool
    free_shipping_threshold: Decimal


def _platform_cfg() -> dict:
    payments = getattr(settings, "PAYMENTS", {}) or {}
    cfg = payments.get("MERCADOPAGO") or {}
    return cfg if isinstance(cfg, dict) else {}


def get_payment_config(store_id) -> PaymentConfig:
    platform = _platform_cfg()
    row = StorePaymentConfig.objects.filter(store_id=store_id).first()

    enabled = bool(row and row.enabled)
    access_token = ((row.access_token if row else "") or platform.get("ACCESS_TOKEN") or "").strip()
    public_key = ((row.public_key if row else "") or platform.get("PUBLIC_KEY") or "").strip()
    webhook_secret = ((row.webhook_secret if row else "") or platform.get("WEBHOOK_SECRET") or "").strip()

    return PaymentConfig(
        store_id=str(store_id),
        provider=row.provider if row else StorePaymentConfig.PROVIDER_MERCADOPAGO,
        enabled=enabled,
        access_token=access_token,
        public_key=public_key,
        webhook_secret=webhook_secret,
        mode=str(platform.get("MODE") or "test"),
    )


def get_business_config(store: Store) -> BusinessConfig:
    return BusinessConfig(
        currency=(store.currency or "ARS").upper(),
        tax_rate=Decimal(str(store.tax_rate or "0")),
        shipping_cost=Decimal(str(store.shipping_cost or "0")),
        free_shipping_enabled=bool(store.free_shipping_enabled),
        free_shipping_threshold=Decimal(str(store.free_shipping_threshold or "0")),
    )

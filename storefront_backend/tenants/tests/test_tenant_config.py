# tenants/tests/test_tenant_config.py

from decimal import Decimal

from django.test import TestCase, override_settings

from orders.tests.helpers import enable_gateway, make_store, payments_settings
from tenants.services.tenant_config import get_business_config, get_payment_config


@override_settings(
    PAYMENTS=payments_settings(
        ACCESS_TOKEN="PLATFORM-TOKEN",
        PUBLIC_KEY="PLATFORM-PUB",
        WEBHOOK_SECRET="platform-secret",
        MODE="test",
    )
)
class PaymentConfigTests(TestCase):
    """
    GUARANTEES:
    - store credentials win over platform credentials
    - blank store credentials fall back to the platform ones
    - only the store row can enable the gateway
    """

    def setUp(self):
        self.store = make_store()

    def test_store_without_config_is_disabled(self):
        cfg = get_payment_config(self.store.id)
        self.assertFalse(cfg.enabled)
        self.assertEqual(cfg.access_token, "PLATFORM-TOKEN")
        self.assertEqual(cfg.mode, "test")
        self.assertFalse(cfg.is_production)

    def test_store_credentials_override_platform(self):
        enable_gateway(self.store, access_token="STORE-TOKEN", public_key="STORE-PUB", webhook_secret="s")
        cfg = get_payment_config(self.store.id)

        self.assertTrue(cfg.enabled)
        self.assertEqual(cfg.access_token, "STORE-TOKEN")
        self.assertEqual(cfg.public_key, "STORE-PUB")
        self.assertEqual(cfg.webhook_secret, "s")

    def test_blank_store_credentials_fall_back(self):
        enable_gateway(self.store, access_token="", public_key="")
        cfg = get_payment_config(self.store.id)

        self.assertTrue(cfg.enabled)
        self.assertTrue(cfg.has_credentials)
        self.assertEqual(cfg.access_token, "PLATFORM-TOKEN")
        self.assertEqual(cfg.public_key, "PLATFORM-PUB")
        self.assertEqual(cfg.webhook_secret, "platform-secret")


class BusinessConfigTests(TestCase):
    def test_reads_store_fields(self):
        store = make_store(
            currency="usd",
            tax_rate=Decimal("21.00"),
            shipping_cost=Decimal("4.50"),
            free_shipping_enabled=True,
            free_shipping_threshold=Decimal("100.00"),
        )
        cfg = get_business_config(store)

        self.assertEqual(cfg.currency, "USD")
        self.assertEqual(cfg.tax_rate, Decimal("21.00"))
        self.assertEqual(cfg.shipping_cost, Decimal("4.50"))
        self.assertTrue(cfg.free_shipping_enabled)
        self.assertEqual(cfg.free_shipping_threshold, Decimal("100.00"))

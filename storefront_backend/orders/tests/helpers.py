# orders/tests/helpers.py

from __future__ import annotations

import copy
from decimal import Decimal

from django.conf import settings

from catalog.models import Product, StockEntry
from orders.services.checkout_orchestrator import CheckoutLine, CheckoutRequest, checkout
from tenants.models import Store, StorePaymentConfig
from users.models import User

ADDRESS = {
    "recipient_name": "Ana Buyer",
    "line1": "Av. Siempre Viva 742",
    "city": "Rosario",
    "state": "Santa Fe",
    "postal_code": "2000",
    "country": "AR",
    "phone": "+54 341 555 0000",
}


def make_store(name="Main Store", **kwargs) -> Store:
    defaults = {
        "contact_email": "owner@store.test",
        "tax_rate": Decimal("10.00"),
        "shipping_cost": Decimal("3.00"),
    }
    defaults.update(kwargs)
    return Store.objects.create(name=name, **defaults)


def enable_gateway(store: Store, **kwargs) -> StorePaymentConfig:
    defaults = {
        "enabled": True,
        "access_token": "TEST-access-token",
        "public_key": "TEST-public-key",
    }
    defaults.update(kwargs)
    cfg, _ = StorePaymentConfig.objects.update_or_create(store=store, defaults=defaults)
    return cfg


def make_user(email="buyer@example.com", role=User.ROLE_CUSTOMER, store=None) -> User:
    return User.objects.create_user(email=email, password="password123", role=role, store=store)


def make_product(store, *, sku, price, stock=0, variant="", floor_price=None, name=None) -> Product:
    product = Product.objects.create(
        store=store,
        sku=sku,
        name=name or f"Product {sku}",
        unit_price=Decimal(str(price)),
        floor_price=Decimal(str(floor_price)) if floor_price is not None else None,
    )
    StockEntry.objects.create(product=product, variant=variant, available=stock)
    return product


def stock_of(product, variant="") -> int:
    return StockEntry.objects.get(product=product, variant=variant).available


def place_order(buyer, store, lines, *, payment_method="cash_on_delivery", **kwargs):
    """lines: [(product, qty)] or [(product, qty, variant)]"""
    checkout_lines = []
    for line in lines:
        product, qty = line[0], line[1]
        variant = line[2] if len(line) > 2 else ""
        checkout_lines.append(CheckoutLine(product_id=product.id, quantity=qty, variant=variant))

    return checkout(
        CheckoutRequest(
            buyer=buyer,
            store_id=store.id,
            address=dict(ADDRESS),
            payment_method=payment_method,
            lines=checkout_lines,
            **kwargs,
        )
    )


def payments_settings(**overrides) -> dict:
    """settings.PAYMENTS copy with MERCADOPAGO keys overridden."""
    cfg = copy.deepcopy(settings.PAYMENTS)
    cfg["MERCADOPAGO"].update(overrides)
    return cfg


def orders_settings(**overrides) -> dict:
    cfg = copy.deepcopy(settings.ORDERS)
    cfg.update(overrides)
    return cfg

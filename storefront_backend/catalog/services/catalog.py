# catalog/services/catalog.py

"""
CATALOG (collaborator contract)

Narrow read/adjust surface consumed by checkout and admin tooling:
- get_price(product_id, variant)
- get_stock(product_id, variant)
- adjust_stock(product_id, variant, delta)
- get_products(ids) for batch resolution at checkout
"""

from __future__ import annotations

from decimal import Decimal
from typing import Dict, Iterable

from django.core.exceptions import ValidationError as DjangoValidationError

from catalog.models import Product
from catalog.services import stock_ledger
from orders.services.exceptions import NotFoundError, ValidationError


def get_product(product_id) -> Product:
    try:
        return Product.objects.get(pk=product_id)
    except (Product.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise NotFoundError(f"Product not found: {product_id}")


def get_products(product_ids: Iterable) -> Dict[str, Product]:
    ids = {str(pid) for pid in product_ids}
    try:
        found = {str(p.id): p for p in Product.objects.filter(pk__in=ids)}
    except (DjangoValidationError, ValueError):
        raise ValidationError("Invalid product id")
    missing = ids - set(found)
    if missing:
        raise NotFoundError(f"Product not found: {sorted(missing)[0]}")
    return found


def get_price(product_id, variant="") -> Decimal:
    # Variants share the product price.
    return get_product(product_id).unit_price


def get_stock(product_id, variant="") -> int:
    return stock_ledger.available(product_id, variant)


def adjust_stock(product_id, variant, delta) -> int:
    """Positive delta credits, negative delta debits (guarded). Returns new level."""
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("delta must be an integer")
    if delta > 0:
        stock_ledger.credit(product_id, variant, delta)
    elif delta < 0:
        stock_ledger.debit(product_id, variant, -delta)
    return stock_ledger.available(product_id, variant)

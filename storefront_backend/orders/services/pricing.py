# orders/services/pricing.py

"""
ORDER PRICING

Server-authoritative totals:
  subtotal = sum(quantity * unit_price)
  tax      = subtotal * tax_rate / 100
  shipping = store flat rate, waived when free shipping applies
  total    = subtotal + tax + shipping - discount   (never negative)

All money is quantized to 2 places (ROUND_HALF_UP).
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Tuple

from orders.services.exceptions import ValidationError
from tenants.services.tenant_config import BusinessConfig

TWOPLACES = Decimal("0.01")
ZERO = Decimal("0.00")


def money(value) -> Decimal:
    return Decimal(str(value if value is not None else "0")).quantize(TWOPLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax: Decimal
    shipping_cost: Decimal
    discount: Decimal
    total: Decimal


def compute_totals(
    lines: Iterable[Tuple[int, Decimal]],
    business: BusinessConfig,
    *,
    discount=ZERO,
) -> Totals:
    """
    lines: (quantity, unit_price) pairs.
    """
    subtotal = ZERO
    for quantity, unit_price in lines:
        subtotal += Decimal(int(quantity)) * money(unit_price)
    subtotal = money(subtotal)

    tax = money(subtotal * Decimal(business.tax_rate) / Decimal("100"))

    shipping = money(business.shipping_cost)
    if business.free_shipping_enabled and subtotal >= money(business.free_shipping_threshold):
        shipping = ZERO

    discount = money(discount)
    if discount < ZERO:
        raise ValidationError("discount cannot be negative")

    gross = subtotal + tax + shipping
    if discount > gross:
        raise ValidationError("discount cannot exceed order total")

    return Totals(
        subtotal=subtotal,
        tax=tax,
        shipping_cost=shipping,
        discount=discount,
        total=money(gross - discount),
    )

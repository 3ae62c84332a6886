# catalog/services/stock_ledger.py

"""
STOCK LEDGER

Per-(product, variant) available quantity.

HARD RULES:
- Debit is ONE guarded UPDATE (available >= qty) executed by the database,
  never load/check/subtract/save in Python.
- available never goes negative (guard + DB check constraint).
- Quantities are whole integer units.
- debit_many() is all-or-nothing: if any line fails, lines already debited
  are credited back before the error surfaces.

Callers own "credit at most once per originating debit" (see the order
repository's idempotent cancel).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List

from django.db import transaction
from django.db.models import F

from catalog.models import StockEntry
from orders.services.exceptions import InsufficientStockError, ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockLine:
    product_id: object
    variant: str
    quantity: int


def _to_int_qty(value) -> int:
    """
    Quantity normalizer.
    HARD RULE: quantities are positive integer units.
    """
    if isinstance(value, bool):
        raise ValidationError("quantity must be a whole integer unit")

    if isinstance(value, str):
        s = value.strip()
        if not s.isdigit():
            raise ValidationError("quantity must be a whole integer unit")
        value = int(s)

    if not isinstance(value, int):
        raise ValidationError("quantity must be a whole integer unit")

    if value <= 0:
        raise ValidationError("quantity must be at least 1")

    return value


def _norm_variant(variant) -> str:
    return (variant or "").strip()


def available(product_id, variant="") -> int:
    qty = (
        StockEntry.objects.filter(product_id=product_id, variant=_norm_variant(variant))
        .values_list("available", flat=True)
        .first()
    )
    return int(qty or 0)


def debit(product_id, variant, qty) -> None:
    """
    Atomically take `qty` units.

    Raises InsufficientStockError(available=...) when the guard fails.
    """
    qty = _to_int_qty(qty)
    variant = _norm_variant(variant)

    updated = StockEntry.objects.filter(
        product_id=product_id,
        variant=variant,
        available__gte=qty,
    ).update(available=F("available") - qty)

    if updated == 1:
        return

    have = available(product_id, variant)
    logger.info(
        "Stock debit refused",
        extra={"product_id": str(product_id), "variant": variant, "requested": qty, "available": have},
    )
    raise InsufficientStockError(
        f"Insufficient stock for product {product_id} [{variant or 'base'}]. "
        f"Available: {have}, requested: {qty}",
        available=have,
        product_id=str(product_id),
        variant=variant,
    )


def credit(product_id, variant, qty) -> None:
    """Return `qty` units. Creates the entry when the variant has none yet."""
    qty = _to_int_qty(qty)
    variant = _norm_variant(variant)

    updated = StockEntry.objects.filter(product_id=product_id, variant=variant).update(
        available=F("available") + qty
    )
    if updated:
        return

    with transaction.atomic():
        entry, created = StockEntry.objects.select_for_update().get_or_create(
            product_id=product_id,
            variant=variant,
            defaults={"available": qty},
        )
        if not created:
            StockEntry.objects.filter(pk=entry.pk).update(available=F("available") + qty)


def _ordered(lines: Iterable[StockLine]) -> List[StockLine]:
    # Fixed lock order across concurrent checkouts
    return sorted(lines, key=lambda ln: (str(ln.product_id), _norm_variant(ln.variant)))


def debit_many(lines: Iterable[StockLine]) -> None:
    """
    Debit every line or none.

    Compensating credits are issued for lines already debited when a later
    line fails; the original error is re-raised.
    """
    done: List[StockLine] = []
    try:
        for line in _ordered(lines):
            debit(line.product_id, line.variant, line.quantity)
            done.append(line)
    except Exception:
        if done:
            logger.warning(
                "Compensating partial stock reservation",
                extra={"lines": len(done)},
            )
        for line in reversed(done):
            credit(line.product_id, line.variant, line.quantity)
        raise


def credit_many(lines: Iterable[StockLine]) -> None:
    for line in _ordered(lines):
        credit(line.product_id, line.variant, line.quantity)

# payments/services/refunds.py

"""
REFUNDS

refund_order(order_id, amount=None):
- order payment status must be COMPLETED (InvalidStateError otherwise,
  payment history untouched)
- full refund by default; a partial amount must be > 0 and <= amount paid
- gateway refund first; only a confirmed refund moves the order to REFUNDED
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from orders.models import Order, PaymentStatus
from orders.services.exceptions import InvalidStateError, ValidationError
from orders.services.order_repository import get_order, transition_payment_status
from orders.services.pricing import money
from payments.services.gateway import RefundRecord, get_gateway
from tenants.services.tenant_config import get_payment_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefundOutcome:
    order: Order
    refund: RefundRecord


def refund_order(order_id, *, amount: Optional[Decimal] = None, actor: str = "system") -> RefundOutcome:
    order = get_order(order_id)

    if order.payment_status != PaymentStatus.COMPLETED:
        raise InvalidStateError(
            f"Only completed payments can be refunded (payment status is {order.payment_status})"
        )
    if not order.provider_payment_id:
        raise InvalidStateError("Order has no gateway payment to refund")

    paid = money(order.last_synced_amount if order.last_synced_amount is not None else order.total)
    if amount is not None:
        amount = money(amount)
        if amount <= Decimal("0.00"):
            raise ValidationError("Refund amount must be greater than zero")
        if amount > paid:
            raise ValidationError(f"Refund amount cannot exceed the amount paid ({paid})")

    config = get_payment_config(order.store_id)
    refund = get_gateway().refund(order.provider_payment_id, amount, config)

    partial = amount is not None and amount < paid
    note = f"Refund {refund.id}" + (" (partial)" if partial else "")
    result = transition_payment_status(
        order.id,
        PaymentStatus.REFUNDED,
        provider_transaction_id=refund.id,
        amount=refund.amount,
        note=note,
        actor=actor,
    )

    logger.info(
        "Order refunded",
        extra={"order_id": str(order.id), "refund_id": refund.id, "amount": str(refund.amount)},
    )
    return RefundOutcome(order=result.order, refund=refund)

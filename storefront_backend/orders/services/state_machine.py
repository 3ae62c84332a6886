# orders/services/state_machine.py

"""
ORDER STATE MACHINES

Two explicit, independent machines:

Fulfillment (OrderStatus)
  PENDING    -> PROCESSING | CANCELLED
  PROCESSING -> SHIPPED | CANCELLED
  SHIPPED    -> DELIVERED | CANCELLED
  DELIVERED, CANCELLED: terminal

Money (PaymentStatus)
  PENDING    -> PROCESSING | COMPLETED | FAILED
  PROCESSING -> COMPLETED | FAILED
  FAILED     -> PENDING | PROCESSING | COMPLETED   (buyer retried)
  COMPLETED  -> REFUNDED
  REFUNDED: terminal

Coupling policy (the ONLY place payment drives fulfillment):
- With ORDERS["AUTO_PROCESS_ON_PAYMENT"] enabled, a payment transition into
  COMPLETED advances a PENDING order to PROCESSING.
- Nothing else couples the axes.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, Optional

from django.conf import settings

from orders.models import OrderStatus, PaymentStatus

ORDER_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

PAYMENT_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    PaymentStatus.PENDING: frozenset(
        {PaymentStatus.PROCESSING, PaymentStatus.COMPLETED, PaymentStatus.FAILED}
    ),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset(
        {PaymentStatus.PENDING, PaymentStatus.PROCESSING, PaymentStatus.COMPLETED}
    ),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}

TERMINAL_ORDER_STATUSES = frozenset(s for s, nxt in ORDER_TRANSITIONS.items() if not nxt)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_ORDER_STATUSES


def can_transition_order(current: str, new: str) -> bool:
    return new in ORDER_TRANSITIONS.get(current, frozenset())


def can_transition_payment(current: str, new: str) -> bool:
    return new in PAYMENT_TRANSITIONS.get(current, frozenset())


def coupled_order_status(
    *,
    previous_payment: str,
    new_payment: str,
    order_status: str,
) -> Optional[str]:
    """
    Fulfillment status implied by a payment transition, or None.
    """
    cfg = getattr(settings, "ORDERS", {}) or {}
    if not cfg.get("AUTO_PROCESS_ON_PAYMENT", False):
        return None

    if (
        new_payment == PaymentStatus.COMPLETED
        and previous_payment != PaymentStatus.COMPLETED
        and order_status == OrderStatus.PENDING
    ):
        return OrderStatus.PROCESSING
    return None

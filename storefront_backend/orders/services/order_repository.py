# orders/services/order_repository.py

"""
ORDER REPOSITORY

The only writer of Order rows.

HARD RULES:
- Every mutation is a compare-and-set on `version`:
    UPDATE order SET ..., version = version + 1 WHERE id = ? AND version = ?
  A losing writer reloads and retries (ORDERS["CONFLICT_RETRIES"]), then
  surfaces ConcurrencyConflictError.
- History rows are appended exactly once per accepted transition.
- Cancel restocks every line exactly once. Re-cancelling is a no-op.
- transition_payment_status() is the webhook idempotency boundary:
  equal status -> no-op, unreachable status -> stale, dropped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from catalog.services.stock_ledger import StockLine, credit_many
from orders.models import (
    Order,
    OrderItem,
    OrderNotification,
    OrderStatus,
    OrderStatusHistory,
    PaymentHistory,
    PaymentStatus,
)
from orders.services import notifications
from orders.services.exceptions import (
    ConcurrencyConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from orders.services.pricing import Totals
from orders.services.state_machine import (
    can_transition_order,
    can_transition_payment,
    coupled_order_status,
)

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class _StaleWrite(Exception):
    """Internal: version check lost; the atomic block rolls back and we retry."""


# ============================================================
# DRAFT / RESULTS
# ============================================================

@dataclass(frozen=True)
class DraftLine:
    product_id: object
    product_name: str
    variant: str
    quantity: int
    unit_price: Decimal


@dataclass
class OrderDraft:
    store_id: object
    buyer_id: object
    lines: List[DraftLine]
    totals: Totals
    address: dict
    payment_method: str = "mercadopago"
    currency: str = "ARS"
    cart_id: Optional[object] = None
    notes: str = ""
    actor: str = SYSTEM_ACTOR


@dataclass
class TransitionResult:
    order: Order
    changed: bool
    previous: str = ""
    stale: bool = False
    side_effects: List[str] = field(default_factory=list)


# ============================================================
# HELPERS
# ============================================================

def actor_label(user) -> str:
    if user is None or not getattr(user, "is_authenticated", False):
        return SYSTEM_ACTOR
    return getattr(user, "email", "") or str(user.pk)


def _max_retries() -> int:
    cfg = getattr(settings, "ORDERS", {}) or {}
    return max(0, int(cfg.get("CONFLICT_RETRIES", 3)))


def _load_order(order_id) -> Order:
    try:
        return Order.objects.select_related("store", "buyer").get(pk=order_id)
    except (Order.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise NotFoundError(f"Order not found: {order_id}")


def get_order(order_id) -> Order:
    return _load_order(order_id)


def _cas_update(order: Order, **fields) -> None:
    """Version-guarded UPDATE; raises _StaleWrite if another writer won."""
    now = timezone.now()
    updated = Order.objects.filter(pk=order.pk, version=order.version).update(
        version=F("version") + 1,
        updated_at=now,
        **fields,
    )
    if updated != 1:
        raise _StaleWrite()

    for name, value in fields.items():
        setattr(order, name, value)
    order.version += 1
    order.updated_at = now


def _stock_lines(order: Order) -> List[StockLine]:
    return [
        StockLine(product_id=i.product_id, variant=i.variant, quantity=int(i.quantity))
        for i in order.items.all()
    ]


def _with_retries(op_name: str, order_id, fn):
    attempts = _max_retries() + 1
    for attempt in range(attempts):
        try:
            with transaction.atomic():
                return fn()
        except _StaleWrite:
            logger.info(
                "Order version conflict, retrying",
                extra={"order_id": str(order_id), "op": op_name, "attempt": attempt + 1},
            )

    logger.warning(
        "Order version conflict, giving up",
        extra={"order_id": str(order_id), "op": op_name, "attempts": attempts},
    )
    raise ConcurrencyConflictError(
        "The order was modified concurrently. Reload and retry.",
        order_id=str(order_id),
    )


# ============================================================
# CREATE
# ============================================================

@transaction.atomic
def create(draft: OrderDraft) -> Order:
    """Persist a PENDING/PENDING order with its lines and initial history."""
    if not draft.lines:
        raise ValidationError("Order must contain at least one item")

    t = draft.totals
    if t.total != t.subtotal + t.tax + t.shipping_cost - t.discount or t.total < 0:
        raise ValidationError("Order totals are inconsistent")

    address = draft.address or {}
    order = Order.objects.create(
        store_id=draft.store_id,
        buyer_id=draft.buyer_id,
        cart_id=draft.cart_id,
        status=OrderStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
        payment_method=draft.payment_method,
        currency=draft.currency,
        subtotal=t.subtotal,
        tax=t.tax,
        shipping_cost=t.shipping_cost,
        discount=t.discount,
        total=t.total,
        recipient_name=address.get("recipient_name", ""),
        line1=address.get("line1", ""),
        city=address.get("city", ""),
        state=address.get("state", "") or "",
        postal_code=address.get("postal_code", ""),
        country=address.get("country", "") or "AR",
        phone=address.get("phone", ""),
        notes=draft.notes or "",
    )

    OrderItem.objects.bulk_create(
        [
            OrderItem(
                order=order,
                position=idx,
                product_id=line.product_id,
                product_name=line.product_name,
                variant=line.variant,
                quantity=line.quantity,
                unit_price=line.unit_price,
                line_subtotal=Decimal(line.quantity) * line.unit_price,
            )
            for idx, line in enumerate(draft.lines)
        ]
    )

    OrderStatusHistory.objects.create(
        order=order,
        status=OrderStatus.PENDING,
        actor=draft.actor,
        note="Order created",
    )
    PaymentHistory.objects.create(
        order=order,
        payment_status=PaymentStatus.PENDING,
        amount=t.total,
        note="Order created",
    )

    logger.info(
        "Order created",
        extra={"order_id": str(order.id), "order_code": order.order_code, "total": str(order.total)},
    )
    return order


# ============================================================
# FULFILLMENT AXIS
# ============================================================

def transition_status(order_id, new_status, *, actor: str = SYSTEM_ACTOR, note: str = "") -> TransitionResult:
    """
    Move the fulfillment axis.

    - same status: no-op (no history, no stock movement)
    - not allowed by the table: InvalidStateError
    - into CANCELLED: credits every line exactly once
    - into DELIVERED: stamps delivered_at
    """
    if new_status not in OrderStatus.values:
        raise ValidationError(f"Unknown order status: {new_status}")

    def _apply():
        order = _load_order(order_id)
        previous = order.status

        if previous == new_status:
            return TransitionResult(order=order, changed=False, previous=previous)

        if not can_transition_order(previous, new_status):
            raise InvalidStateError(
                f"Cannot change order status from {previous} to {new_status}",
                current=previous,
                requested=new_status,
            )

        fields = {"status": new_status}
        if new_status == OrderStatus.DELIVERED:
            fields["delivered_at"] = timezone.now()

        _cas_update(order, **fields)

        effects = []
        if new_status == OrderStatus.CANCELLED:
            credit_many(_stock_lines(order))
            effects.append("restocked")

        OrderStatusHistory.objects.create(
            order=order,
            status=new_status,
            actor=actor or SYSTEM_ACTOR,
            note=note or "",
        )

        notifications.enqueue(
            order,
            OrderNotification.KIND_STATUS_CHANGED,
            getattr(order.buyer, "email", ""),
            previous_status=previous,
        )

        logger.info(
            "Order status changed",
            extra={"order_id": str(order.id), "from": previous, "to": new_status, "actor": actor},
        )
        return TransitionResult(order=order, changed=True, previous=previous, side_effects=effects)

    return _with_retries("transition_status", order_id, _apply)


# ============================================================
# MONEY AXIS
# ============================================================

def transition_payment_status(
    order_id,
    new_status,
    *,
    provider_transaction_id: str = "",
    amount=None,
    note: str = "",
    force: bool = False,
    actor: str = SYSTEM_ACTOR,
    sync_fields: Optional[dict] = None,
) -> TransitionResult:
    """
    Move the money axis (compare-and-apply).

    - same status: no-op
    - unreachable from current status: stale, dropped (unless force=True)
    - accepted: one PaymentHistory row; sync_fields (provider data) written
      in the same versioned UPDATE; coupling policy may advance fulfillment
    """
    if new_status not in PaymentStatus.values:
        raise ValidationError(f"Unknown payment status: {new_status}")

    def _apply():
        order = _load_order(order_id)
        previous = order.payment_status

        if previous == new_status:
            return TransitionResult(order=order, changed=False, previous=previous)

        if not force and not can_transition_payment(previous, new_status):
            logger.info(
                "Stale payment status dropped",
                extra={"order_id": str(order.id), "current": previous, "reported": new_status},
            )
            return TransitionResult(order=order, changed=False, previous=previous, stale=True)

        fields = dict(sync_fields or {})
        fields["payment_status"] = new_status
        if new_status == PaymentStatus.COMPLETED and not order.paid_at:
            fields["paid_at"] = timezone.now()

        coupled = coupled_order_status(
            previous_payment=previous,
            new_payment=new_status,
            order_status=order.status,
        )
        if coupled:
            fields["status"] = coupled

        _cas_update(order, **fields)

        PaymentHistory.objects.create(
            order=order,
            payment_status=new_status,
            amount=amount,
            provider_transaction_id=provider_transaction_id or "",
            note=note or "",
        )

        effects = []
        if coupled:
            OrderStatusHistory.objects.create(
                order=order,
                status=coupled,
                actor=SYSTEM_ACTOR,
                note="Advanced by completed payment",
            )
            effects.append(f"status:{coupled}")

        logger.info(
            "Payment status changed",
            extra={
                "order_id": str(order.id),
                "from": previous,
                "to": new_status,
                "actor": actor,
                "forced": bool(force),
            },
        )
        return TransitionResult(order=order, changed=True, previous=previous, side_effects=effects)

    return _with_retries("transition_payment_status", order_id, _apply)


def update_payment_reference(order_id, **fields) -> Order:
    """Versioned write of gateway reference fields (intent id, redirect url...)."""
    allowed = {
        "provider_intent_id",
        "external_reference",
        "payment_redirect_url",
        "provider_payment_id",
        "provider_status",
        "provider_status_detail",
    }
    unknown = set(fields) - allowed
    if unknown:
        raise ValueError(f"Not a payment reference field: {sorted(unknown)[0]}")

    def _apply():
        order = _load_order(order_id)
        _cas_update(order, **fields)
        return order

    return _with_retries("update_payment_reference", order_id, _apply)


# ============================================================
# PRIVILEGED DELETE
# ============================================================

def delete(order_id, *, actor: str = SYSTEM_ACTOR) -> bool:
    """
    Hard delete. Restocks every line first unless the order is CANCELLED
    (cancel already returned the stock).
    """

    def _apply():
        order = _load_order(order_id)
        restocked = False
        if order.status != OrderStatus.CANCELLED:
            credit_many(_stock_lines(order))
            restocked = True

        deleted, _ = Order.objects.filter(pk=order.pk, version=order.version).delete()
        if not deleted:
            raise _StaleWrite()

        logger.info(
            "Order deleted",
            extra={
                "order_id": str(order_id),
                "order_code": order.order_code,
                "restocked": restocked,
                "actor": actor,
            },
        )
        return restocked

    return _with_retries("delete", order_id, _apply)

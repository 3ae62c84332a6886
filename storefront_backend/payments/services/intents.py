# payments/services/intents.py

"""
PAYMENT INTENTS

issue_intent(order): create a gateway intent for an order and store its
reference (intent id, ORDER-<id>, redirect url) on the order.

create_intent_for_order(): the POST /payments/intent path, with guards:
- caller owns the order
- the order's payment method routes through the gateway
- payment is not already COMPLETED (or REFUNDED), order is not CANCELLED
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from django.conf import settings

from orders.models import Order, OrderStatus, PaymentStatus
from orders.services.exceptions import InvalidStateError, PermissionDeniedError
from orders.services.order_repository import get_order, update_payment_reference
from payments.services.gateway import PaymentIntent, build_external_reference, get_gateway
from tenants.services.tenant_config import get_payment_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedIntent:
    order: Order
    intent: PaymentIntent
    redirect_url: str


def gateway_payment_methods() -> set:
    cfg = getattr(settings, "ORDERS", {}) or {}
    return {str(m).lower() for m in (cfg.get("GATEWAY_PAYMENT_METHODS") or {"mercadopago"})}


def routes_through_gateway(payment_method: str) -> bool:
    return (payment_method or "").strip().lower() in gateway_payment_methods()


def _mode() -> str:
    payments = getattr(settings, "PAYMENTS", {}) or {}
    return str((payments.get("MERCADOPAGO") or {}).get("MODE") or "test").lower()


def issue_intent(order: Order) -> IssuedIntent:
    """
    Raises PaymentConfigError (store not enabled / no credentials) or
    GatewayError (provider failure). The order itself is never rolled back.
    """
    config = get_payment_config(order.store_id)
    intent = get_gateway().create_intent(order, config)
    redirect_url = intent.redirect_for_mode(_mode())

    order = update_payment_reference(
        order.id,
        provider_intent_id=intent.external_id,
        external_reference=intent.external_reference or build_external_reference(order.id),
        payment_redirect_url=redirect_url,
    )
    return IssuedIntent(order=order, intent=intent, redirect_url=redirect_url)


def create_intent_for_order(order_id, *, user) -> IssuedIntent:
    order = get_order(order_id)

    if str(order.buyer_id) != str(getattr(user, "pk", "")):
        raise PermissionDeniedError("Only the buyer can start payment for this order")

    if not routes_through_gateway(order.payment_method):
        raise InvalidStateError(f"Payment method {order.payment_method} does not use the payment gateway")

    if order.status == OrderStatus.CANCELLED:
        raise InvalidStateError("Order is cancelled")

    if order.payment_status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
        raise InvalidStateError("Order is already paid")

    issued = issue_intent(order)
    logger.info(
        "Payment intent (re)created",
        extra={"order_id": str(order.id), "intent_id": issued.intent.external_id},
    )
    return issued

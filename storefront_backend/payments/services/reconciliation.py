# payments/services/reconciliation.py

"""
RECONCILIATION ENGINE (webhook deliveries)

One inbound delivery:
1) validate shape (event type/action + resource id)
   - production: malformed -> 400
   - test mode: logged and acknowledged
   + optional x-signature check when a webhook secret is configured
   + non-payment events are acknowledged and ignored
2) dedup: seen(deliveryKey) -> acknowledge, nothing else
3) fetch truth from the gateway (timeout-bound). Failure -> acknowledge,
   the gateway's retry schedule redelivers
4) resolve ORDER-<id> from the FETCHED record (never from the payload)
5) map + compare-and-apply transition_payment_status (idempotent)
6) notify on a fresh transition into COMPLETED
7) mark seen (only after 5, so early failures can be retried)

Webhook payload fields are never trusted for amount or status.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction

from orders.models import Order, OrderNotification, PaymentStatus
from orders.services import notifications
from orders.services.exceptions import (
    ConcurrencyConflictError,
    GatewayError,
    PaymentConfigError,
)
from orders.services.order_repository import (
    TransitionResult,
    transition_payment_status,
    update_payment_reference,
)
from orders.services.pricing import money
from payments.services.dedup import get_seen_store
from payments.services.gateway import (
    PaymentRecord,
    get_gateway,
    map_provider_status,
    parse_external_reference,
)
from tenants.services.tenant_config import PaymentConfig, get_payment_config

logger = logging.getLogger(__name__)

PAYMENT_EVENT_TYPES = {"payment"}
PAYMENT_ACTIONS = {"payment.created", "payment.updated"}


# ============================================================
# OUTCOME
# ============================================================

@dataclass(frozen=True)
class WebhookOutcome:
    action: str
    http_status: int = 200
    detail: str = ""
    order_id: Optional[str] = None

    @property
    def body(self) -> dict:
        data = {"ok": self.http_status < 400, "action": self.action}
        if self.detail:
            data["detail"] = self.detail
        return data


def _mode() -> str:
    payments = getattr(settings, "PAYMENTS", {}) or {}
    cfg = payments.get("MERCADOPAGO") or {}
    return str(cfg.get("MODE") or "test").lower()


def _is_production() -> bool:
    return _mode() == "production"


# ============================================================
# SHAPE / KEYS / SIGNATURE
# ============================================================

def _header(headers: Mapping, name: str) -> str:
    if not headers:
        return ""
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower()) or headers.get(name.title())
    return str(value or "").strip()


def extract_event(payload) -> tuple[str, str, str]:
    """(type, action, resource_id); empty strings when missing."""
    if not isinstance(payload, Mapping):
        return "", "", ""
    event_type = str(payload.get("type") or payload.get("topic") or "").strip().lower()
    action = str(payload.get("action") or "").strip().lower()

    data = payload.get("data")
    resource_id = ""
    if isinstance(data, Mapping):
        resource_id = str(data.get("id") or "").strip()
    if not resource_id and event_type == "payment" and payload.get("resource"):
        # Legacy IPN shape: resource is the payment id (or its URL)
        resource_id = str(payload.get("resource")).rstrip("/").rsplit("/", 1)[-1].strip()
    return event_type, action, resource_id


def is_payment_event(event_type: str, action: str) -> bool:
    return event_type in PAYMENT_EVENT_TYPES or action in PAYMENT_ACTIONS


def delivery_key(headers: Mapping, payload) -> str:
    """x-request-id header, else the notification id. Empty means no dedup."""
    key = _header(headers, "x-request-id")
    if key:
        return key
    if isinstance(payload, Mapping) and payload.get("id") not in (None, ""):
        return f"notification:{payload.get('id')}"
    return ""


def _parse_signature(header_value: str) -> tuple[str, str]:
    ts, v1 = "", ""
    for part in (header_value or "").split(","):
        k, _, v = part.partition("=")
        k = k.strip().lower()
        if k == "ts":
            ts = v.strip()
        elif k == "v1":
            v1 = v.strip()
    return ts, v1


def verify_signature(*, secret: str, headers: Mapping, resource_id: str) -> bool:
    ts, v1 = _parse_signature(_header(headers, "x-signature"))
    if not ts or not v1:
        return False

    manifest = f"id:{resource_id.lower()};request-id:{_header(headers, 'x-request-id')};ts:{ts};"
    computed = hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(computed, v1)


def _resolve_config(store_hint: str) -> Optional[PaymentConfig]:
    if not store_hint:
        return None
    try:
        return get_payment_config(store_hint)
    except (DjangoValidationError, ValueError, TypeError):
        logger.warning("Webhook store hint could not be resolved", extra={"store_hint": store_hint})
        return None


def _platform_secret() -> str:
    payments = getattr(settings, "PAYMENTS", {}) or {}
    cfg = payments.get("MERCADOPAGO") or {}
    return str(cfg.get("WEBHOOK_SECRET") or "").strip()


# ============================================================
# APPLY
# ============================================================

def _sync_fields(record: PaymentRecord) -> dict:
    return {
        "provider_payment_id": record.id,
        "provider_status": record.status[:64],
        "provider_status_detail": record.status_detail[:128],
        "provider_payment_type": record.type[:64],
        "installments": record.installments,
        "last_synced_amount": record.amount,
    }


def apply_payment_record(order: Order, record: PaymentRecord) -> TransitionResult:
    """
    Steps 5 + 6 for one fetched record. Idempotent: the same record applied
    twice adds at most one history row and one notification.
    """
    new_status = map_provider_status(record.status)

    note = f"Gateway status: {record.status or 'unknown'}"
    if record.status_detail:
        note += f" ({record.status_detail})"

    expected = money(order.total)
    if record.amount is not None and money(record.amount) != expected:
        logger.warning(
            "Payment amount mismatch",
            extra={
                "order_id": str(order.id),
                "paid": str(record.amount),
                "expected": str(expected),
            },
        )
        note += f" | amount mismatch: paid {record.amount}, expected {expected}"

    with transaction.atomic():
        result = transition_payment_status(
            order.id,
            new_status,
            provider_transaction_id=record.id,
            amount=record.amount,
            note=note,
            sync_fields=_sync_fields(record),
        )

        if result.changed and new_status == PaymentStatus.COMPLETED:
            notifications.enqueue(
                result.order,
                OrderNotification.KIND_PAYMENT_CONFIRMATION,
                getattr(result.order.buyer, "email", ""),
                provider_payment_id=record.id,
                amount=record.amount,
            )
        elif not result.changed and not result.stale and not result.order.provider_payment_id:
            # Same status as recorded, but the payment itself was not known yet
            update_payment_reference(
                order.id,
                provider_payment_id=record.id,
                provider_status=record.status[:64],
                provider_status_detail=record.status_detail[:128],
            )

    return result


# ============================================================
# ENTRY POINT
# ============================================================

def handle_delivery(payload, headers: Mapping, query: Optional[Mapping] = None) -> WebhookOutcome:
    query = query or {}
    production = _is_production()

    # 1) shape
    event_type, action, resource_id = extract_event(payload)
    if not (event_type or action) or not resource_id:
        if production:
            logger.warning("Malformed webhook rejected", extra={"event_type": event_type, "action": action})
            return WebhookOutcome("invalid", http_status=400, detail="Malformed notification")
        logger.warning("Malformed webhook accepted (test mode)", extra={"event_type": event_type, "action": action})
        return WebhookOutcome("invalid", detail="Malformed notification (test mode)")

    store_hint = str(query.get("store_id") or "").strip()
    config = _resolve_config(store_hint)

    secret = (config.webhook_secret if config else "") or _platform_secret()
    if secret and not verify_signature(secret=secret, headers=headers, resource_id=resource_id):
        if production:
            logger.warning("Webhook signature rejected", extra={"resource_id": resource_id})
            return WebhookOutcome("invalid_signature", http_status=400, detail="Invalid signature")
        logger.warning("Webhook signature invalid (test mode)", extra={"resource_id": resource_id})

    if not is_payment_event(event_type, action):
        logger.info("Webhook ignored", extra={"event_type": event_type, "action": action})
        return WebhookOutcome("ignored", detail=f"Event {event_type or action} not handled")

    # 2) dedup
    key = delivery_key(headers, payload)
    seen_store = get_seen_store()
    if key and seen_store.seen(key):
        logger.info("Duplicate webhook acknowledged", extra={"delivery_key": key})
        return WebhookOutcome("duplicate")

    # 3) fetch truth
    try:
        record = get_gateway().fetch_payment(resource_id, config)
    except (GatewayError, PaymentConfigError) as exc:
        logger.warning(
            "Payment fetch failed; acknowledging for redelivery",
            extra={"resource_id": resource_id, "error": str(exc)},
        )
        return WebhookOutcome("fetch_failed", detail="Payment lookup deferred")

    # 4) resolve order from the fetched record
    order_id = parse_external_reference(record.external_reference)
    order = (
        Order.objects.select_related("buyer", "store").filter(pk=order_id).first()
        if order_id
        else None
    )
    if order is None:
        logger.warning(
            "Webhook payment has no resolvable order",
            extra={"resource_id": resource_id, "external_reference": record.external_reference},
        )
        return WebhookOutcome("order_not_found", detail="Order not found")

    if config is not None and str(order.store_id) != str(config.store_id):
        logger.warning(
            "Webhook store does not own the order",
            extra={"order_id": str(order.id), "store_hint": store_hint},
        )
        return WebhookOutcome("order_not_found", detail="Order not found")

    # 5 + 6) apply and notify
    try:
        result = apply_payment_record(order, record)
    except ConcurrencyConflictError:
        logger.warning("Webhook apply lost the version race", extra={"order_id": str(order.id)})
        return WebhookOutcome("conflict", detail="Retry later", order_id=str(order.id))

    # 7) mark seen
    seen_store.mark_seen(key)

    if result.changed:
        action_name = "applied"
    elif result.stale:
        action_name = "stale"
    else:
        action_name = "unchanged"

    logger.info(
        "Webhook reconciled",
        extra={
            "order_id": str(order.id),
            "result": action_name,
            "payment_status": result.order.payment_status,
        },
    )
    return WebhookOutcome(action_name, order_id=str(order.id))

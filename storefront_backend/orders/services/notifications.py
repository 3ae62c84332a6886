# orders/services/notifications.py

"""
ORDER NOTIFICATIONS (outbox)

enqueue():
- writes an OrderNotification row inside the caller's transaction
- schedules dispatch with transaction.on_commit (runs only if it commits)

dispatch():
- sends through the Notifier (email)
- never raises: failures are logged and recorded on the row

Pending/failed rows can be re-sent with dispatch_pending()
(`manage.py dispatch_notifications`).
"""

from __future__ import annotations

import logging
from typing import Optional

from django.conf import settings
from django.core.mail import send_mail
from django.db import transaction
from django.utils import timezone

from orders.models import Order, OrderNotification

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 5

_SUBJECTS = {
    OrderNotification.KIND_ORDER_CONFIRMATION: "Order {order_code} received",
    OrderNotification.KIND_ADMIN_NEW_ORDER: "New order {order_code}",
    OrderNotification.KIND_PAYMENT_CONFIRMATION: "Payment confirmed for order {order_code}",
    OrderNotification.KIND_STATUS_CHANGED: "Order {order_code} is now {status}",
}


class EmailNotifier:
    """Notifier.send(kind, recipient, payload) over Django's mail backend."""

    def send(self, kind: str, recipient: str, payload: dict) -> None:
        template = _SUBJECTS.get(kind, "Order {order_code}")
        subject = template.format(
            order_code=payload.get("order_code", ""),
            status=str(payload.get("status", "")).lower(),
        )
        lines = [f"{k}: {v}" for k, v in sorted(payload.items())]
        send_mail(
            subject=subject,
            message="\n".join(lines),
            from_email=getattr(settings, "DEFAULT_FROM_EMAIL", None),
            recipient_list=[recipient],
            fail_silently=False,
        )


_notifier = EmailNotifier()


def get_notifier():
    return _notifier


def order_payload(order: Order, **extra) -> dict:
    payload = {
        "order_id": str(order.id),
        "order_code": order.order_code,
        "store_id": str(order.store_id),
        "status": order.status,
        "payment_status": order.payment_status,
        "total": str(order.total),
        "currency": order.currency,
    }
    payload.update({k: (str(v) if v is not None else "") for k, v in extra.items()})
    return payload


def enqueue(order: Order, kind: str, recipient: Optional[str], **extra) -> Optional[OrderNotification]:
    recipient = (recipient or "").strip()
    if not recipient:
        logger.info(
            "Notification skipped (no recipient)",
            extra={"order_id": str(order.id), "kind": kind},
        )
        return None

    row = OrderNotification.objects.create(
        order=order,
        kind=kind,
        recipient=recipient,
        payload=order_payload(order, **extra),
    )
    transaction.on_commit(lambda: dispatch(row.pk))
    return row


def dispatch(notification_id) -> bool:
    row = OrderNotification.objects.filter(pk=notification_id).first()
    if row is None or row.status == OrderNotification.STATUS_SENT:
        return False

    row.attempts += 1
    try:
        get_notifier().send(row.kind, row.recipient, row.payload)
    except Exception as exc:
        # Boundary: delivery problems never reach order processing.
        logger.warning(
            "Notification delivery failed",
            extra={"notification_id": row.pk, "kind": row.kind, "error": str(exc)},
        )
        row.status = OrderNotification.STATUS_FAILED
        row.last_error = str(exc)[:2000]
        row.save(update_fields=["attempts", "status", "last_error"])
        return False

    row.status = OrderNotification.STATUS_SENT
    row.sent_at = timezone.now()
    row.last_error = ""
    row.save(update_fields=["attempts", "status", "sent_at", "last_error"])
    return True


def dispatch_pending(*, limit: int = 100) -> int:
    qs = OrderNotification.objects.filter(
        status__in=[OrderNotification.STATUS_PENDING, OrderNotification.STATUS_FAILED],
        attempts__lt=MAX_ATTEMPTS,
    ).order_by("created_at", "id")[:limit]

    sent = 0
    for row_id in list(qs.values_list("id", flat=True)):
        if dispatch(row_id):
            sent += 1
    return sent

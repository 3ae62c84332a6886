# orders/models/notification.py

from django.db import models


class OrderNotification(models.Model):
    """
    Notification outbox row.

    Written inside the transaction that produced the event; dispatched only
    after that transaction commits. Delivery failures are recorded here and
    never propagate back into order processing.
    """

    KIND_ORDER_CONFIRMATION = "order_confirmation"
    KIND_ADMIN_NEW_ORDER = "admin_new_order"
    KIND_PAYMENT_CONFIRMATION = "payment_confirmation"
    KIND_STATUS_CHANGED = "order_status_changed"

    KIND_CHOICES = [
        (KIND_ORDER_CONFIRMATION, "Order confirmation"),
        (KIND_ADMIN_NEW_ORDER, "New order (store admin)"),
        (KIND_PAYMENT_CONFIRMATION, "Payment confirmation"),
        (KIND_STATUS_CHANGED, "Order status changed"),
    ]

    STATUS_PENDING = "pending"
    STATUS_SENT = "sent"
    STATUS_FAILED = "failed"

    STATUS_CHOICES = [
        (STATUS_PENDING, "Pending"),
        (STATUS_SENT, "Sent"),
        (STATUS_FAILED, "Failed"),
    ]

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="notifications",
    )
    kind = models.CharField(max_length=32, choices=KIND_CHOICES)
    recipient = models.CharField(max_length=255, blank=True, default="")
    payload = models.JSONField(default=dict, blank=True)

    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_PENDING)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="notif_status_created_idx"),
        ]

    def __str__(self):
        return f"{self.kind} -> {self.recipient or '-'} [{self.status}]"

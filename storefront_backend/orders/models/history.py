# orders/models/history.py

"""
APPEND-ONLY ORDER HISTORY

- OrderStatusHistory: one row per accepted fulfillment transition
- PaymentHistory: one row per accepted payment transition

Rows are written only by the order repository and never updated or deleted
(other than by cascade when a privileged hard delete removes the order).
"""

from django.db import models

from .order import OrderStatus, PaymentStatus


class _AppendOnlyMixin:
    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise RuntimeError(f"{self.__class__.__name__} rows are append-only")
        super().save(*args, **kwargs)


class OrderStatusHistory(_AppendOnlyMixin, models.Model):
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    status = models.CharField(max_length=16, choices=OrderStatus.choices)
    actor = models.CharField(max_length=255, default="system")
    note = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]

    def __str__(self):
        return f"{self.order_id} -> {self.status} by {self.actor}"


class PaymentHistory(_AppendOnlyMixin, models.Model):
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="payment_history",
    )
    payment_status = models.CharField(max_length=16, choices=PaymentStatus.choices)
    amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    provider_transaction_id = models.CharField(max_length=128, blank=True, default="")
    note = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name_plural = "payment history"

    def __str__(self):
        return f"{self.order_id} -> {self.payment_status} ({self.amount})"

# orders/models/order.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PROCESSING = "PROCESSING", "Processing"
    SHIPPED = "SHIPPED", "Shipped"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PROCESSING = "PROCESSING", "Processing"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"
    REFUNDED = "REFUNDED", "Refunded"


def generate_order_code() -> str:
    prefix = timezone.now().strftime("ORD%Y%m%d")
    return f"{prefix}-{uuid.uuid4().hex[:8].upper()}"


class Order(models.Model):
    """
    Storefront order (the aggregate root).

    Two independent axes:
    - status: fulfillment (PENDING -> PROCESSING -> SHIPPED -> DELIVERED, or CANCELLED)
    - payment_status: money (PENDING -> PROCESSING -> COMPLETED | FAILED, COMPLETED -> REFUNDED)

    Key rules:
    - Money fields are server authoritative:
      total = subtotal + tax + shipping_cost - discount, never negative
    - Every write goes through the order repository, which bumps `version`
      with a compare-and-set UPDATE
    - History rows are append-only
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    order_code = models.CharField(
        max_length=64,
        unique=True,
        blank=True,
        help_text="System-generated public order code",
    )

    store = models.ForeignKey(
        "tenants.Store",
        on_delete=models.PROTECT,
        related_name="orders",
    )
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    cart = models.ForeignKey(
        "carts.Cart",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )

    status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.PENDING)
    payment_status = models.CharField(
        max_length=16,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    payment_method = models.CharField(max_length=32, default="mercadopago")

    # Money fields (server authoritative)
    currency = models.CharField(max_length=3, default="ARS")
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    # Shipping address
    recipient_name = models.CharField(max_length=120)
    line1 = models.CharField(max_length=255)
    city = models.CharField(max_length=120)
    state = models.CharField(max_length=120, blank=True, default="")
    postal_code = models.CharField(max_length=20)
    country = models.CharField(max_length=2, default="AR")
    phone = models.CharField(max_length=40)

    # Payment transaction data (gateway)
    provider_intent_id = models.CharField(max_length=128, blank=True, default="", db_index=True)
    provider_payment_id = models.CharField(max_length=128, blank=True, default="", db_index=True)
    provider_status = models.CharField(max_length=64, blank=True, default="")
    provider_status_detail = models.CharField(max_length=128, blank=True, default="")
    provider_payment_type = models.CharField(max_length=64, blank=True, default="")
    external_reference = models.CharField(max_length=128, blank=True, default="")
    installments = models.PositiveSmallIntegerField(null=True, blank=True)
    last_synced_amount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    payment_redirect_url = models.URLField(max_length=500, blank=True, default="")
    paid_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True, default="")

    version = models.PositiveIntegerField(default=1)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["store", "created_at"], name="order_store_created_idx"),
            models.Index(fields=["store", "status"], name="order_store_status_idx"),
            models.Index(fields=["buyer", "created_at"], name="order_buyer_created_idx"),
            models.Index(fields=["payment_status"], name="order_payment_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(condition=Q(total__gte=Decimal("0.00")), name="order_total_nonnegative"),
            models.CheckConstraint(condition=Q(discount__gte=Decimal("0.00")), name="order_discount_nonnegative"),
        ]

    def save(self, *args, **kwargs):
        if not self.order_code:
            self.order_code = generate_order_code()
        super().save(*args, **kwargs)

    @property
    def expected_total(self) -> Decimal:
        return (self.subtotal or 0) + (self.tax or 0) + (self.shipping_cost or 0) - (self.discount or 0)

    @property
    def shipping_address(self) -> dict:
        return {
            "recipient_name": self.recipient_name,
            "line1": self.line1,
            "city": self.city,
            "state": self.state,
            "postal_code": self.postal_code,
            "country": self.country,
            "phone": self.phone,
        }

    def __str__(self):
        return f"{self.order_code} | {self.total} | {self.status}/{self.payment_status}"

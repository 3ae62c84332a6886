# catalog/models/product.py

import uuid

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from decimal import Decimal


class Product(models.Model):
    """
    A sellable, store-scoped product.

    PRICE MODEL:
    - unit_price is the server-trusted selling price used at checkout
    - floor_price is the lowest price a privileged override may set (optional)

    STOCK MODEL:
    - Product itself does NOT store stock
    - Stock lives in StockEntry, one row per (product, variant)
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    store = models.ForeignKey(
        "tenants.Store",
        on_delete=models.CASCADE,
        related_name="products",
    )

    sku = models.CharField(max_length=128, db_index=True)
    name = models.CharField(max_length=255, db_index=True)

    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.00"))],
    )
    floor_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        validators=[MinValueValidator(Decimal("0.00"))],
    )

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["store", "sku"], name="uniq_product_sku_per_store"),
        ]

    def clean(self):
        if self.floor_price is not None and self.unit_price is not None:
            if self.floor_price > self.unit_price:
                raise ValidationError({"floor_price": "Floor price cannot exceed unit price"})

    @property
    def price_lower_bound(self) -> Decimal:
        return self.floor_price if self.floor_price is not None else self.unit_price

    def __str__(self):
        return f"{self.name} ({self.sku})"

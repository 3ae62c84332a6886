# catalog/models/stock_entry.py

from django.db import models
from django.db.models import Q


class StockEntry(models.Model):
    """
    Available quantity for one (product, variant).

    variant is a free-form descriptor such as "size=M;color=black";
    the empty string is the base product.

    HARD RULE: available never goes negative. Only the stock ledger
    mutates it, through guarded conditional updates.
    """

    product = models.ForeignKey(
        "catalog.Product",
        on_delete=models.CASCADE,
        related_name="stock_entries",
    )
    variant = models.CharField(max_length=255, blank=True, default="")

    available = models.PositiveIntegerField(default=0)

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["product", "variant"], name="uniq_stock_product_variant"),
            models.CheckConstraint(condition=Q(available__gte=0), name="stock_available_non_negative"),
        ]

    def __str__(self):
        v = self.variant or "base"
        return f"{self.product_id} [{v}] = {self.available}"

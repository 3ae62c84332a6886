"""
PATH: carts/models/cart.py

CART MODEL

Rules:
- One active cart per buyer per store.
- Holds no prices: checkout prices lines against the catalog.
- Converted into an Order at checkout, then cleared.
"""

import uuid

from django.conf import settings
from django.db import models


class Cart(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    store = models.ForeignKey(
        "tenants.Store",
        on_delete=models.CASCADE,
        related_name="carts",
    )

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="carts",
    )

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["buyer", "store"],
                condition=models.Q(is_active=True),
                name="one_active_cart_per_buyer_per_store",
            )
        ]

    @property
    def item_count(self) -> int:
        return sum(int(i.quantity) for i in self.items.all())

    def clear(self):
        self.items.all().delete()

    def __str__(self):
        return f"Cart {self.id} | {self.buyer_id} @ {self.store_id}"

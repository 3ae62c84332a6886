# carts/models/cart_item.py

import uuid

from django.core.validators import MinValueValidator
from django.db import models


class CartItem(models.Model):
    """
    One (product, variant, quantity) line in a cart.

    RULES:
    - One line per (product, variant) per cart
    - Quantity must be > 0
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    cart = models.ForeignKey(
        "carts.Cart",
        on_delete=models.CASCADE,
        related_name="items",
    )

    product = models.ForeignKey(
        "catalog.Product",
        on_delete=models.CASCADE,
        related_name="cart_items",
    )
    variant = models.CharField(max_length=255, blank=True, default="")

    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["cart", "product", "variant"],
                name="uniq_cart_line_product_variant",
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="cart_item_quantity_positive",
            ),
        ]

    def __str__(self):
        return f"{self.product_id} [{self.variant or 'base'}] x {self.quantity}"

# carts/services/cart_service.py

"""
CART SERVICE

- get_active_cart(): one active cart per (buyer, store), created lazily
- add_item(): merge quantities per (product, variant); same-store products only
- clear(): empty the cart after checkout
"""

from __future__ import annotations

from django.db import transaction
from django.db.models import F

from carts.models import Cart, CartItem
from catalog.services.catalog import get_product
from orders.services.exceptions import ValidationError


def get_active_cart(*, buyer, store_id) -> Cart:
    cart, _ = Cart.objects.get_or_create(buyer=buyer, store_id=store_id, is_active=True)
    return cart


@transaction.atomic
def add_item(*, cart: Cart, product_id, variant: str = "", quantity: int = 1) -> CartItem:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("quantity must be a whole integer unit >= 1")

    product = get_product(product_id)
    if str(product.store_id) != str(cart.store_id):
        raise ValidationError("Product belongs to a different store")
    if not product.is_active:
        raise ValidationError(f"Product is not available: {product.name}")

    variant = (variant or "").strip()
    item, created = CartItem.objects.select_for_update().get_or_create(
        cart=cart,
        product=product,
        variant=variant,
        defaults={"quantity": quantity},
    )
    if not created:
        CartItem.objects.filter(pk=item.pk).update(quantity=F("quantity") + quantity)
        item.refresh_from_db(fields=["quantity"])
    return item


def clear(cart: Cart) -> None:
    cart.clear()

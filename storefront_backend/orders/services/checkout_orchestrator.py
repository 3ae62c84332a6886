# orders/services/checkout_orchestrator.py

"""
CHECKOUT ORCHESTRATOR (APPLICATION SERVICE)

Purpose:
- Turn a cart (or explicit line items) into a reserved, persisted order.
- Optionally create a payment intent for gateway-routed payment methods.

Hard rules:
- Unit prices come from the catalog. A privileged override may set a price,
  but never below the product's floor (or its list price without a floor).
- Every line must belong to the checkout store.
- Stock is reserved all-or-nothing BEFORE the order row exists.
- Reservation + order + outbox rows + cart clear commit together.
- The gateway call happens AFTER commit: a gateway failure leaves the order
  intact with no payment reference and is reported back to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from django.db import transaction

from carts.models import Cart
from carts.services.cart_service import clear as clear_cart
from catalog.services.catalog import get_products
from catalog.services.stock_ledger import StockLine, debit_many
from orders.models import Order, OrderNotification
from orders.services import notifications
from orders.services.exceptions import (
    GatewayError,
    NotFoundError,
    PaymentConfigError,
    StorefrontError,
    ValidationError,
)
from orders.services.order_repository import DraftLine, OrderDraft, actor_label, create
from orders.services.pricing import ZERO, compute_totals, money
from payments.services.gateway import PaymentIntent
from payments.services.intents import issue_intent, routes_through_gateway
from tenants.models import Store
from tenants.services.tenant_config import get_business_config, get_payment_config

logger = logging.getLogger(__name__)

OFFLINE_PAYMENT_METHODS = {"cash_on_delivery", "bank_transfer"}

REQUIRED_ADDRESS_FIELDS = ("recipient_name", "line1", "city", "postal_code", "phone")


@dataclass(frozen=True)
class CheckoutLine:
    product_id: object
    quantity: int
    variant: str = ""
    unit_price: Optional[Decimal] = None


@dataclass
class CheckoutRequest:
    buyer: object
    store_id: object
    address: dict
    payment_method: str = "mercadopago"
    lines: Optional[List[CheckoutLine]] = None
    discount: Decimal = ZERO
    notes: str = ""
    privileged: bool = False


@dataclass
class CheckoutResult:
    order: Order
    intent: Optional[PaymentIntent] = None
    redirect_url: str = ""
    payment_error: Optional[StorefrontError] = None
    warnings: List[str] = field(default_factory=list)


def _normalize_payment_method(method: Optional[str]) -> str:
    m = (method or "mercadopago").strip().lower()
    if not (routes_through_gateway(m) or m in OFFLINE_PAYMENT_METHODS):
        raise ValidationError(f"Unsupported payment method: {m}")
    return m


def _validate_address(address) -> dict:
    if not isinstance(address, dict):
        raise ValidationError("Shipping address is required")
    clean = {k: str(address.get(k) or "").strip() for k in REQUIRED_ADDRESS_FIELDS}
    missing = [k for k, v in clean.items() if not v]
    if missing:
        raise ValidationError(f"Shipping address is missing: {', '.join(missing)}")
    clean["state"] = str(address.get("state") or "").strip()
    clean["country"] = str(address.get("country") or "AR").strip().upper()[:2]
    return clean


def _lines_from_cart(buyer, store_id) -> tuple[Cart, List[CheckoutLine]]:
    cart = (
        Cart.objects.filter(buyer=buyer, store_id=store_id, is_active=True)
        .prefetch_related("items")
        .first()
    )
    if cart is None or not cart.items.exists():
        raise ValidationError("Cart is empty")
    lines = [
        CheckoutLine(product_id=i.product_id, variant=i.variant, quantity=int(i.quantity))
        for i in cart.items.all()
    ]
    return cart, lines


def _price_lines(req: CheckoutRequest, lines: List[CheckoutLine]) -> List[DraftLine]:
    products = get_products([ln.product_id for ln in lines])
    priced: List[DraftLine] = []

    for ln in lines:
        if isinstance(ln.quantity, bool) or not isinstance(ln.quantity, int) or ln.quantity < 1:
            raise ValidationError("quantity must be a whole integer unit >= 1")

        product = products[str(ln.product_id)]
        if str(product.store_id) != str(req.store_id):
            raise ValidationError(f"Product {product.id} does not belong to this store")
        if not product.is_active:
            raise ValidationError(f"Product is not available: {product.name}")

        unit_price = money(product.unit_price)
        if ln.unit_price is not None:
            if not req.privileged:
                raise ValidationError("Prices are set by the store")
            override = money(ln.unit_price)
            if override < money(product.price_lower_bound):
                raise ValidationError(
                    f"Price for {product.name} cannot be below {money(product.price_lower_bound)}"
                )
            unit_price = override

        priced.append(
            DraftLine(
                product_id=product.id,
                product_name=product.name,
                variant=(ln.variant or "").strip(),
                quantity=ln.quantity,
                unit_price=unit_price,
            )
        )
    return priced


def checkout(req: CheckoutRequest) -> CheckoutResult:
    store = Store.objects.filter(pk=req.store_id, is_active=True).first()
    if store is None:
        raise NotFoundError("Store not found")

    payment_method = _normalize_payment_method(req.payment_method)
    address = _validate_address(req.address)

    discount = money(req.discount)
    if discount != ZERO and not req.privileged:
        raise ValidationError("Discounts can only be applied by store staff")

    use_gateway = routes_through_gateway(payment_method)
    if use_gateway and not get_payment_config(store.id).enabled:
        raise PaymentConfigError("Online payment is not enabled for this store")

    cart = None
    if req.lines is None:
        cart, lines = _lines_from_cart(req.buyer, store.id)
    else:
        lines = list(req.lines)
    if not lines:
        raise ValidationError("Order must contain at least one item")

    priced = _price_lines(req, lines)
    business = get_business_config(store)
    totals = compute_totals(
        [(ln.quantity, ln.unit_price) for ln in priced],
        business,
        discount=discount,
    )

    with transaction.atomic():
        debit_many(
            StockLine(product_id=ln.product_id, variant=ln.variant, quantity=ln.quantity)
            for ln in priced
        )

        order = create(
            OrderDraft(
                store_id=store.id,
                buyer_id=req.buyer.pk,
                cart_id=cart.id if cart else None,
                lines=priced,
                totals=totals,
                address=address,
                payment_method=payment_method,
                currency=business.currency,
                notes=(req.notes or "").strip(),
                actor=actor_label(req.buyer),
            )
        )

        notifications.enqueue(
            order,
            OrderNotification.KIND_ORDER_CONFIRMATION,
            getattr(req.buyer, "email", ""),
        )
        notifications.enqueue(
            order,
            OrderNotification.KIND_ADMIN_NEW_ORDER,
            store.contact_email,
            buyer_email=getattr(req.buyer, "email", ""),
        )

        if cart is not None:
            clear_cart(cart)

    result = CheckoutResult(order=order)
    if not use_gateway:
        return result

    try:
        issued = issue_intent(order)
    except (GatewayError, PaymentConfigError) as exc:
        logger.warning(
            "Payment intent failed after order creation",
            extra={"order_id": str(order.id), "error": str(exc)},
        )
        result.payment_error = exc
        return result

    result.order = issued.order
    result.intent = issued.intent
    result.redirect_url = issued.redirect_url
    return result

# orders/tests/test_checkout.py

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

from django.core import mail
from django.test import TestCase

from carts.models import Cart
from carts.services.cart_service import add_item, get_active_cart
from orders.models import Order, OrderNotification, PaymentStatus
from orders.services import notifications
from orders.services.checkout_orchestrator import CheckoutLine, CheckoutRequest, checkout
from orders.services.exceptions import (
    GatewayError,
    InsufficientStockError,
    NotFoundError,
    PaymentConfigError,
    ValidationError,
)
from orders.tests.helpers import (
    ADDRESS,
    enable_gateway,
    make_product,
    make_store,
    make_user,
    place_order,
    stock_of,
)
from payments.services.gateway import reset_gateway, set_gateway
from payments.tests.fakes import FakeGateway


class CheckoutTestBase(TestCase):
    def setUp(self):
        self.gateway = FakeGateway()
        set_gateway(self.gateway)
        self.addCleanup(reset_gateway)

        self.store = make_store()
        self.other_store = make_store(name="Other Store")
        self.buyer = make_user()
        self.shirt = make_product(self.store, sku="SHIRT", price="10.00", stock=5, variant="M")
        self.mug = make_product(self.store, sku="MUG", price="5.00", stock=5, floor_price="4.00")
        self.foreign = make_product(self.other_store, sku="FOREIGN", price="1.00", stock=5)

    def _request(self, lines=None, **kwargs):
        defaults = {
            "buyer": self.buyer,
            "store_id": self.store.id,
            "address": dict(ADDRESS),
            "payment_method": "cash_on_delivery",
            "lines": lines,
        }
        defaults.update(kwargs)
        return CheckoutRequest(**defaults)


class CheckoutLinesTests(CheckoutTestBase):
    """
    GUARANTEES:
    - prices come from the catalog
    - stock is reserved all-or-nothing
    - every line belongs to the checkout store
    """

    def test_explicit_lines_reserve_stock_and_price_server_side(self):
        result = place_order(self.buyer, self.store, [(self.shirt, 2, "M"), (self.mug, 1)])

        order = result.order
        self.assertEqual(order.total, Decimal("30.50"))
        self.assertEqual(stock_of(self.shirt, "M"), 3)
        self.assertEqual(stock_of(self.mug), 4)
        prices = {i.product_id: i.unit_price for i in order.items.all()}
        self.assertEqual(prices[self.shirt.id], Decimal("10.00"))
        self.assertEqual(prices[self.mug.id], Decimal("5.00"))

    def test_insufficient_stock_creates_nothing(self):
        with self.assertRaises(InsufficientStockError):
            place_order(self.buyer, self.store, [(self.shirt, 1, "M"), (self.mug, 6)])

        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(stock_of(self.shirt, "M"), 5)
        self.assertEqual(stock_of(self.mug), 5)

    def test_n_buyers_for_n_minus_one_units(self):
        lamp = make_product(self.store, sku="LAMP", price="20.00", stock=3)
        buyers = [make_user(f"buyer{i}@example.com") for i in range(4)]

        refused = 0
        for buyer in buyers:
            try:
                place_order(buyer, self.store, [(lamp, 1)])
            except InsufficientStockError:
                refused += 1

        self.assertEqual(refused, 1)
        self.assertEqual(stock_of(lamp), 0)
        self.assertEqual(Order.objects.filter(items__product=lamp).count(), 3)

    def test_cross_store_product_rejected(self):
        with self.assertRaises(ValidationError):
            place_order(self.buyer, self.store, [(self.shirt, 1, "M"), (self.foreign, 1)])

        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(stock_of(self.foreign), 5)
        self.assertEqual(stock_of(self.shirt, "M"), 5)

    def test_inactive_product_rejected(self):
        self.mug.is_active = False
        self.mug.save(update_fields=["is_active"])
        with self.assertRaises(ValidationError):
            place_order(self.buyer, self.store, [(self.mug, 1)])

    def test_unknown_store(self):
        self.store.is_active = False
        self.store.save(update_fields=["is_active"])
        with self.assertRaises(NotFoundError):
            place_order(self.buyer, self.store, [(self.mug, 1)])

    def test_empty_lines_rejected(self):
        with self.assertRaises(ValidationError):
            checkout(self._request(lines=[]))

    def test_missing_address_field_rejected(self):
        address = dict(ADDRESS, postal_code="")
        with self.assertRaises(ValidationError):
            checkout(self._request(lines=[CheckoutLine(product_id=self.mug.id, quantity=1)], address=address))

    def test_unsupported_payment_method(self):
        with self.assertRaises(ValidationError):
            checkout(
                self._request(
                    lines=[CheckoutLine(product_id=self.mug.id, quantity=1)],
                    payment_method="barter",
                )
            )


class PriceOverrideTests(CheckoutTestBase):
    def test_buyer_cannot_set_prices(self):
        with self.assertRaises(ValidationError):
            checkout(
                self._request(
                    lines=[CheckoutLine(product_id=self.mug.id, quantity=1, unit_price=Decimal("0.01"))]
                )
            )
        self.assertEqual(stock_of(self.mug), 5)

    def test_privileged_override_respects_floor(self):
        with self.assertRaises(ValidationError):
            checkout(
                self._request(
                    lines=[CheckoutLine(product_id=self.mug.id, quantity=1, unit_price=Decimal("3.99"))],
                    privileged=True,
                )
            )

        result = checkout(
            self._request(
                lines=[CheckoutLine(product_id=self.mug.id, quantity=1, unit_price=Decimal("4.00"))],
                privileged=True,
            )
        )
        self.assertEqual(result.order.items.get().unit_price, Decimal("4.00"))

    def test_override_without_floor_uses_list_price(self):
        with self.assertRaises(ValidationError):
            checkout(
                self._request(
                    lines=[
                        CheckoutLine(product_id=self.shirt.id, variant="M", quantity=1, unit_price=Decimal("9.99"))
                    ],
                    privileged=True,
                )
            )

    def test_discount_requires_privilege(self):
        line = [CheckoutLine(product_id=self.mug.id, quantity=1)]
        with self.assertRaises(ValidationError):
            checkout(self._request(lines=line, discount=Decimal("1.00")))

        result = checkout(self._request(lines=line, discount=Decimal("1.00"), privileged=True))
        # 5.00 + 0.50 tax + 3.00 shipping - 1.00
        self.assertEqual(result.order.total, Decimal("7.50"))


class CartCheckoutTests(CheckoutTestBase):
    def test_cart_lines_used_and_cart_cleared(self):
        cart = get_active_cart(buyer=self.buyer, store_id=self.store.id)
        add_item(cart=cart, product_id=self.mug.id, quantity=2)
        add_item(cart=cart, product_id=self.mug.id, quantity=1)

        result = checkout(self._request(lines=None))

        self.assertEqual(result.order.items.get().quantity, 3)
        self.assertEqual(result.order.cart_id, cart.id)
        self.assertEqual(stock_of(self.mug), 2)
        self.assertEqual(Cart.objects.get(pk=cart.pk).items.count(), 0)

    def test_empty_cart_rejected(self):
        with self.assertRaises(ValidationError):
            checkout(self._request(lines=None))

    def test_cart_rejects_foreign_product(self):
        cart = get_active_cart(buyer=self.buyer, store_id=self.store.id)
        with self.assertRaises(ValidationError):
            add_item(cart=cart, product_id=self.foreign.id, quantity=1)

    def test_failed_checkout_keeps_cart(self):
        cart = get_active_cart(buyer=self.buyer, store_id=self.store.id)
        add_item(cart=cart, product_id=self.mug.id, quantity=9)

        with self.assertRaises(InsufficientStockError):
            checkout(self._request(lines=None))
        self.assertEqual(cart.items.count(), 1)


class GatewayCheckoutTests(CheckoutTestBase):
    """
    GUARANTEES:
    - gateway checkout needs the store's gateway enabled
    - a gateway failure never rolls back the order
    """

    def _gateway_request(self):
        return self._request(
            lines=[CheckoutLine(product_id=self.mug.id, quantity=1)],
            payment_method="mercadopago",
        )

    def test_disabled_gateway_rejected_before_reserving(self):
        with self.assertRaises(PaymentConfigError):
            checkout(self._gateway_request())
        self.assertEqual(stock_of(self.mug), 5)
        self.assertEqual(Order.objects.count(), 0)

    def test_intent_created_and_recorded(self):
        enable_gateway(self.store)

        result = checkout(self._gateway_request())

        self.assertIsNone(result.payment_error)
        self.assertEqual(result.intent.external_id, "pref-1")
        # test mode redirects to the sandbox checkout
        self.assertEqual(result.redirect_url, "https://sandbox.pay.test/checkout/1")

        order = Order.objects.get(pk=result.order.pk)
        self.assertEqual(order.provider_intent_id, "pref-1")
        self.assertEqual(order.external_reference, f"ORDER-{order.id}")
        self.assertEqual(order.payment_redirect_url, result.redirect_url)
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)

    def test_gateway_failure_keeps_order(self):
        enable_gateway(self.store)
        self.gateway.create_error = GatewayError("provider down")

        result = checkout(self._gateway_request())

        self.assertIsInstance(result.payment_error, GatewayError)
        order = Order.objects.get(pk=result.order.pk)
        self.assertEqual(order.provider_intent_id, "")
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)
        self.assertEqual(stock_of(self.mug), 4)


class CheckoutNotificationTests(CheckoutTestBase):
    def test_buyer_and_store_notified_after_commit(self):
        with self.captureOnCommitCallbacks(execute=True):
            result = place_order(self.buyer, self.store, [(self.mug, 1)])

        kinds = set(
            OrderNotification.objects.filter(order=result.order).values_list("kind", flat=True)
        )
        self.assertEqual(
            kinds,
            {OrderNotification.KIND_ORDER_CONFIRMATION, OrderNotification.KIND_ADMIN_NEW_ORDER},
        )
        self.assertEqual(len(mail.outbox), 2)
        recipients = sorted(m.to[0] for m in mail.outbox)
        self.assertEqual(recipients, sorted([self.buyer.email, self.store.contact_email]))
        self.assertFalse(
            OrderNotification.objects.exclude(status=OrderNotification.STATUS_SENT).exists()
        )

    def test_failed_checkout_sends_nothing(self):
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            with self.assertRaises(InsufficientStockError):
                place_order(self.buyer, self.store, [(self.mug, 50)])
        self.assertEqual(len(callbacks), 0)
        self.assertEqual(len(mail.outbox), 0)

    def test_store_without_contact_email_skips_admin_notice(self):
        self.store.contact_email = ""
        self.store.save(update_fields=["contact_email"])

        result = place_order(self.buyer, self.store, [(self.mug, 1)])
        kinds = list(OrderNotification.objects.filter(order=result.order).values_list("kind", flat=True))
        self.assertEqual(kinds, [OrderNotification.KIND_ORDER_CONFIRMATION])

    def test_delivery_failure_is_recorded_not_raised(self):
        with patch.object(notifications.EmailNotifier, "send", side_effect=OSError("smtp down")):
            with self.captureOnCommitCallbacks(execute=True):
                result = place_order(self.buyer, self.store, [(self.mug, 1)])

        rows = OrderNotification.objects.filter(order=result.order)
        self.assertTrue(all(r.status == OrderNotification.STATUS_FAILED for r in rows))
        self.assertTrue(all(r.attempts == 1 for r in rows))
        self.assertIn("smtp down", rows.first().last_error)

        # Retry once delivery works again
        sent = notifications.dispatch_pending()
        self.assertEqual(sent, 2)
        self.assertEqual(len(mail.outbox), 2)


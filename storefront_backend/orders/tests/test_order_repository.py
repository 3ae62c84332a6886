# orders/tests/test_order_repository.py

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase, override_settings

from orders.models import (
    Order,
    OrderNotification,
    OrderStatus,
    OrderStatusHistory,
    PaymentHistory,
    PaymentStatus,
)
from orders.services import order_repository
from orders.services.exceptions import (
    ConcurrencyConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from orders.tests.helpers import (
    make_product,
    make_store,
    make_user,
    orders_settings,
    place_order,
    stock_of,
)


class OrderRepositoryTestBase(TestCase):
    def setUp(self):
        self.store = make_store()
        self.buyer = make_user()
        self.shirt = make_product(self.store, sku="SHIRT", price="10.00", stock=5, variant="M")
        self.mug = make_product(self.store, sku="MUG", price="5.00", stock=5)

        self.order = place_order(
            self.buyer,
            self.store,
            [(self.shirt, 2, "M"), (self.mug, 1)],
        ).order

    def _stale_loader(self, stale_times):
        """_load_order replacement returning an outdated version `stale_times` times."""
        real = order_repository._load_order
        calls = {"n": 0}

        def loader(order_id):
            order = real(order_id)
            calls["n"] += 1
            if calls["n"] <= stale_times:
                order.version -= 1
            return order

        return loader, calls


class CreateOrderTests(OrderRepositoryTestBase):
    """
    GUARANTEES:
    - orders start PENDING / PENDING at version 1
    - line subtotals and totals are consistent
    - one status + one payment history row on create
    """

    def test_initial_state(self):
        order = Order.objects.get(pk=self.order.pk)
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.payment_status, PaymentStatus.PENDING)
        self.assertEqual(order.version, 1)
        self.assertTrue(order.order_code.startswith("ORD"))

    def test_totals_and_lines(self):
        order = Order.objects.get(pk=self.order.pk)
        # 2 x 10 + 1 x 5 = 25, tax 10% = 2.50, shipping 3.00
        self.assertEqual(order.subtotal, Decimal("25.00"))
        self.assertEqual(order.total, Decimal("30.50"))
        self.assertEqual(order.items.count(), 2)

        subtotal = sum((i.line_subtotal for i in order.items.all()), Decimal("0"))
        self.assertEqual(subtotal, order.subtotal)

    def test_initial_history(self):
        self.assertEqual(OrderStatusHistory.objects.filter(order=self.order).count(), 1)
        payment_rows = PaymentHistory.objects.filter(order=self.order)
        self.assertEqual(payment_rows.count(), 1)
        self.assertEqual(payment_rows.get().amount, Decimal("30.50"))

    def test_get_missing_order(self):
        with self.assertRaises(NotFoundError):
            order_repository.get_order("00000000-0000-0000-0000-000000000000")
        with self.assertRaises(NotFoundError):
            order_repository.get_order("not-a-uuid")


class StatusTransitionTests(OrderRepositoryTestBase):
    def test_forward_transition_appends_history_and_bumps_version(self):
        result = order_repository.transition_status(self.order.id, OrderStatus.PROCESSING, actor="admin@store.test")

        self.assertTrue(result.changed)
        self.assertEqual(result.previous, OrderStatus.PENDING)
        order = Order.objects.get(pk=self.order.pk)
        self.assertEqual(order.status, OrderStatus.PROCESSING)
        self.assertEqual(order.version, 2)

        last = OrderStatusHistory.objects.get(order=order, status=OrderStatus.PROCESSING)
        self.assertEqual(last.status, OrderStatus.PROCESSING)
        self.assertEqual(last.actor, "admin@store.test")

    def test_same_status_is_noop(self):
        result = order_repository.transition_status(self.order.id, OrderStatus.PENDING)
        self.assertFalse(result.changed)
        self.assertEqual(Order.objects.get(pk=self.order.pk).version, 1)
        self.assertEqual(OrderStatusHistory.objects.filter(order=self.order).count(), 1)

    def test_disallowed_transition(self):
        with self.assertRaises(InvalidStateError):
            order_repository.transition_status(self.order.id, OrderStatus.DELIVERED)
        self.assertEqual(Order.objects.get(pk=self.order.pk).status, OrderStatus.PENDING)

    def test_unknown_status(self):
        with self.assertRaises(ValidationError):
            order_repository.transition_status(self.order.id, "LOST")

    def test_delivered_stamps_delivered_at(self):
        for status in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            order_repository.transition_status(self.order.id, status)
        order = Order.objects.get(pk=self.order.pk)
        self.assertIsNotNone(order.delivered_at)

    def test_status_change_enqueues_buyer_notification(self):
        order_repository.transition_status(self.order.id, OrderStatus.PROCESSING)
        self.assertTrue(
            OrderNotification.objects.filter(
                order=self.order,
                kind=OrderNotification.KIND_STATUS_CHANGED,
                recipient=self.buyer.email,
            ).exists()
        )


class CancelTests(OrderRepositoryTestBase):
    """
    GUARANTEES:
    - cancel restocks every line exactly once
    - cancelling again is a no-op
    """

    def test_cancel_restocks_once(self):
        self.assertEqual(stock_of(self.shirt, "M"), 3)
        self.assertEqual(stock_of(self.mug), 4)

        first = order_repository.transition_status(self.order.id, OrderStatus.CANCELLED)
        self.assertTrue(first.changed)
        self.assertIn("restocked", first.side_effects)
        self.assertEqual(stock_of(self.shirt, "M"), 5)
        self.assertEqual(stock_of(self.mug), 5)

        second = order_repository.transition_status(self.order.id, OrderStatus.CANCELLED)
        self.assertFalse(second.changed)
        self.assertEqual(stock_of(self.shirt, "M"), 5)
        self.assertEqual(stock_of(self.mug), 5)

        self.assertEqual(
            OrderStatusHistory.objects.filter(order=self.order, status=OrderStatus.CANCELLED).count(),
            1,
        )

    def test_cancelled_order_cannot_move(self):
        order_repository.transition_status(self.order.id, OrderStatus.CANCELLED)
        with self.assertRaises(InvalidStateError):
            order_repository.transition_status(self.order.id, OrderStatus.PROCESSING)


class PaymentTransitionTests(OrderRepositoryTestBase):
    def test_completed_sets_paid_at_and_history(self):
        result = order_repository.transition_payment_status(
            self.order.id,
            PaymentStatus.COMPLETED,
            provider_transaction_id="pay-1",
            amount=Decimal("30.50"),
        )
        self.assertTrue(result.changed)
        order = Order.objects.get(pk=self.order.pk)
        self.assertEqual(order.payment_status, PaymentStatus.COMPLETED)
        self.assertIsNotNone(order.paid_at)
        self.assertEqual(
            PaymentHistory.objects.filter(order=order, payment_status=PaymentStatus.COMPLETED).count(),
            1,
        )

    def test_same_payment_status_is_noop(self):
        order_repository.transition_payment_status(self.order.id, PaymentStatus.COMPLETED)
        again = order_repository.transition_payment_status(self.order.id, PaymentStatus.COMPLETED)
        self.assertFalse(again.changed)
        self.assertFalse(again.stale)
        self.assertEqual(PaymentHistory.objects.filter(order=self.order).count(), 2)

    def test_unreachable_status_is_stale_and_dropped(self):
        order_repository.transition_payment_status(self.order.id, PaymentStatus.COMPLETED)
        version = Order.objects.get(pk=self.order.pk).version

        result = order_repository.transition_payment_status(self.order.id, PaymentStatus.PENDING)

        self.assertTrue(result.stale)
        self.assertFalse(result.changed)
        order = Order.objects.get(pk=self.order.pk)
        self.assertEqual(order.payment_status, PaymentStatus.COMPLETED)
        self.assertEqual(order.version, version)

    def test_force_overrides_the_table(self):
        order_repository.transition_payment_status(self.order.id, PaymentStatus.COMPLETED)
        result = order_repository.transition_payment_status(
            self.order.id, PaymentStatus.PENDING, force=True, actor="admin@store.test"
        )
        self.assertTrue(result.changed)
        self.assertEqual(Order.objects.get(pk=self.order.pk).payment_status, PaymentStatus.PENDING)

    def test_payment_does_not_touch_fulfillment_without_coupling(self):
        with override_settings(ORDERS=orders_settings(AUTO_PROCESS_ON_PAYMENT=False)):
            order_repository.transition_payment_status(self.order.id, PaymentStatus.COMPLETED)
        self.assertEqual(Order.objects.get(pk=self.order.pk).status, OrderStatus.PENDING)

    def test_coupling_advances_pending_order(self):
        with override_settings(ORDERS=orders_settings(AUTO_PROCESS_ON_PAYMENT=True)):
            result = order_repository.transition_payment_status(self.order.id, PaymentStatus.COMPLETED)

        self.assertIn(f"status:{OrderStatus.PROCESSING}", result.side_effects)
        order = Order.objects.get(pk=self.order.pk)
        self.assertEqual(order.status, OrderStatus.PROCESSING)
        self.assertTrue(
            OrderStatusHistory.objects.filter(order=order, status=OrderStatus.PROCESSING).exists()
        )

    def test_sync_fields_written_with_transition(self):
        order_repository.transition_payment_status(
            self.order.id,
            PaymentStatus.PROCESSING,
            sync_fields={"provider_payment_id": "pay-9", "provider_status": "in_process"},
        )
        order = Order.objects.get(pk=self.order.pk)
        self.assertEqual(order.provider_payment_id, "pay-9")
        self.assertEqual(order.provider_status, "in_process")

    def test_update_payment_reference_rejects_other_fields(self):
        with self.assertRaises(ValueError):
            order_repository.update_payment_reference(self.order.id, total=Decimal("0"))


class ConcurrencyTests(OrderRepositoryTestBase):
    """
    GUARANTEES:
    - a writer holding an outdated version never overwrites
    - it retries with a fresh read, then gives up with ConcurrencyConflictError
    """

    def test_retry_after_one_conflict_succeeds(self):
        loader, calls = self._stale_loader(stale_times=1)
        with patch.object(order_repository, "_load_order", side_effect=loader):
            result = order_repository.transition_status(self.order.id, OrderStatus.PROCESSING)

        self.assertTrue(result.changed)
        self.assertEqual(calls["n"], 2)
        self.assertEqual(Order.objects.get(pk=self.order.pk).version, 2)

    @override_settings(ORDERS=orders_settings(CONFLICT_RETRIES=2))
    def test_conflict_surfaces_after_retries(self):
        loader, calls = self._stale_loader(stale_times=100)
        with patch.object(order_repository, "_load_order", side_effect=loader):
            with self.assertRaises(ConcurrencyConflictError):
                order_repository.transition_status(self.order.id, OrderStatus.CANCELLED)

        self.assertEqual(calls["n"], 3)
        order = Order.objects.get(pk=self.order.pk)
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.version, 1)
        # Lost writes leave no trace
        self.assertEqual(OrderStatusHistory.objects.filter(order=order).count(), 1)
        self.assertEqual(stock_of(self.shirt, "M"), 3)

    def test_payment_conflict_surfaces(self):
        loader, _ = self._stale_loader(stale_times=100)
        with patch.object(order_repository, "_load_order", side_effect=loader):
            with self.assertRaises(ConcurrencyConflictError):
                order_repository.transition_payment_status(self.order.id, PaymentStatus.COMPLETED)
        self.assertEqual(Order.objects.get(pk=self.order.pk).payment_status, PaymentStatus.PENDING)


class DeleteTests(OrderRepositoryTestBase):
    def test_delete_restocks_open_order(self):
        restocked = order_repository.delete(self.order.id, actor="root@platform.test")
        self.assertTrue(restocked)
        self.assertFalse(Order.objects.filter(pk=self.order.pk).exists())
        self.assertEqual(stock_of(self.shirt, "M"), 5)
        self.assertEqual(stock_of(self.mug), 5)

    def test_delete_cancelled_order_does_not_restock_twice(self):
        order_repository.transition_status(self.order.id, OrderStatus.CANCELLED)
        restocked = order_repository.delete(self.order.id)
        self.assertFalse(restocked)
        self.assertEqual(stock_of(self.shirt, "M"), 5)
        self.assertEqual(stock_of(self.mug), 5)

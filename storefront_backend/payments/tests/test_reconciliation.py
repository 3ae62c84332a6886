# payments/tests/test_reconciliation.py

from __future__ import annotations

import hashlib
import hmac
import uuid
from decimal import Decimal
from unittest.mock import patch

from django.core import mail
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework import status
from rest_framework.test import APIClient

from orders.models import (
    Order,
    OrderNotification,
    OrderStatus,
    PaymentHistory,
    PaymentStatus,
)
from orders.services.exceptions import GatewayError, GatewayTimeoutError
from orders.tests.helpers import (
    enable_gateway,
    make_product,
    make_store,
    make_user,
    orders_settings,
    payments_settings,
    place_order,
)
from payments.services.dedup import reset_seen_store
from payments.services.gateway import reset_gateway, set_gateway
from payments.services.reconciliation import delivery_key, extract_event, handle_delivery
from payments.tests.fakes import FakeGateway

WEBHOOK_URL = "/api/payments/webhook/"


def _payload(payment_id="pay-1", *, notification_id=None, event_type="payment", action="payment.updated"):
    body = {"type": event_type, "action": action, "data": {"id": payment_id}}
    if notification_id is not None:
        body["id"] = notification_id
    return body


def _signed_headers(secret, payment_id, request_id, ts="1704900000"):
    manifest = f"id:{payment_id.lower()};request-id:{request_id};ts:{ts};"
    v1 = hmac.new(secret.encode("utf-8"), manifest.encode("utf-8"), hashlib.sha256).hexdigest()
    return {"x-request-id": request_id, "x-signature": f"ts={ts},v1={v1}"}


class ReconciliationTestBase(TestCase):
    def setUp(self):
        self.gateway = FakeGateway()
        set_gateway(self.gateway)
        self.addCleanup(reset_gateway)

        reset_seen_store()
        self.addCleanup(reset_seen_store)

        self.store = make_store()
        enable_gateway(self.store)
        self.buyer = make_user()
        shirt = make_product(self.store, sku="SHIRT", price="10.00", stock=5, variant="M")
        mug = make_product(self.store, sku="MUG", price="5.00", stock=5)

        # 2 x 10 + 5 = 25, tax 2.50, shipping 3.00 -> 30.50
        self.order = place_order(
            self.buyer,
            self.store,
            [(shirt, 2, "M"), (mug, 1)],
            payment_method="mercadopago",
        ).order
        self.query = {"store_id": str(self.store.id)}

    def _deliver(self, payload, headers=None, query=None):
        return handle_delivery(payload, headers or {}, self.query if query is None else query)

    def _reload(self):
        return Order.objects.get(pk=self.order.pk)

    def _confirmations(self):
        return OrderNotification.objects.filter(
            order=self.order, kind=OrderNotification.KIND_PAYMENT_CONFIRMATION
        ).count()


class EventParsingTests(SimpleTestCase):
    def test_extract_current_shape(self):
        self.assertEqual(extract_event(_payload("123")), ("payment", "payment.updated", "123"))

    def test_extract_legacy_resource_shape(self):
        event = extract_event({"topic": "payment", "resource": "https://api.mercadopago.com/v1/payments/987"})
        self.assertEqual(event, ("payment", "", "987"))

    def test_extract_garbage(self):
        self.assertEqual(extract_event("nope"), ("", "", ""))
        self.assertEqual(extract_event({"type": "payment"}), ("payment", "", ""))

    def test_delivery_key_prefers_request_id(self):
        self.assertEqual(delivery_key({"x-request-id": "abc"}, {"id": 5}), "abc")
        self.assertEqual(delivery_key({}, {"id": 5}), "notification:5")
        self.assertEqual(delivery_key({}, {}), "")


class ApprovedPaymentTests(ReconciliationTestBase):
    """
    GUARANTEES:
    - status and amount come from the fetched payment, never the payload
    - a redelivered notification changes nothing and notifies once
    """

    def test_approved_payment_completes_order(self):
        self.gateway.add_payment("pay-1", status="approved", amount="30.50", order_id=self.order.id)

        with self.captureOnCommitCallbacks(execute=True):
            outcome = self._deliver(_payload("pay-1"), {"x-request-id": "req-1"})

        self.assertEqual(outcome.action, "applied")
        self.assertEqual(outcome.http_status, 200)

        order = self._reload()
        self.assertEqual(order.payment_status, PaymentStatus.COMPLETED)
        self.assertEqual(order.provider_payment_id, "pay-1")
        self.assertEqual(order.provider_status, "approved")
        self.assertEqual(order.provider_payment_type, "credit_card")
        self.assertEqual(order.last_synced_amount, Decimal("30.50"))
        self.assertIsNotNone(order.paid_at)
        self.assertEqual(self._confirmations(), 1)
        self.assertTrue(any(self.buyer.email in m.to for m in mail.outbox))

    def test_duplicate_delivery_is_acknowledged_without_effect(self):
        self.gateway.add_payment("pay-1", status="approved", amount="30.50", order_id=self.order.id)

        first = self._deliver(_payload("pay-1"), {"x-request-id": "req-1"})
        second = self._deliver(_payload("pay-1"), {"x-request-id": "req-1"})

        self.assertEqual(first.action, "applied")
        self.assertEqual(second.action, "duplicate")
        self.assertEqual(len(self.gateway.fetch_calls), 1)
        self.assertEqual(
            PaymentHistory.objects.filter(order=self.order, payment_status=PaymentStatus.COMPLETED).count(),
            1,
        )
        self.assertEqual(self._confirmations(), 1)

    def test_redelivery_without_key_is_still_idempotent(self):
        self.gateway.add_payment("pay-1", status="approved", amount="30.50", order_id=self.order.id)

        first = self._deliver(_payload("pay-1"))
        second = self._deliver(_payload("pay-1"))

        self.assertEqual(first.action, "applied")
        self.assertEqual(second.action, "unchanged")
        self.assertEqual(len(self.gateway.fetch_calls), 2)
        self.assertEqual(
            PaymentHistory.objects.filter(order=self.order, payment_status=PaymentStatus.COMPLETED).count(),
            1,
        )
        self.assertEqual(self._confirmations(), 1)

    def test_notification_id_used_as_key(self):
        self.gateway.add_payment("pay-1", status="approved", amount="30.50", order_id=self.order.id)

        self._deliver(_payload("pay-1", notification_id=555))
        second = self._deliver(_payload("pay-1", notification_id=555))
        self.assertEqual(second.action, "duplicate")

    def test_payload_status_is_ignored(self):
        self.gateway.add_payment("pay-1", status="pending", amount="30.50", order_id=self.order.id)
        payload = _payload("pay-1")
        payload["data"]["status"] = "approved"
        payload["data"]["transaction_amount"] = 30.50

        outcome = self._deliver(payload)

        self.assertEqual(outcome.action, "unchanged")
        self.assertEqual(self._reload().payment_status, PaymentStatus.PENDING)
        self.assertEqual(self._reload().provider_payment_id, "pay-1")

    def test_amount_mismatch_applies_with_note(self):
        self.gateway.add_payment("pay-1", status="approved", amount="10.00", order_id=self.order.id)

        outcome = self._deliver(_payload("pay-1"))

        self.assertEqual(outcome.action, "applied")
        row = PaymentHistory.objects.get(order=self.order, payment_status=PaymentStatus.COMPLETED)
        self.assertIn("amount mismatch", row.note)
        self.assertEqual(row.amount, Decimal("10.00"))

    def test_rejected_payment_marks_failed_without_confirmation(self):
        self.gateway.add_payment("pay-1", status="rejected", amount="30.50", order_id=self.order.id)

        outcome = self._deliver(_payload("pay-1"))

        self.assertEqual(outcome.action, "applied")
        self.assertEqual(self._reload().payment_status, PaymentStatus.FAILED)
        self.assertEqual(self._confirmations(), 0)

    def test_retry_after_failure_completes(self):
        self.gateway.add_payment("pay-1", status="rejected", amount="30.50", order_id=self.order.id)
        self._deliver(_payload("pay-1"), {"x-request-id": "req-1"})

        self.gateway.add_payment("pay-2", status="approved", amount="30.50", order_id=self.order.id)
        outcome = self._deliver(_payload("pay-2"), {"x-request-id": "req-2"})

        self.assertEqual(outcome.action, "applied")
        order = self._reload()
        self.assertEqual(order.payment_status, PaymentStatus.COMPLETED)
        self.assertEqual(order.provider_payment_id, "pay-2")

    def test_coupling_policy_advances_fulfillment(self):
        self.gateway.add_payment("pay-1", status="approved", amount="30.50", order_id=self.order.id)

        with override_settings(ORDERS=orders_settings(AUTO_PROCESS_ON_PAYMENT=True)):
            self._deliver(_payload("pay-1"))

        self.assertEqual(self._reload().status, OrderStatus.PROCESSING)

    def test_fulfillment_untouched_by_default(self):
        self.gateway.add_payment("pay-1", status="approved", amount="30.50", order_id=self.order.id)
        with override_settings(ORDERS=orders_settings(AUTO_PROCESS_ON_PAYMENT=False)):
            self._deliver(_payload("pay-1"))
        self.assertEqual(self._reload().status, OrderStatus.PENDING)


class OutOfOrderDeliveryTests(ReconciliationTestBase):
    def test_late_in_process_after_approved_is_dropped(self):
        self.gateway.add_payment("pay-1", status="approved", amount="30.50", order_id=self.order.id)
        self._deliver(_payload("pay-1"), {"x-request-id": "req-approved"})
        version = self._reload().version

        # The older "in_process" notification arrives last
        self.gateway.payments["pay-1"]["status"] = "in_process"
        outcome = self._deliver(_payload("pay-1"), {"x-request-id": "req-in-process"})

        self.assertEqual(outcome.action, "stale")
        order = self._reload()
        self.assertEqual(order.payment_status, PaymentStatus.COMPLETED)
        self.assertEqual(order.version, version)
        self.assertEqual(self._confirmations(), 1)


class GatewayFailureTests(ReconciliationTestBase):
    def test_timeout_is_acknowledged_and_not_marked_seen(self):
        self.gateway.add_payment("pay-1", status="approved", amount="30.50", order_id=self.order.id)
        self.gateway.fetch_error = GatewayTimeoutError("slow provider")

        first = self._deliver(_payload("pay-1"), {"x-request-id": "req-1"})

        self.assertEqual(first.action, "fetch_failed")
        self.assertEqual(first.http_status, 200)
        self.assertEqual(self._reload().payment_status, PaymentStatus.PENDING)

        # The gateway redelivers the same notification later
        self.gateway.fetch_error = None
        second = self._deliver(_payload("pay-1"), {"x-request-id": "req-1"})

        self.assertEqual(second.action, "applied")
        self.assertEqual(self._reload().payment_status, PaymentStatus.COMPLETED)

    def test_unknown_payment_is_acknowledged(self):
        outcome = self._deliver(_payload("missing"))
        self.assertEqual(outcome.action, "fetch_failed")
        self.assertEqual(outcome.http_status, 200)

    def test_payment_without_order(self):
        self.gateway.add_payment("pay-1", status="approved", amount="1.00", order_id=uuid.uuid4())
        outcome = self._deliver(_payload("pay-1"))
        self.assertEqual(outcome.action, "order_not_found")
        self.assertEqual(outcome.http_status, 200)

    def test_foreign_reference_format(self):
        self.gateway.add_payment("pay-1", status="approved", amount="1.00", external_reference="INV-77")
        self.assertEqual(self._deliver(_payload("pay-1")).action, "order_not_found")

    def test_store_hint_must_own_the_order(self):
        other = make_store(name="Other")
        enable_gateway(other)
        self.gateway.add_payment("pay-1", status="approved", amount="30.50", order_id=self.order.id)

        outcome = self._deliver(_payload("pay-1"), query={"store_id": str(other.id)})

        self.assertEqual(outcome.action, "order_not_found")
        self.assertEqual(self._reload().payment_status, PaymentStatus.PENDING)


class ShapeAndSignatureTests(ReconciliationTestBase):
    def test_non_payment_event_ignored(self):
        outcome = self._deliver(_payload("mo-1", event_type="merchant_order", action="merchant_order.updated"))
        self.assertEqual(outcome.action, "ignored")
        self.assertEqual(self.gateway.fetch_calls, [])

    def test_malformed_acknowledged_in_test_mode(self):
        outcome = self._deliver({"foo": "bar"})
        self.assertEqual(outcome.action, "invalid")
        self.assertEqual(outcome.http_status, 200)

    @override_settings(PAYMENTS=payments_settings(MODE="production"))
    def test_malformed_rejected_in_production(self):
        outcome = self._deliver({"type": "payment", "data": {}})
        self.assertEqual(outcome.action, "invalid")
        self.assertEqual(outcome.http_status, 400)

    def test_valid_signature_accepted(self):
        enable_gateway(self.store, webhook_secret="whsec")
        self.gateway.add_payment("pay-1", status="approved", amount="30.50", order_id=self.order.id)

        outcome = self._deliver(_payload("pay-1"), _signed_headers("whsec", "pay-1", "req-1"))
        self.assertEqual(outcome.action, "applied")

    @override_settings(PAYMENTS=payments_settings(MODE="production"))
    def test_bad_signature_rejected_in_production(self):
        enable_gateway(self.store, webhook_secret="whsec")
        self.gateway.add_payment("pay-1", status="approved", amount="30.50", order_id=self.order.id)

        outcome = self._deliver(_payload("pay-1"), _signed_headers("wrong", "pay-1", "req-1"))

        self.assertEqual(outcome.action, "invalid_signature")
        self.assertEqual(outcome.http_status, 400)
        self.assertEqual(self.gateway.fetch_calls, [])
        self.assertEqual(self._reload().payment_status, PaymentStatus.PENDING)

    def test_bad_signature_only_logged_in_test_mode(self):
        enable_gateway(self.store, webhook_secret="whsec")
        self.gateway.add_payment("pay-1", status="approved", amount="30.50", order_id=self.order.id)

        outcome = self._deliver(_payload("pay-1"), {"x-request-id": "req-1", "x-signature": "ts=1,v1=bad"})
        self.assertEqual(outcome.action, "applied")


class WebhookEndpointTests(ReconciliationTestBase):
    def setUp(self):
        super().setUp()
        self.client = APIClient()
        self.url = f"{WEBHOOK_URL}?store_id={self.store.id}"

    def test_approved_delivery_over_http(self):
        self.gateway.add_payment("pay-1", status="approved", amount="30.50", order_id=self.order.id)

        res = self.client.post(self.url, _payload("pay-1"), format="json", HTTP_X_REQUEST_ID="req-1")
        dup = self.client.post(self.url, _payload("pay-1"), format="json", HTTP_X_REQUEST_ID="req-1")

        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["action"], "applied")
        self.assertEqual(dup.status_code, status.HTTP_200_OK)
        self.assertEqual(dup.data["action"], "duplicate")
        self.assertEqual(self._reload().payment_status, PaymentStatus.COMPLETED)

    def test_gateway_error_still_200(self):
        self.gateway.fetch_error = GatewayError("boom")
        res = self.client.post(self.url, _payload("pay-1"), format="json")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["action"], "fetch_failed")

    def test_unparseable_body_acknowledged_in_test_mode(self):
        res = self.client.post(self.url, "not json", content_type="application/json")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["action"], "invalid")

    @override_settings(PAYMENTS=payments_settings(MODE="production"))
    def test_malformed_is_400_in_production(self):
        res = self.client.post(self.url, {"hello": "world"}, format="json")
        self.assertEqual(res.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unexpected_error_is_acknowledged(self):
        with patch("payments.views.webhook.handle_delivery", side_effect=RuntimeError("bug")):
            res = self.client.post(self.url, _payload("pay-1"), format="json")
        self.assertEqual(res.status_code, status.HTTP_200_OK)
        self.assertEqual(res.data["action"], "error")

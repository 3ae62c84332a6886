# payments/views/payments.py
"""
PAYMENTS API

POST /api/payments/intent/                  buyer: (re)create gateway intent
GET  /api/payments/config/<store_id>/       public: enabled + public key only
GET  /api/payments/<provider_payment_id>/   admin: provider payment lookup
POST /api/payments/<order_id>/refund/       admin: refund (full or partial)
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import serializers, status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from orders.api.errors import DomainErrorMixin
from orders.serializers import OrderPaymentStatusSerializer
from orders.services.order_repository import actor_label, get_order
from orders.services.exceptions import NotFoundError
from payments.services.gateway import get_gateway, parse_external_reference
from payments.services.intents import create_intent_for_order
from payments.services.refunds import refund_order
from permissions.roles import (
    CAP_PAYMENTS_REFUND,
    CAP_PAYMENTS_VIEW,
    HasCapability,
    ensure_store_scope,
    is_platform_admin,
)
from tenants.models import Store
from tenants.services.tenant_config import get_payment_config


class PaymentIntentInputSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()


class RefundInputSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=0)


class PaymentIntentView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser]

    @extend_schema(
        request=PaymentIntentInputSerializer,
        responses={
            201: OpenApiResponse(description="Intent created"),
            409: OpenApiResponse(description="Order already paid / not gateway-routed"),
            502: OpenApiResponse(description="Gateway failure"),
        },
        tags=["Payments"],
    )
    def post(self, request):
        s = PaymentIntentInputSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        issued = create_intent_for_order(s.validated_data["order_id"], user=request.user)
        return Response(
            {
                "order_id": str(issued.order.id),
                "intent_id": issued.intent.external_id,
                "external_reference": issued.order.external_reference,
                "redirect_url": issued.redirect_url,
                "sandbox_redirect_url": issued.intent.sandbox_redirect_url,
            },
            status=status.HTTP_201_CREATED,
        )


class PublicPaymentConfigView(DomainErrorMixin, APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(responses={200: OpenApiResponse(description="Public gateway config")}, tags=["Payments"])
    def get(self, request, store_id):
        if not Store.objects.filter(pk=store_id, is_active=True).exists():
            raise NotFoundError("Store not found")

        cfg = get_payment_config(store_id)
        return Response(
            {
                "store_id": str(store_id),
                "provider": cfg.provider,
                "enabled": bool(cfg.enabled and cfg.has_credentials),
                "public_key": cfg.public_key if cfg.enabled else "",
                "mode": cfg.mode,
            }
        )


class PaymentLookupView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated, HasCapability]
    required_capability = CAP_PAYMENTS_VIEW

    @extend_schema(responses={200: OpenApiResponse(description="Provider payment record")}, tags=["Payments"])
    def get(self, request, provider_payment_id):
        config = None
        if not is_platform_admin(request.user):
            config = get_payment_config(request.user.store_id)

        record = get_gateway().fetch_payment(provider_payment_id, config)

        order_id = parse_external_reference(record.external_reference)
        if not is_platform_admin(request.user):
            # Store admins only see payments that belong to their store's orders
            if order_id is None:
                raise NotFoundError("Payment not found")
            ensure_store_scope(request.user, get_order(order_id).store_id)

        return Response(
            {
                "id": record.id,
                "status": record.status,
                "status_detail": record.status_detail,
                "internal_status": record.internal_status,
                "amount": str(record.amount),
                "currency": record.currency,
                "type": record.type,
                "installments": record.installments,
                "approved_at": record.approved_at,
                "created_at": record.created_at,
                "external_reference": record.external_reference,
                "order_id": str(order_id) if order_id else None,
                "payer": record.payer,
            }
        )


class PaymentRefundView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated, HasCapability]
    parser_classes = [JSONParser]
    required_capability = CAP_PAYMENTS_REFUND

    @extend_schema(
        request=RefundInputSerializer,
        responses={
            200: OrderPaymentStatusSerializer,
            409: OpenApiResponse(description="Payment is not completed"),
            502: OpenApiResponse(description="Gateway failure"),
        },
        tags=["Payments"],
    )
    def post(self, request, order_id):
        s = RefundInputSerializer(data=request.data or {})
        s.is_valid(raise_exception=True)

        order = get_order(order_id)
        ensure_store_scope(request.user, order.store_id)

        outcome = refund_order(
            order.id,
            amount=s.validated_data.get("amount"),
            actor=actor_label(request.user),
        )
        data = OrderPaymentStatusSerializer(outcome.order).data
        data["refund"] = {
            "id": outcome.refund.id,
            "amount": str(outcome.refund.amount),
            "status": outcome.refund.status,
        }
        return Response(data)

# orders/views/orders.py
"""
ORDERS API

POST   /api/orders/                          checkout (cart or explicit items)
GET    /api/orders/?mine=1|status=|payment_status=|store=
GET    /api/orders/<id>/                     owner or store admin
DELETE /api/orders/<id>/                     privileged hard delete (restocks)
PUT    /api/orders/<id>/status/              admin: fulfillment transition
GET    /api/orders/<id>/payment-status/      owner or store admin
PUT    /api/orders/<id>/payment-status/      admin: manual payment override

Security hardening:
- checkout is throttled (scope "checkout")
- store admins only see and mutate their own store's orders
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import generics, status
from rest_framework.parsers import JSONParser
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import UserRateThrottle
from rest_framework.views import APIView

from orders.api.errors import DomainErrorMixin, domain_error_response
from orders.models import Order
from orders.serializers import (
    CheckoutInputSerializer,
    OrderPaymentStatusSerializer,
    OrderSerializer,
    PaymentStatusUpdateSerializer,
    StatusUpdateSerializer,
)
from orders.services import order_repository
from orders.services.checkout_orchestrator import CheckoutLine, CheckoutRequest, checkout
from orders.services.exceptions import PermissionDeniedError
from orders.services.pricing import ZERO
from permissions.roles import (
    CAP_ORDERS_CHECKOUT,
    CAP_ORDERS_DELETE,
    CAP_ORDERS_MANAGE,
    CAP_ORDERS_OVERRIDE_PRICE,
    CAP_ORDERS_VIEW_STORE,
    CAP_PAYMENTS_OVERRIDE,
    HasCapability,
    can_manage_store,
    can_view_order,
    ensure_store_scope,
    has_capability,
    is_platform_admin,
)

logger = logging.getLogger(__name__)


class CheckoutThrottle(UserRateThrottle):
    scope = "checkout"


def _order_queryset():
    return (
        Order.objects.select_related("store", "buyer")
        .prefetch_related("items", "status_history")
    )


def _load_visible_order(request, pk) -> Order:
    order = order_repository.get_order(pk)
    if not can_view_order(request.user, order):
        raise PermissionDeniedError("You do not have access to this order")
    return order


def _truthy(value) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes"}


# ======================================================
# LIST + CHECKOUT
# ======================================================

class OrderListCreateView(DomainErrorMixin, generics.ListAPIView):
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser]
    filterset_fields = ["status", "payment_status", "store"]

    def get_throttles(self):
        if self.request.method == "POST":
            return [CheckoutThrottle()]
        return super().get_throttles()

    def get_queryset(self):
        if getattr(self, "swagger_fake_view", False):
            return Order.objects.none()

        user = self.request.user
        qs = _order_queryset()

        mine = _truthy(self.request.query_params.get("mine"))
        if mine or not has_capability(user, CAP_ORDERS_VIEW_STORE):
            return qs.filter(buyer=user)

        if is_platform_admin(user):
            return qs
        return qs.filter(store_id=user.store_id)

    @extend_schema(
        parameters=[
            OpenApiParameter("mine", bool, description="Only orders placed by the caller"),
            OpenApiParameter("status", str),
            OpenApiParameter("payment_status", str),
            OpenApiParameter("store", str),
        ],
        tags=["Orders"],
    )
    def get(self, request, *args, **kwargs):
        return super().get(request, *args, **kwargs)

    @extend_schema(
        request=CheckoutInputSerializer,
        responses={
            201: OrderSerializer,
            400: OpenApiResponse(description="Validation error / payment not configured"),
            409: OpenApiResponse(description="Insufficient stock"),
            502: OpenApiResponse(description="Order created, payment intent failed (retry /payments/intent/)"),
        },
        tags=["Orders"],
    )
    def post(self, request):
        if not has_capability(request.user, CAP_ORDERS_CHECKOUT):
            raise PermissionDeniedError("You cannot place orders")

        s = CheckoutInputSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        privileged = has_capability(request.user, CAP_ORDERS_OVERRIDE_PRICE) and can_manage_store(
            request.user, data["store_id"]
        )

        items = data.get("items")
        lines = None
        if items is not None:
            lines = [
                CheckoutLine(
                    product_id=i["product_id"],
                    variant=i.get("variant") or "",
                    quantity=i["quantity"],
                    unit_price=i.get("unit_price"),
                )
                for i in items
            ]

        result = checkout(
            CheckoutRequest(
                buyer=request.user,
                store_id=data["store_id"],
                address=dict(data["shipping_address"]),
                payment_method=data.get("payment_method"),
                lines=lines,
                discount=data.get("discount") or ZERO,
                notes=data.get("notes") or "",
                privileged=privileged,
            )
        )

        order = _order_queryset().get(pk=result.order.pk)
        payload = OrderSerializer(order).data

        if result.payment_error is not None:
            return domain_error_response(result.payment_error, order=payload)

        return Response(payload, status=status.HTTP_201_CREATED)


# ======================================================
# DETAIL + DELETE
# ======================================================

class OrderDetailView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]

    def get_permissions(self):
        if self.request.method == "DELETE":
            return [IsAuthenticated(), HasCapability()]
        return super().get_permissions()

    required_capabilities = {"DELETE": CAP_ORDERS_DELETE}

    @extend_schema(responses={200: OrderSerializer}, tags=["Orders"])
    def get(self, request, pk):
        _load_visible_order(request, pk)
        order = _order_queryset().get(pk=pk)
        return Response(OrderSerializer(order).data)

    @extend_schema(
        responses={204: OpenApiResponse(description="Deleted (stock restored unless cancelled)")},
        tags=["Orders"],
    )
    def delete(self, request, pk):
        order = order_repository.get_order(pk)
        ensure_store_scope(request.user, order.store_id)
        order_repository.delete(order.id, actor=order_repository.actor_label(request.user))
        return Response(status=status.HTTP_204_NO_CONTENT)


# ======================================================
# FULFILLMENT STATUS
# ======================================================

class OrderStatusView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated, HasCapability]
    parser_classes = [JSONParser]
    required_capability = CAP_ORDERS_MANAGE

    @extend_schema(
        request=StatusUpdateSerializer,
        responses={
            200: OrderSerializer,
            409: OpenApiResponse(description="Transition not allowed / concurrent update"),
        },
        tags=["Orders"],
    )
    def put(self, request, pk):
        s = StatusUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        order = order_repository.get_order(pk)
        ensure_store_scope(request.user, order.store_id)

        order_repository.transition_status(
            order.id,
            s.validated_data["status"],
            actor=order_repository.actor_label(request.user),
            note=s.validated_data.get("note") or "",
        )
        fresh = _order_queryset().get(pk=order.pk)
        return Response(OrderSerializer(fresh).data)


# ======================================================
# PAYMENT STATUS
# ======================================================

class OrderPaymentStatusView(DomainErrorMixin, APIView):
    permission_classes = [IsAuthenticated]
    parser_classes = [JSONParser]
    required_capabilities = {"PUT": CAP_PAYMENTS_OVERRIDE}

    def get_permissions(self):
        if self.request.method == "PUT":
            return [IsAuthenticated(), HasCapability()]
        return super().get_permissions()

    @extend_schema(responses={200: OrderPaymentStatusSerializer}, tags=["Orders"])
    def get(self, request, pk):
        order = _load_visible_order(request, pk)
        return Response(OrderPaymentStatusSerializer(order).data)

    @extend_schema(
        request=PaymentStatusUpdateSerializer,
        responses={200: OrderPaymentStatusSerializer},
        tags=["Orders"],
    )
    def put(self, request, pk):
        s = PaymentStatusUpdateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        order = order_repository.get_order(pk)
        ensure_store_scope(request.user, order.store_id)

        actor = order_repository.actor_label(request.user)
        note = data.get("note") or f"Manual update by {actor}"
        result = order_repository.transition_payment_status(
            order.id,
            data["status"],
            provider_transaction_id=data.get("transaction_id") or "",
            amount=data.get("amount"),
            note=note,
            force=True,
            actor=actor,
        )
        return Response(OrderPaymentStatusSerializer(result.order).data)

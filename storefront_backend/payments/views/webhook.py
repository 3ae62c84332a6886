# payments/views/webhook.py
"""
PAYMENT WEBHOOK

POST /api/payments/webhook/?store_id=<store>

- unauthenticated (gateway-called), validated by shape + optional signature
- recoverable paths ALWAYS answer 2xx so the gateway does not storm
- only malformed / badly signed deliveries in production mode get 400
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.exceptions import ParseError, UnsupportedMediaType
from rest_framework.parsers import JSONParser
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import AnonRateThrottle
from rest_framework.views import APIView

from payments.services.reconciliation import handle_delivery

logger = logging.getLogger(__name__)


class WebhookThrottle(AnonRateThrottle):
    scope = "webhook"


class PaymentWebhookView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]
    parser_classes = [JSONParser]
    throttle_classes = [WebhookThrottle]

    @extend_schema(
        request=None,
        responses={
            200: OpenApiResponse(description="Acknowledged"),
            400: OpenApiResponse(description="Malformed or badly signed (production mode only)"),
        },
        tags=["Payments"],
    )
    def post(self, request, *args, **kwargs):
        try:
            payload = request.data
        except (ParseError, UnsupportedMediaType):
            # Unparseable body; treated like any other malformed delivery
            payload = {}

        logger.info("Payment webhook received")

        try:
            outcome = handle_delivery(payload, request.headers, request.query_params)
        except Exception:
            logger.exception("Unhandled webhook error")
            return Response({"ok": True, "action": "error"}, status=status.HTTP_200_OK)

        return Response(outcome.body, status=outcome.http_status)

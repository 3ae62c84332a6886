# payments/services/mercadopago.py

"""
MERCADO PAGO ADAPTER

HTTP client over urllib:
- create_intent: POST /checkout/preferences (embeds ORDER-<id> external reference)
- fetch_payment: GET /v1/payments/<id> (bounded by FETCH_TIMEOUT_SECONDS)
- refund:        POST /v1/payments/<id>/refunds (only when payment is COMPLETED)

Transport failures surface as GatewayError / GatewayTimeoutError.
Credentials are never logged.
"""

from __future__ import annotations

import json
import logging
import socket
from datetime import timedelta
from decimal import Decimal
from typing import Any, Optional
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from django.conf import settings
from django.utils import timezone

from orders.models import PaymentStatus
from orders.services.exceptions import (
    GatewayError,
    GatewayTimeoutError,
    InvalidStateError,
    PaymentConfigError,
)
from payments.services.gateway import (
    PaymentGateway,
    PaymentIntent,
    PaymentRecord,
    RefundRecord,
    build_external_reference,
    map_provider_status,
)

logger = logging.getLogger(__name__)

MERCADOPAGO_BASE = "https://api.mercadopago.com"


def _mp_cfg() -> dict:
    payments = getattr(settings, "PAYMENTS", {}) or {}
    cfg = (payments.get("MERCADOPAGO") or {}) if isinstance(payments, dict) else {}
    return cfg if isinstance(cfg, dict) else {}


def _safe_preview(text: str, limit: int = 500) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + " ...(truncated)"


def refund_idempotency_key(payment_id, amount: Optional[Decimal] = None) -> str:
    """Stable per (payment, amount); a full refund uses "full"."""
    portion = "full" if amount is None else f"{Decimal(amount):.2f}"
    return f"refund-{payment_id}-{portion}"


def _is_timeout(exc: BaseException) -> bool:
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return True
    reason = getattr(exc, "reason", None)
    return isinstance(reason, (socket.timeout, TimeoutError))


class MercadoPagoGateway(PaymentGateway):
    base_url = MERCADOPAGO_BASE

    # ---------------- credentials ----------------
    def _access_token(self, config=None) -> str:
        token = (getattr(config, "access_token", "") or "").strip()
        if not token:
            token = (_mp_cfg().get("ACCESS_TOKEN") or "").strip()
        if not token:
            raise PaymentConfigError("Mercado Pago access token is not configured")
        return token

    # ---------------- transport ----------------
    def _request_json(
        self,
        method: str,
        path: str,
        *,
        token: str,
        body: Optional[dict] = None,
        timeout: float = 25,
        idempotency_key: str = "",
    ) -> dict[str, Any]:
        data = None
        if body is not None:
            data = json.dumps(body, ensure_ascii=False, default=str).encode("utf-8")

        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if idempotency_key:
            headers["X-Idempotency-Key"] = idempotency_key

        req = Request(f"{self.base_url}{path}", data=data, headers=headers, method=method)

        try:
            with urlopen(req, timeout=timeout) as resp:
                raw = resp.read().decode("utf-8", errors="replace")
        except HTTPError as e:
            raw = ""
            try:
                raw = e.read().decode("utf-8", errors="replace")
            except OSError:
                raw = ""
            logger.warning(
                "Mercado Pago rejected request",
                extra={"method": method, "path": path, "status": e.code},
            )
            # 4xx are not worth retrying (except 429)
            retryable = e.code >= 500 or e.code == 429
            raise GatewayError(
                f"Mercado Pago HTTPError: {e.code} {_safe_preview(raw)}",
                retryable=retryable,
                status=e.code,
            ) from e
        except URLError as e:
            if _is_timeout(e):
                raise GatewayTimeoutError(f"Mercado Pago timed out after {timeout}s") from e
            logger.warning("Mercado Pago unreachable", extra={"method": method, "path": path})
            raise GatewayError(f"Mercado Pago URLError: {e.reason}") from e
        except (socket.timeout, TimeoutError) as e:
            raise GatewayTimeoutError(f"Mercado Pago timed out after {timeout}s") from e
        except OSError as e:
            raise GatewayError(f"Mercado Pago request failed: {e}") from e

        try:
            parsed = json.loads(raw or "{}")
        except ValueError:
            raise GatewayError(f"Mercado Pago returned non-JSON: {_safe_preview(raw)}", retryable=False)

        if not isinstance(parsed, dict):
            raise GatewayError("Mercado Pago returned a non-object body", retryable=False)
        return parsed

    # ---------------- intent ----------------
    def _preference_body(self, order) -> dict:
        cfg = _mp_cfg()
        frontend = (cfg.get("FRONTEND_URL") or "").rstrip("/")
        external_reference = build_external_reference(order.id)
        currency = order.currency or cfg.get("CURRENCY") or "ARS"

        items = [
            {
                "id": str(item.product_id),
                "title": item.product_name or str(item.product_id),
                "description": item.variant or "",
                "quantity": int(item.quantity),
                "unit_price": float(item.unit_price),
                "currency_id": currency,
            }
            for item in order.items.all()
        ]
        if order.shipping_cost and order.shipping_cost > 0:
            items.append(
                {
                    "id": "shipping",
                    "title": "Shipping",
                    "quantity": 1,
                    "unit_price": float(order.shipping_cost),
                    "currency_id": currency,
                }
            )
        if order.tax and order.tax > 0:
            items.append(
                {
                    "id": "tax",
                    "title": "Taxes",
                    "quantity": 1,
                    "unit_price": float(order.tax),
                    "currency_id": currency,
                }
            )

        now = timezone.now()
        expiry_days = int(cfg.get("INTENT_EXPIRY_DAYS") or 30)

        body = {
            "items": items,
            "payer": {
                "name": order.recipient_name,
                "email": getattr(order.buyer, "email", ""),
                "phone": {"number": order.phone},
                "address": {
                    "street_name": order.line1,
                    "zip_code": order.postal_code,
                },
            },
            "back_urls": {
                "success": f"{frontend}/order/success",
                "failure": f"{frontend}/order/failure",
                "pending": f"{frontend}/order/pending",
            },
            "auto_return": "approved",
            "external_reference": external_reference,
            "statement_descriptor": (order.store.name or "")[:22],
            "expires": True,
            "expiration_date_from": now.isoformat(),
            "expiration_date_to": (now + timedelta(days=expiry_days)).isoformat(),
            "payment_methods": {"installments": int(cfg.get("MAX_INSTALLMENTS") or 12)},
            "metadata": {
                "order_id": str(order.id),
                "store_id": str(order.store_id),
                "buyer_id": str(order.buyer_id),
            },
        }
        if order.discount and order.discount > 0:
            body["coupon_amount"] = float(order.discount)

        notification_url = (cfg.get("NOTIFICATION_URL") or "").strip()
        if notification_url:
            sep = "&" if "?" in notification_url else "?"
            body["notification_url"] = f"{notification_url}{sep}store_id={order.store_id}"
        return body

    def create_intent(self, order, config) -> PaymentIntent:
        if config is None or not getattr(config, "enabled", False):
            raise PaymentConfigError("Mercado Pago is not enabled for this store")
        token = self._access_token(config)

        body = self._preference_body(order)
        cfg = _mp_cfg()
        parsed = self._request_json(
            "POST",
            "/checkout/preferences",
            token=token,
            body=body,
            timeout=float(cfg.get("REQUEST_TIMEOUT_SECONDS") or 25),
        )
        intent = PaymentIntent.from_provider(parsed, external_reference=body["external_reference"])

        logger.info(
            "Payment intent created",
            extra={"order_id": str(order.id), "intent_id": intent.external_id},
        )
        return intent

    # ---------------- payment ----------------
    def fetch_payment(self, external_id: str, config=None) -> PaymentRecord:
        external_id = str(external_id or "").strip()
        if not external_id:
            raise GatewayError("Payment id is required", retryable=False)

        token = self._access_token(config)
        cfg = _mp_cfg()
        parsed = self._request_json(
            "GET",
            f"/v1/payments/{external_id}",
            token=token,
            timeout=float(cfg.get("FETCH_TIMEOUT_SECONDS") or 5),
        )
        return PaymentRecord.from_provider(parsed)

    # ---------------- refund ----------------
    def refund(self, external_id: str, amount: Optional[Decimal] = None, config=None) -> RefundRecord:
        record = self.fetch_payment(external_id, config)
        if map_provider_status(record.status) != PaymentStatus.COMPLETED:
            raise InvalidStateError(
                "Only completed payments can be refunded",
                provider_status=record.status,
            )

        body = {}
        if amount is not None:
            body["amount"] = float(amount)

        token = self._access_token(config)
        cfg = _mp_cfg()
        parsed = self._request_json(
            "POST",
            f"/v1/payments/{record.id}/refunds",
            token=token,
            body=body,
            timeout=float(cfg.get("REQUEST_TIMEOUT_SECONDS") or 25),
            idempotency_key=refund_idempotency_key(record.id, amount),
        )
        refund = RefundRecord.from_provider(parsed, payment_id=record.id)
        logger.info(
            "Refund issued",
            extra={"payment_id": record.id, "refund_id": refund.id, "amount": str(refund.amount)},
        )
        return refund

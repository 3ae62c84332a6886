# payments/services/gateway.py

"""
PAYMENT GATEWAY PORT

- PaymentGateway: the adapter contract (create_intent / fetch_payment / refund)
- PaymentIntent, PaymentRecord, RefundRecord: validated DTOs. Provider payloads
  are parsed ONCE here; everything downstream uses these shapes only.
- map_provider_status(): total, pure provider -> internal status mapping
- external reference helpers: ORDER-<orderId>
- get_gateway()/set_gateway(): process-wide instance resolved from
  settings.PAYMENTS["GATEWAY_CLASS"]
"""

from __future__ import annotations

import abc
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from django.conf import settings
from django.utils.dateparse import parse_datetime
from django.utils.module_loading import import_string

from orders.models import PaymentStatus
from orders.services.exceptions import GatewayError

EXTERNAL_REFERENCE_PREFIX = "ORDER-"

PROVIDER_STATUS_MAP = {
    "approved": PaymentStatus.COMPLETED,
    "pending": PaymentStatus.PENDING,
    "authorized": PaymentStatus.PROCESSING,
    "in_process": PaymentStatus.PROCESSING,
    "in_mediation": PaymentStatus.PROCESSING,
    "rejected": PaymentStatus.FAILED,
    "cancelled": PaymentStatus.FAILED,
    "refunded": PaymentStatus.REFUNDED,
    "charged_back": PaymentStatus.REFUNDED,
}


def map_provider_status(raw) -> str:
    """Unknown, empty or non-string values map to PENDING."""
    if not isinstance(raw, str):
        return PaymentStatus.PENDING
    return PROVIDER_STATUS_MAP.get(raw.strip().lower(), PaymentStatus.PENDING)


def build_external_reference(order_id) -> str:
    return f"{EXTERNAL_REFERENCE_PREFIX}{order_id}"


def parse_external_reference(value) -> Optional[uuid.UUID]:
    ref = str(value or "").strip()
    if not ref.startswith(EXTERNAL_REFERENCE_PREFIX):
        return None
    try:
        return uuid.UUID(ref[len(EXTERNAL_REFERENCE_PREFIX):])
    except ValueError:
        return None


# ============================================================
# DTOs
# ============================================================

def _amount(value, *, required: bool, what: str) -> Optional[Decimal]:
    if value is None or value == "":
        if required:
            raise GatewayError(f"Provider {what} is missing an amount", retryable=False)
        return None
    if isinstance(value, bool):
        raise GatewayError(f"Provider {what} has an invalid amount", retryable=False)
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        raise GatewayError(f"Provider {what} has an invalid amount", retryable=False)


def _dt(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_datetime(str(value))
    except ValueError:
        return None


def _text(value) -> str:
    return "" if value is None else str(value).strip()


@dataclass(frozen=True)
class PaymentIntent:
    external_id: str
    redirect_url: str
    sandbox_redirect_url: str = ""
    external_reference: str = ""

    def redirect_for_mode(self, mode: str) -> str:
        if mode == "production":
            return self.redirect_url
        return self.sandbox_redirect_url or self.redirect_url

    @classmethod
    def from_provider(cls, data: Mapping[str, Any], *, external_reference: str = "") -> "PaymentIntent":
        if not isinstance(data, Mapping):
            raise GatewayError("Malformed intent response", retryable=False)
        external_id = _text(data.get("id"))
        redirect = _text(data.get("init_point"))
        if not external_id or not redirect:
            raise GatewayError("Intent response is missing id or init_point", retryable=False)
        return cls(
            external_id=external_id,
            redirect_url=redirect,
            sandbox_redirect_url=_text(data.get("sandbox_init_point")),
            external_reference=_text(data.get("external_reference")) or external_reference,
        )


@dataclass(frozen=True)
class PaymentRecord:
    id: str
    status: str
    amount: Decimal
    status_detail: str = ""
    type: str = ""
    installments: Optional[int] = None
    approved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    currency: str = ""
    external_reference: str = ""
    payer: dict = field(default_factory=dict)

    @property
    def internal_status(self) -> str:
        return map_provider_status(self.status)

    @classmethod
    def from_provider(cls, data: Mapping[str, Any]) -> "PaymentRecord":
        if not isinstance(data, Mapping):
            raise GatewayError("Malformed payment response", retryable=False)

        payment_id = _text(data.get("id"))
        if not payment_id:
            raise GatewayError("Payment response is missing id", retryable=False)

        installments = data.get("installments")
        try:
            installments = int(installments) if installments not in (None, "") else None
        except (ValueError, TypeError):
            installments = None

        payer = data.get("payer") or {}
        if not isinstance(payer, Mapping):
            payer = {}

        return cls(
            id=payment_id,
            status=_text(data.get("status")).lower(),
            status_detail=_text(data.get("status_detail")),
            amount=_amount(data.get("transaction_amount"), required=True, what="payment"),
            type=_text(data.get("payment_type_id")),
            installments=installments,
            approved_at=_dt(data.get("date_approved")),
            created_at=_dt(data.get("date_created")),
            currency=_text(data.get("currency_id")),
            external_reference=_text(data.get("external_reference")),
            payer={
                "email": _text(payer.get("email")),
                "id": _text(payer.get("id")),
            },
        )


@dataclass(frozen=True)
class RefundRecord:
    id: str
    payment_id: str
    amount: Decimal
    status: str = ""
    created_at: Optional[datetime] = None

    @classmethod
    def from_provider(cls, data: Mapping[str, Any], *, payment_id: str) -> "RefundRecord":
        if not isinstance(data, Mapping):
            raise GatewayError("Malformed refund response", retryable=False)
        refund_id = _text(data.get("id"))
        if not refund_id:
            raise GatewayError("Refund response is missing id", retryable=False)
        return cls(
            id=refund_id,
            payment_id=_text(data.get("payment_id")) or str(payment_id),
            amount=_amount(data.get("amount"), required=True, what="refund"),
            status=_text(data.get("status")).lower(),
            created_at=_dt(data.get("date_created")),
        )


# ============================================================
# PORT
# ============================================================

class PaymentGateway(abc.ABC):
    """
    Adapter contract. `config` is a tenants PaymentConfig; when omitted the
    platform credentials are used.
    """

    @abc.abstractmethod
    def create_intent(self, order, config) -> PaymentIntent:
        raise NotImplementedError

    @abc.abstractmethod
    def fetch_payment(self, external_id: str, config=None) -> PaymentRecord:
        raise NotImplementedError

    @abc.abstractmethod
    def refund(self, external_id: str, amount: Optional[Decimal] = None, config=None) -> RefundRecord:
        raise NotImplementedError


_gateway: Optional[PaymentGateway] = None


def get_gateway() -> PaymentGateway:
    global _gateway
    if _gateway is None:
        payments = getattr(settings, "PAYMENTS", {}) or {}
        path = payments.get("GATEWAY_CLASS") or "payments.services.mercadopago.MercadoPagoGateway"
        _gateway = import_string(path)()
    return _gateway


def set_gateway(gateway: Optional[PaymentGateway]) -> None:
    global _gateway
    _gateway = gateway


def reset_gateway() -> None:
    set_gateway(None)

# orders/services/exceptions.py

"""
STOREFRONT DOMAIN ERRORS

Centralized error taxonomy shared by the stock ledger, order repository,
checkout orchestrator, payment adapter and reconciliation engine.

Every error carries:
- code: stable machine-readable identifier (API error body)
- http_status: status the HTTP layer maps it to
"""

from __future__ import annotations


class StorefrontError(Exception):
    """Base exception for all storefront domain failures."""

    code = "storefront_error"
    http_status = 400

    def __init__(self, message: str = "", **context):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code)
        self.context = context

    def __str__(self):
        return self.message


class ValidationError(StorefrontError):
    """Invalid input."""

    code = "validation_error"
    http_status = 400


class NotFoundError(StorefrontError):
    """Resource not found."""

    code = "not_found"
    http_status = 404


class InsufficientStockError(StorefrontError):
    """Insufficient stock."""

    code = "insufficient_stock"
    http_status = 409

    def __init__(self, message: str = "", *, available: int = 0, **context):
        super().__init__(message, available=available, **context)
        self.available = int(available)


class PermissionDeniedError(StorefrontError):
    """You do not have permission to perform this action."""

    code = "permission_denied"
    http_status = 403


class PaymentConfigError(StorefrontError):
    """Payment gateway is not enabled or configured for this store."""

    code = "payment_config_error"
    http_status = 400


class GatewayError(StorefrontError):
    """Payment provider request failed. Retry later."""

    code = "gateway_error"
    http_status = 502

    def __init__(self, message: str = "", *, retryable: bool = True, **context):
        super().__init__(message, retryable=retryable, **context)
        self.retryable = bool(retryable)


class GatewayTimeoutError(GatewayError):
    """Payment provider did not answer in time."""

    code = "gateway_timeout"
    http_status = 504


class InvalidStateError(StorefrontError):
    """Operation not allowed in the current state."""

    code = "invalid_state"
    http_status = 409


class ConcurrencyConflictError(StorefrontError):
    """The order was modified concurrently. Reload and retry."""

    code = "concurrency_conflict"
    http_status = 409

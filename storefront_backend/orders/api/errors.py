# orders/api/errors.py

from rest_framework.response import Response

from orders.services.exceptions import StorefrontError


# ======================================================
# API ERROR NORMALIZATION
# ======================================================

def error_response(*, code: str, message: str, http_status: int, **extra):
    """
    Canonical API error response.
    """
    body = {"error": {"code": code, "message": message}}
    body.update(extra)
    return Response(body, status=http_status)


def domain_error_response(exc: StorefrontError, **extra):
    return error_response(
        code=exc.code,
        message=exc.message,
        http_status=exc.http_status,
        **extra,
    )


class DomainErrorMixin:
    """
    Maps StorefrontError raised anywhere in a view to the canonical error body.
    DRF's own exceptions (serializer validation, auth) keep DRF's shape.
    """

    def handle_exception(self, exc):
        if isinstance(exc, StorefrontError):
            return domain_error_response(exc)
        return super().handle_exception(exc)

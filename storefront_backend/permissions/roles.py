# permissions/roles.py

from __future__ import annotations

from typing import Optional

from rest_framework.permissions import BasePermission

from orders.services.exceptions import PermissionDeniedError


# =========================================================
# ROLE CONSTANTS
# =========================================================
# Mirror users.User.ROLE_* (kept as plain strings to avoid model imports here).
ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"
ROLE_SUPERADMIN = "superadmin"

STAFF_ROLES = {ROLE_ADMIN, ROLE_SUPERADMIN}


# =========================================================
# CAPABILITIES (THE REAL PERMISSION LANGUAGE)
# =========================================================
# Views protect capabilities, not raw roles.
CAP_ORDERS_CHECKOUT = "orders.checkout"
CAP_ORDERS_VIEW_STORE = "orders.view_store"      # list/see every order of a store
CAP_ORDERS_MANAGE = "orders.manage"              # fulfillment status updates
CAP_ORDERS_DELETE = "orders.delete"              # hard delete (restocks)
CAP_ORDERS_OVERRIDE_PRICE = "orders.override_price"

CAP_PAYMENTS_VIEW = "payments.view"              # provider payment lookup
CAP_PAYMENTS_OVERRIDE = "payments.override"      # manual payment status
CAP_PAYMENTS_REFUND = "payments.refund"

ALL_CAPABILITIES = {
    CAP_ORDERS_CHECKOUT,
    CAP_ORDERS_VIEW_STORE,
    CAP_ORDERS_MANAGE,
    CAP_ORDERS_DELETE,
    CAP_ORDERS_OVERRIDE_PRICE,
    CAP_PAYMENTS_VIEW,
    CAP_PAYMENTS_OVERRIDE,
    CAP_PAYMENTS_REFUND,
}


# =========================================================
# ROLE → CAPABILITY MAP
# =========================================================
ROLE_CAPABILITIES: dict[str, set[str]] = {
    ROLE_SUPERADMIN: {*ALL_CAPABILITIES},
    ROLE_ADMIN: {*ALL_CAPABILITIES},
    ROLE_CUSTOMER: {
        CAP_ORDERS_CHECKOUT,
    },
}


# =========================================================
# Helpers
# =========================================================
def get_user_role(user) -> Optional[str]:
    return getattr(user, "role", None)


def capabilities_for(user) -> set[str]:
    return set(ROLE_CAPABILITIES.get(get_user_role(user), set()))


def has_capability(user, cap: str) -> bool:
    if not user or not getattr(user, "is_authenticated", False):
        return False
    return cap in capabilities_for(user)


def is_platform_admin(user) -> bool:
    return get_user_role(user) == ROLE_SUPERADMIN


def can_manage_store(user, store_id) -> bool:
    """Superadmin: any store. Store admin: only their own store."""
    if is_platform_admin(user):
        return True
    if get_user_role(user) != ROLE_ADMIN:
        return False
    own = getattr(user, "store_id", None)
    return own is not None and str(own) == str(store_id)


def ensure_store_scope(user, store_id) -> None:
    if not can_manage_store(user, store_id):
        raise PermissionDeniedError("You cannot manage orders of this store")


def can_view_order(user, order) -> bool:
    if str(getattr(order, "buyer_id", "")) == str(getattr(user, "pk", None)):
        return True
    return has_capability(user, CAP_ORDERS_VIEW_STORE) and can_manage_store(user, order.store_id)


# =========================================================
# Capability Permissions
# =========================================================
class HasCapability(BasePermission):
    """
    Require a specific capability.

    Usage:
        permission_classes = [IsAuthenticated, HasCapability]
        view.required_capability = CAP_PAYMENTS_REFUND

    Views serving several methods may set `required_capabilities` instead:
        {"PUT": CAP_ORDERS_MANAGE, "DELETE": CAP_ORDERS_DELETE}
    """

    def has_permission(self, request, view):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        per_method = getattr(view, "required_capabilities", None) or {}
        required = per_method.get(request.method) or getattr(view, "required_capability", None)
        if not required:
            # deny-by-default to avoid accidental open endpoints
            return False

        return required in capabilities_for(user)

# Overview: Permission system package.
# Re-exports all public APIs for backwards-compatible imports.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    REQUEST_PERMISSIONS,
    APPROVAL_PERMISSIONS,
    INVOICE_PERMISSIONS,
    PAYMENT_PERMISSIONS,
    USER_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS
from .helpers import (
    get_permission_definition,
    validate_permission_code,
    unknown_permission_codes,
    get_role_permissions,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "REQUEST_PERMISSIONS",
    "APPROVAL_PERMISSIONS",
    "INVOICE_PERMISSIONS",
    "PAYMENT_PERMISSIONS",
    "USER_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "get_permission_definition",
    "validate_permission_code",
    "unknown_permission_codes",
    "get_role_permissions",
]

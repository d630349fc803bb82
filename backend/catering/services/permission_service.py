# Overview: Service-layer operations for permission; the single authorization policy.

"""
Role-Based Authorization Policy

WHY: Every role check in the workflow goes through one function,
is_allowed(user, action, resource), instead of being scattered across
routes and services. Roles map to permission codes (see catering.permissions);
ownership rules are layered on top for the actions a requester may take on
their own requests.

DESIGN PRINCIPLES:
- Fail closed: unknown actions, unknown roles and inactive users are denied
- Log denials only: grants are not logged
"""

from __future__ import annotations

from flask import current_app

from ..permissions import DEFAULT_ROLE_PERMISSIONS, get_role_permissions, unknown_permission_codes


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


# Action -> permission code that grants it outright.
ACTION_PERMISSIONS = {
    "request.create": "CREATE_REQUEST",
    "request.list_all": "VIEW_ALL_REQUESTS",
    "request.view": "VIEW_ALL_REQUESTS",
    "request.edit": "EDIT_ANY_REQUEST",
    "request.delete": "EDIT_ANY_REQUEST",
    "request.approve": "APPROVE_REQUEST",
    "request.reject": "APPROVE_REQUEST",
    "request.revision": "APPROVE_REQUEST",
    "request.fulfill": "FULFILL_REQUEST",
    "approvals.view": "APPROVE_REQUEST",
    "invoice.manage": "MANAGE_INVOICES",
    "payment.manage": "MANAGE_PAYMENTS",
    "user.manage": "MANAGE_USERS",
}

# Actions the owner of a request may take without the role permission.
OWNER_ACTIONS = {"request.view", "request.edit", "request.delete"}


def check_catalog(action_permissions=None, role_permissions=None) -> None:
    """Fail at import when an action or role names a code missing from the catalog."""
    codes = list((action_permissions or ACTION_PERMISSIONS).values())
    for granted in (role_permissions or DEFAULT_ROLE_PERMISSIONS).values():
        codes.extend(granted)
    unknown = unknown_permission_codes(codes)
    if unknown:
        raise RuntimeError(f"Unknown permission codes: {', '.join(unknown)}")


check_catalog()


def get_user_permissions(user) -> set[str]:
    """Permission codes for a user (empty when inactive)."""
    if user is None or not user.is_active:
        return set()
    return get_role_permissions(user.role)


def user_has_permission(user, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user)


def is_allowed(user, action: str, resource=None) -> bool:
    """
    Decide whether user may perform action on resource.

    resource is the ServiceRequest for request-scoped actions; ownership
    is checked against its requester_id. Anything else is role-only.
    """
    code = ACTION_PERMISSIONS.get(action)
    if code is None or user is None:
        return False

    if user_has_permission(user, code):
        return True

    if action in OWNER_ACTIONS and resource is not None and user.is_active:
        return getattr(resource, "requester_id", None) == user.id

    return False


def require(user, action: str, resource=None) -> None:
    """
    Enforce is_allowed, raising PermissionDeniedError on denial.

    Denials are logged as warnings with the actor and the action.
    """
    if is_allowed(user, action, resource):
        return

    current_app.logger.warning(
        "Permission denied: user=%s role=%s action=%s resource=%r",
        getattr(user, "id", None),
        getattr(user, "role", None),
        action,
        resource,
    )
    raise PermissionDeniedError(f"Not allowed to perform {action}")

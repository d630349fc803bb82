# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- REQUESTS --

REQUEST_PERMISSIONS = [
    (
        "CREATE_REQUEST",
        "Create Request",
        "Submit a new catering service request",
        PermissionCategory.REQUESTS,
    ),
    (
        "VIEW_ALL_REQUESTS",
        "View All Requests",
        "See requests raised by any user (requesters only see their own)",
        PermissionCategory.REQUESTS,
    ),
    (
        "EDIT_ANY_REQUEST",
        "Edit Any Request",
        "Edit or delete requests owned by other users",
        PermissionCategory.REQUESTS,
    ),
    (
        "FULFILL_REQUEST",
        "Fulfill Request",
        "Mark an APPROVED request as FULFILLED",
        PermissionCategory.REQUESTS,
    ),
]


# -- APPROVALS --

APPROVAL_PERMISSIONS = [
    (
        "APPROVE_REQUEST",
        "Approve Request",
        "Approve, reject, or return a request for revision",
        PermissionCategory.APPROVALS,
    ),
]


# -- INVOICES --

INVOICE_PERMISSIONS = [
    (
        "MANAGE_INVOICES",
        "Manage Invoices",
        "Create, edit, and approve invoices for payment",
        PermissionCategory.INVOICES,
    ),
]


# -- PAYMENTS --

PAYMENT_PERMISSIONS = [
    (
        "MANAGE_PAYMENTS",
        "Manage Payments",
        "Record, edit, and delete payments against invoices",
        PermissionCategory.PAYMENTS,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "MANAGE_USERS",
        "Manage Users",
        "List users and change their roles",
        PermissionCategory.USERS,
    ),
]


PERMISSION_DEFINITIONS = (
    REQUEST_PERMISSIONS
    + APPROVAL_PERMISSIONS
    + INVOICE_PERMISSIONS
    + PAYMENT_PERMISSIONS
    + USER_PERMISSIONS
)

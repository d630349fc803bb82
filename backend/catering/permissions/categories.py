# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    REQUESTS = "REQUESTS"
    APPROVALS = "APPROVALS"
    INVOICES = "INVOICES"
    PAYMENTS = "PAYMENTS"
    USERS = "USERS"

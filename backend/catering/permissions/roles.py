# Overview: Default permission sets for each user role.

DEFAULT_ROLE_PERMISSIONS = {
    "REQUESTER": [
        "CREATE_REQUEST",
    ],
    "APPROVER": [
        "CREATE_REQUEST",
        "VIEW_ALL_REQUESTS",
        "APPROVE_REQUEST",
    ],
    "FINANCE_OFFICER": [
        "CREATE_REQUEST",
        "VIEW_ALL_REQUESTS",
        "EDIT_ANY_REQUEST",
        "APPROVE_REQUEST",
        "FULFILL_REQUEST",
        "MANAGE_INVOICES",
        "MANAGE_PAYMENTS",
        "MANAGE_USERS",
    ],
}

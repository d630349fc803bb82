from .directory import Department, User, ROLE_REQUESTER, ROLE_APPROVER, ROLE_FINANCE_OFFICER, VALID_ROLES
from .requests import ServiceRequest, Attachment
from .ledger import Invoice, Payment
from .notifications import Notification
from .audit import AuditLog, DocumentSequence

__all__ = [
    'Department', 'User',
    'ROLE_REQUESTER', 'ROLE_APPROVER', 'ROLE_FINANCE_OFFICER', 'VALID_ROLES',
    'ServiceRequest', 'Attachment',
    'Invoice', 'Payment',
    'Notification',
    'AuditLog', 'DocumentSequence',
]

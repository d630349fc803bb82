# Overview: Service-layer operations for invoices raised against approved requests.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Invoice, ServiceRequest, User
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)
from . import audit_service, notification_service, permission_service
from .concurrency import lock_for_update, run_numbered_with_retry, run_with_retry
from .document_service import next_invoice_no
from catering.time_utils import format_day


class InvoiceError(Exception):
    """Raised when an invoice operation violates ledger rules."""
    pass


INVOICE_STATUSES = (
    "DRAFT",
    "SUBMITTED",
    "VERIFIED",
    "APPROVED_FOR_PAYMENT",
    "DISPUTED",
    "PARTIALLY_PAID",
    "PAID",
    "CLOSED",
)

APPROVABLE_STATUSES = ("SUBMITTED", "VERIFIED")

INVOICE_POLICY = ModelValidationPolicy(
    writable_fields={
        "invoice_date",
        "due_date",
        "gross_amount_cents",
        "tax_amount_cents",
        "net_amount_cents",
        "status",
    },
    required_on_create={
        "invoice_date",
        "due_date",
        "gross_amount_cents",
        "tax_amount_cents",
        "net_amount_cents",
    },
    positive_fields={"gross_amount_cents", "net_amount_cents"},
    non_negative_fields={"tax_amount_cents"},
    choices={"status": INVOICE_STATUSES},
)


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def get_invoice_for_user(invoice_id: int, user: User) -> Invoice:
    """Finance and approvers read any invoice; requesters only their own requests'."""
    invoice = get_invoice(invoice_id)
    permission_service.require(user, "request.view", invoice.request)
    return invoice


def list_invoices(
    user: User,
    *,
    status: str | None = None,
    from_date=None,
    to_date=None,
    request_id: int | None = None,
) -> list[Invoice]:
    """
    Invoices newest first, filtered by status and invoice_date range.

    This is also the query surface for external reporting.
    """
    query = db.session.query(Invoice)
    if not permission_service.is_allowed(user, "request.list_all"):
        query = query.join(ServiceRequest, ServiceRequest.id == Invoice.request_id).filter(
            ServiceRequest.requester_id == user.id
        )
    if status:
        status = status.upper()
        if status not in INVOICE_STATUSES:
            raise ValidationError(
                "Invalid status filter",
                [{"field": "status", "message": f"must be one of {', '.join(INVOICE_STATUSES)}"}],
            )
        query = query.filter(Invoice.status == status)
    if from_date:
        query = query.filter(Invoice.invoice_date >= from_date)
    if to_date:
        query = query.filter(Invoice.invoice_date <= to_date)
    if request_id:
        query = query.filter(Invoice.request_id == request_id)
    return query.order_by(Invoice.invoice_date.desc(), Invoice.id.desc()).all()


def _check_dates(patch: dict, invoice: Invoice | None = None) -> None:
    invoice_date = patch.get("invoice_date", invoice.invoice_date if invoice else None)
    due_date = patch.get("due_date", invoice.due_date if invoice else None)
    if invoice_date and due_date and due_date < invoice_date:
        raise ValidationError(
            "Validation failed",
            [{"field": "due_date", "message": "cannot be before invoice_date"}],
        )


def create_invoice(user: User, payload: dict) -> Invoice:
    """
    Raise an invoice against an APPROVED request.

    net is expected to equal gross + tax but is taken as given. The
    requester is notified after commit.
    """
    permission_service.require(user, "invoice.manage")

    payload = dict(payload or {}) if isinstance(payload, dict) else payload
    request_id = payload.pop("request_id", None) if isinstance(payload, dict) else None

    issues = []
    if request_id is None:
        issues.append({"field": "request_id", "message": "is required"})
    elif isinstance(request_id, str) and request_id.strip().isdigit():
        request_id = int(request_id.strip())
    elif isinstance(request_id, bool) or not isinstance(request_id, int):
        issues.append({"field": "request_id", "message": "must be an integer"})
    try:
        patch = validate_payload(
            model=Invoice,
            payload=payload,
            policy=INVOICE_POLICY,
            partial=False,
        )
    except ValidationError as e:
        raise ValidationError("Validation failed", issues + e.issues)
    if issues:
        raise ValidationError("Validation failed", issues)

    patch.pop("status", None)
    _check_dates(patch)
    user_id = user.id

    def _op() -> int:
        service_request = lock_for_update(
            db.session.query(ServiceRequest).filter_by(id=request_id)
        ).first()
        if not service_request:
            raise NotFoundError("Service request not found")
        if service_request.status != "APPROVED":
            raise ConflictError(
                "Can only create invoices for APPROVED requests",
                current_status=service_request.status,
            )

        invoice = Invoice(
            invoice_no=next_invoice_no(),
            request_id=service_request.id,
            status="SUBMITTED",
            total_paid_cents=0,
            created_by_id=user_id,
            **patch,
        )
        db.session.add(invoice)
        db.session.flush()

        audit_service.record(
            user_id=user_id,
            action="CREATE_INVOICE",
            entity_type="Invoice",
            entity_id=invoice.id,
            details=f"Created invoice {invoice.invoice_no} for {invoice.net_amount_cents} cents",
            request_id=service_request.id,
        )
        db.session.commit()
        return invoice.id

    invoice = get_invoice(run_numbered_with_retry(_op))
    current_app.logger.info("Invoice %s created by user %s", invoice.invoice_no, user_id)

    service_request = invoice.request
    notification_service.dispatch(
        "INVOICE_CREATED",
        [service_request.requester],
        request_id=service_request.id,
        invoice_id=invoice.id,
        invoice_no=invoice.invoice_no,
        net_amount=notification_service.format_cents(invoice.net_amount_cents),
        due_date=format_day(invoice.due_date),
        **notification_service.request_context(service_request),
    )
    return invoice


def update_invoice(user: User, invoice_id: int, payload: dict) -> Invoice:
    """
    Partial update of dates, amounts and status.

    Status may be set to any invoice status. Lowering net below what has
    already been paid is refused.
    """
    permission_service.require(user, "invoice.manage")
    patch = validate_payload(
        model=Invoice,
        payload=payload,
        policy=INVOICE_POLICY,
        partial=True,
    )
    user_id = user.id

    def _op() -> None:
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if not invoice:
            raise NotFoundError("Invoice not found")

        _check_dates(patch, invoice)
        new_net = patch.get("net_amount_cents", invoice.net_amount_cents)
        if new_net < invoice.total_paid_cents:
            raise InvoiceError(
                f"Net amount {new_net} is below the {invoice.total_paid_cents} already paid"
            )

        previous_status = invoice.status
        for key, value in patch.items():
            setattr(invoice, key, value)

        details = f"Updated {', '.join(sorted(patch)) or 'nothing'}"
        if invoice.status != previous_status:
            details += f"; status {previous_status} -> {invoice.status}"
        audit_service.record(
            user_id=user_id,
            action="UPDATE_INVOICE",
            entity_type="Invoice",
            entity_id=invoice.id,
            details=details,
            request_id=invoice.request_id,
        )
        db.session.commit()

    run_with_retry(_op)
    return get_invoice(invoice_id)


def approve_for_payment(user: User, invoice_id: int) -> Invoice:
    permission_service.require(user, "invoice.manage")
    user_id = user.id

    def _op() -> None:
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if not invoice:
            raise NotFoundError("Invoice not found")
        if invoice.status not in APPROVABLE_STATUSES:
            raise ConflictError(
                "Can only approve SUBMITTED or VERIFIED invoices for payment",
                current_status=invoice.status,
            )
        previous = invoice.status
        invoice.status = "APPROVED_FOR_PAYMENT"
        audit_service.record(
            user_id=user_id,
            action="APPROVE_INVOICE",
            entity_type="Invoice",
            entity_id=invoice.id,
            details=f"Invoice status changed from {previous} to APPROVED_FOR_PAYMENT",
            request_id=invoice.request_id,
        )
        db.session.commit()

    run_with_retry(_op)
    invoice = get_invoice(invoice_id)
    current_app.logger.info("Invoice %s approved for payment by user %s", invoice.invoice_no, user_id)
    return invoice

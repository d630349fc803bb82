# Overview: Service-layer operations for payments; keeps invoice totals and status in step.

"""
Payment Ledger

INVARIANT: for every invoice, the sum of its non-CANCELLED payment amounts
never exceeds net_amount_cents.

HOW: every payment mutation
1. locks the invoice row (SELECT ... FOR UPDATE; version_id on SQLite),
2. re-sums the invoice's other non-cancelled payments from the table,
3. refuses the change if the new total would pass net,
4. writes the payment, the invoice's total_paid_cents and its derived status
   and the audit entry, then commits once.

Two concurrent payments on one invoice therefore serialize on the invoice
row; the loser re-reads the winner's total.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Invoice, Notification, Payment, User
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)
from . import attachment_service, audit_service, notification_service, permission_service
from .concurrency import lock_for_update, run_numbered_with_retry, run_with_retry
from .document_service import next_payment_no


class PaymentError(Exception):
    """Raised when payment operation fails."""
    pass


PAYMENT_METHODS = ("CHEQUE", "TRANSFER", "MOBILE_MONEY", "CASH")
PAYMENT_STATUSES = ("DRAFT", "PROCESSED", "CLEARED", "CANCELLED", "FAILED")

# Invoice statuses that accept new payments
PAYABLE_STATUSES = ("SUBMITTED", "VERIFIED", "APPROVED_FOR_PAYMENT", "PARTIALLY_PAID")

PAYMENT_POLICY = ModelValidationPolicy(
    writable_fields={"method", "reference", "payment_date", "amount_cents", "status"},
    required_on_create={"method", "payment_date", "amount_cents"},
    positive_fields={"amount_cents"},
    choices={"method": PAYMENT_METHODS, "status": PAYMENT_STATUSES},
)


def get_payment(payment_id: int) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    return payment


def list_payments(
    user: User,
    *,
    status: str | None = None,
    from_date=None,
    to_date=None,
    invoice_id: int | None = None,
) -> list[Payment]:
    permission_service.require(user, "payment.manage")

    query = db.session.query(Payment)
    if status:
        status = status.upper()
        if status not in PAYMENT_STATUSES:
            raise ValidationError(
                "Invalid status filter",
                [{"field": "status", "message": f"must be one of {', '.join(PAYMENT_STATUSES)}"}],
            )
        query = query.filter(Payment.status == status)
    if from_date:
        query = query.filter(Payment.payment_date >= from_date)
    if to_date:
        query = query.filter(Payment.payment_date <= to_date)
    if invoice_id:
        query = query.filter(Payment.invoice_id == invoice_id)
    return query.order_by(Payment.payment_date.desc(), Payment.id.desc()).all()


def sum_active_payments(invoice_id: int, *, exclude_payment_id: int | None = None) -> int:
    """Sum of non-CANCELLED payment amounts on an invoice, read from the table."""
    query = db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0)).filter(
        Payment.invoice_id == invoice_id,
        Payment.status != "CANCELLED",
    )
    if exclude_payment_id is not None:
        query = query.filter(Payment.id != exclude_payment_id)
    return int(query.scalar() or 0)


def derive_invoice_status(invoice: Invoice, total_paid_cents: int) -> str:
    """
    Payment-progress status for an invoice given its paid total.

    - total >= net            -> PAID
    - 0 < total < net         -> PARTIALLY_PAID
    - total == 0 and the invoice was PAID/PARTIALLY_PAID -> APPROVED_FOR_PAYMENT
    - otherwise the current status stands
    """
    if total_paid_cents >= invoice.net_amount_cents:
        return "PAID"
    if total_paid_cents > 0:
        return "PARTIALLY_PAID"
    if invoice.status in ("PAID", "PARTIALLY_PAID"):
        return "APPROVED_FOR_PAYMENT"
    return invoice.status


def _lock_invoice(invoice_id: int) -> Invoice:
    invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def _check_balance(invoice: Invoice, total_paid_cents: int) -> None:
    if total_paid_cents > invoice.net_amount_cents:
        raise PaymentError(
            f"Payment exceeds outstanding balance: total {total_paid_cents} > net {invoice.net_amount_cents}"
        )


def _apply_total(invoice: Invoice, total_paid_cents: int) -> None:
    _check_balance(invoice, total_paid_cents)
    invoice.total_paid_cents = total_paid_cents
    invoice.status = derive_invoice_status(invoice, total_paid_cents)


def _coerce_invoice_id(payload) -> int:
    raw = payload.get("invoice_id") if isinstance(payload, dict) else None
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    if raw is None:
        raise ValidationError("Validation failed", [{"field": "invoice_id", "message": "is required"}])
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise ValidationError("Validation failed", [{"field": "invoice_id", "message": "must be an integer"}])
    return raw


def create_payment(user: User, payload: dict) -> Payment:
    """
    Record a payment against an invoice.

    The invoice must be SUBMITTED, VERIFIED, APPROVED_FOR_PAYMENT or
    PARTIALLY_PAID. A payment that would take the paid total past net is
    refused. New payments start PROCESSED.
    """
    permission_service.require(user, "payment.manage")

    invoice_id = _coerce_invoice_id(payload)
    body = {k: v for k, v in payload.items() if k not in ("invoice_id", "status")}
    patch = validate_payload(
        model=Payment,
        payload=body,
        policy=PAYMENT_POLICY,
        partial=False,
    )
    user_id = user.id

    def _op() -> int:
        invoice = _lock_invoice(invoice_id)
        total = sum_active_payments(invoice.id) + patch["amount_cents"]

        # Balance first, so a PAID invoice reports "exceeds balance"
        _check_balance(invoice, total)
        if invoice.status not in PAYABLE_STATUSES:
            raise ConflictError(
                f"Cannot record a payment on an invoice in status {invoice.status}",
                current_status=invoice.status,
            )

        _apply_total(invoice, total)

        payment = Payment(
            payment_no=next_payment_no(),
            invoice_id=invoice.id,
            status="PROCESSED",
            created_by_id=user_id,
            **patch,
        )
        db.session.add(payment)
        db.session.flush()

        audit_service.record(
            user_id=user_id,
            action="CREATE_PAYMENT",
            entity_type="Payment",
            entity_id=payment.id,
            details=(
                f"Recorded {payment.amount_cents} cents by {payment.method} on {invoice.invoice_no}; "
                f"invoice now {invoice.status}"
            ),
            request_id=invoice.request_id,
        )
        db.session.commit()
        return payment.id

    payment = get_payment(run_numbered_with_retry(_op))
    invoice = payment.invoice
    current_app.logger.info(
        "Payment %s recorded on invoice %s (%s)", payment.payment_no, invoice.invoice_no, invoice.status
    )

    service_request = invoice.request
    notification_service.dispatch(
        "PAYMENT_RECORDED",
        [service_request.requester],
        request_id=service_request.id,
        invoice_id=invoice.id,
        payment_id=payment.id,
        invoice_no=invoice.invoice_no,
        payment_no=payment.payment_no,
        amount=notification_service.format_cents(payment.amount_cents),
        balance=notification_service.format_cents(invoice.balance_cents),
        invoice_status=invoice.status,
        **notification_service.request_context(service_request),
    )
    return payment


def update_payment(user: User, payment_id: int, payload: dict) -> Payment:
    """
    Change method, reference, date, amount or status of a payment.

    The invoice total is re-derived with the edited payment; if it would
    pass net the change is refused. Invoice status is recomputed when the
    amount or status changed.
    """
    permission_service.require(user, "payment.manage")
    patch = validate_payload(
        model=Payment,
        payload=payload,
        policy=PAYMENT_POLICY,
        partial=True,
    )
    user_id = user.id

    def _op() -> None:
        payment = get_payment(payment_id)
        invoice = _lock_invoice(payment.invoice_id)
        db.session.refresh(payment)

        new_amount = patch.get("amount_cents", payment.amount_cents)
        new_status = patch.get("status", payment.status)
        affects_total = new_amount != payment.amount_cents or new_status != payment.status

        previous_invoice_status = invoice.status
        if affects_total:
            others = sum_active_payments(invoice.id, exclude_payment_id=payment.id)
            own = new_amount if new_status != "CANCELLED" else 0
            _apply_total(invoice, others + own)

        for key, value in patch.items():
            setattr(payment, key, value)

        details = f"Updated {', '.join(sorted(patch)) or 'nothing'}"
        if invoice.status != previous_invoice_status:
            details += f"; invoice {previous_invoice_status} -> {invoice.status}"
        audit_service.record(
            user_id=user_id,
            action="UPDATE_PAYMENT",
            entity_type="Payment",
            entity_id=payment.id,
            details=details,
            request_id=invoice.request_id,
        )
        db.session.commit()

    run_with_retry(_op)
    return get_payment(payment_id)


def delete_payment(user: User, payment_id: int) -> None:
    """
    Delete a CANCELLED payment and re-derive the invoice from what remains.
    """
    permission_service.require(user, "payment.manage")
    user_id = user.id
    files: list[str] = []

    def _op() -> None:
        payment = get_payment(payment_id)
        invoice = _lock_invoice(payment.invoice_id)
        db.session.refresh(payment)

        if payment.status != "CANCELLED":
            raise PaymentError("Only CANCELLED payments can be deleted")

        payment_no = payment.payment_no
        files[:] = attachment_service.stored_paths(payment.attachments)
        db.session.query(Notification).filter_by(payment_id=payment.id).update(
            {"payment_id": None}, synchronize_session=False
        )
        db.session.delete(payment)
        db.session.flush()

        _apply_total(invoice, sum_active_payments(invoice.id))

        audit_service.record(
            user_id=user_id,
            action="DELETE_PAYMENT",
            entity_type="Payment",
            entity_id=payment_id,
            details=f"Deleted cancelled payment {payment_no}; invoice now {invoice.status}",
            request_id=invoice.request_id,
        )
        db.session.commit()

    run_with_retry(_op)
    attachment_service.remove_files(files)
    current_app.logger.info("Payment %s deleted by user %s", payment_id, user_id)

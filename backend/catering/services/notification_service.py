# Overview: Service-layer operations for notifications; post-commit dispatch and the in-app inbox.

"""
Notification Dispatcher

WHY: Workflow transitions commit first, then publish. A failure here (bad
address, SMTP outage, template error) must never undo or fail the
transition the user asked for, so dispatch() catches and logs per
recipient and always returns.
"""

from __future__ import annotations

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Notification, User, ROLE_APPROVER, ROLE_FINANCE_OFFICER
from ..validation import NotFoundError
from catering.time_utils import format_day, utcnow
from . import mail_service


NOTIFICATION_TYPES = (
    "REQUEST_CREATED",
    "REQUEST_APPROVED",
    "REQUEST_REJECTED",
    "REQUEST_NEEDS_REVISION",
    "INVOICE_CREATED",
    "PAYMENT_RECORDED",
    "FINANCE_ACTION_REQUIRED",
)

MAX_PAGE_SIZE = 100


def format_cents(amount_cents: int | None) -> str:
    """1234567 -> '12,345.67'"""
    amount_cents = amount_cents or 0
    sign = "-" if amount_cents < 0 else ""
    whole, cents = divmod(abs(amount_cents), 100)
    return f"{sign}{whole:,}.{cents:02d}"


def _suffix(label: str, text: str | None) -> str:
    return f" {label}: {text}" if text else ""


def build_message(event_type: str, context: dict) -> tuple[str, str]:
    """In-app (title, message) for an event."""
    name = context.get("event_name", "")
    comments = context.get("comments")

    if event_type == "REQUEST_CREATED":
        return (
            f"New Service Request: {name}",
            f"A new service request has been submitted by {context.get('requester_name', '')} "
            f"for {name} on {context.get('event_date', '')}.",
        )
    if event_type == "REQUEST_APPROVED":
        return (
            f"Request Approved: {name}",
            f"Your service request for {name} has been approved and will proceed to "
            f"invoice generation.{_suffix('Comments', comments)}",
        )
    if event_type == "FINANCE_ACTION_REQUIRED":
        return (
            f"Request Approved - Action Required: {name}",
            f"Service request for {name} has been approved and requires invoice "
            f"generation.{_suffix('Approval comments', comments)}",
        )
    if event_type == "REQUEST_REJECTED":
        return (
            f"Request Rejected: {name}",
            f"Your service request for {name} has been rejected.{_suffix('Reason', comments)}",
        )
    if event_type == "REQUEST_NEEDS_REVISION":
        return (
            f"Revision Requested: {name}",
            f"Your service request for {name} requires revision before approval."
            f"{_suffix('Comments', comments)}",
        )
    if event_type == "INVOICE_CREATED":
        return (
            f"Invoice Created: {name}",
            f"An invoice ({context.get('invoice_no', '')}) has been generated for your service "
            f"request {name}. Invoice amount: {context.get('net_amount', '')}.",
        )
    if event_type == "PAYMENT_RECORDED":
        return (
            f"Payment Recorded: {name}",
            f"Payment of {context.get('amount', '')} has been recorded for your service "
            f"request {name}. Outstanding balance: {context.get('balance', '')}.",
        )
    raise ValueError(f"Unknown notification type: {event_type}")


def request_context(service_request) -> dict:
    """Template/message context shared by all request-scoped events."""
    requester = service_request.requester
    return {
        "request_no": service_request.request_no,
        "event_name": service_request.event_name,
        "event_date": format_day(service_request.event_date),
        "venue": service_request.venue,
        "attendees": service_request.attendees,
        "estimate": format_cents(service_request.estimate_amount_cents),
        "requester_name": requester.name if requester else "",
        "department_name": service_request.department.name if service_request.department else "",
        "status": service_request.status,
    }


def _deliver(notification: Notification, event_type: str, context: dict) -> None:
    subject, html = mail_service.render_email(event_type, recipient_name=notification.user.name, **context)
    sent = mail_service.send_html_mail(notification.recipient_email, subject, html, text=notification.message)
    if sent:
        notification.email_sent = True
        notification.email_sent_at = utcnow()
        db.session.commit()


def dispatch(
    event_type: str,
    recipients,
    *,
    request_id: int | None = None,
    invoice_id: int | None = None,
    payment_id: int | None = None,
    send_email: bool = True,
    **context,
) -> int:
    """
    Create an in-app notification per recipient and e-mail it.

    Call only after the domain change has been committed. Never raises:
    every failure is logged and the next recipient is attempted.
    Returns the number of notifications created.
    """
    created = 0
    seen: set[int] = set()

    for user in recipients:
        if user is None or user.id in seen:
            continue
        seen.add(user.id)

        try:
            title, message = build_message(event_type, context)
            notification = Notification(
                user_id=user.id,
                type=event_type,
                title=title,
                message=message,
                recipient_email=user.email,
                request_id=request_id,
                invoice_id=invoice_id,
                payment_id=payment_id,
            )
            db.session.add(notification)
            db.session.commit()
            created += 1
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Failed to create %s notification for user %s", event_type, user.id)
            continue

        if not send_email:
            continue

        try:
            _deliver(
                notification,
                event_type,
                dict(context, request_id=request_id, invoice_id=invoice_id, payment_id=payment_id),
            )
        except Exception:
            db.session.rollback()
            current_app.logger.exception("Failed to e-mail %s notification to user %s", event_type, user.id)

    current_app.logger.info("Dispatched %s to %d recipient(s)", event_type, created)
    return created


def approvers_and_finance() -> list[User]:
    return (
        db.session.query(User)
        .filter(User.role.in_((ROLE_APPROVER, ROLE_FINANCE_OFFICER)), User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )


def finance_officers() -> list[User]:
    return (
        db.session.query(User)
        .filter(User.role == ROLE_FINANCE_OFFICER, User.is_active.is_(True))
        .order_by(User.id.asc())
        .all()
    )


# -- Inbox --

def list_notifications(user_id: int, *, limit: int = 20, offset: int = 0) -> dict:
    if offset < 0:
        offset = 0
    if limit < 1:
        limit = 1
    if limit > MAX_PAGE_SIZE:
        limit = MAX_PAGE_SIZE

    rows = (
        db.session.query(Notification)
        .filter_by(user_id=user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .offset(offset)
        .all()
    )
    return {"notifications": rows, "unread_count": unread_count(user_id)}


def unread_count(user_id: int) -> int:
    return db.session.query(Notification).filter_by(user_id=user_id, is_read=False).count()


def mark_read(user_id: int, notification_id: int) -> None:
    """Reading a notification removes it from the inbox."""
    notification = (
        db.session.query(Notification)
        .filter_by(id=notification_id, user_id=user_id)
        .first()
    )
    if not notification:
        raise NotFoundError("Notification not found")
    db.session.delete(notification)
    db.session.commit()


def mark_all_read(user_id: int) -> int:
    count = (
        db.session.query(Notification)
        .filter_by(user_id=user_id)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return count


def cleanup_old_notifications(retention_days: int | None = None) -> int:
    """
    Delete read notifications older than the retention window.

    mark_read and mark_all_read delete rows outright, so is_read=True rows
    only come from direct writes (seeds, imports, admin fixes). Unread rows
    are never removed here; they stay in the inbox until the user reads them.
    """
    if retention_days is None:
        retention_days = current_app.config.get("NOTIFICATION_RETENTION_DAYS", 30)
    cutoff = utcnow() - timedelta(days=retention_days)

    count = (
        db.session.query(Notification)
        .filter(Notification.is_read.is_(True), Notification.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.session.commit()
    current_app.logger.info("Cleaned up %d old notifications", count)
    return count

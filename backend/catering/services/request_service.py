# Overview: Service-layer operations for service requests; the request workflow state machine.

"""
Service Request Workflow

WHY: Requests move through a small state machine with role-gated
transitions. Each transition changes the row and appends an audit entry in
one transaction; notifications go out only after that commit.

STATE MACHINE:
    SUBMITTED      -> APPROVED | REJECTED | NEEDS_REVISION
    NEEDS_REVISION -> APPROVED | REJECTED | SUBMITTED (owner edit)
    APPROVED       -> FULFILLED

Anything else is a ConflictError carrying the current status, with no
mutation and no audit entry.
"""

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import ServiceRequest, User
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    validate_payload,
)
from catering.time_utils import utcnow
from . import attachment_service, audit_service, department_service, notification_service, permission_service
from .concurrency import lock_for_update, run_numbered_with_retry, run_with_retry
from .document_service import next_request_no


class WorkflowError(Exception):
    """Raised when a request operation is not permitted by business rules."""
    pass


REQUEST_STATUSES = (
    "DRAFT",
    "SUBMITTED",
    "APPROVED",
    "NEEDS_REVISION",
    "REJECTED",
    "FULFILLED",
    "CLOSED",
)

EDITABLE_STATUSES = ("SUBMITTED", "NEEDS_REVISION")
PENDING_STATUSES = ("SUBMITTED", "NEEDS_REVISION")

# action -> (allowed from, target status)
TRANSITIONS = {
    "approve": (("SUBMITTED", "NEEDS_REVISION"), "APPROVED"),
    "reject": (("SUBMITTED", "NEEDS_REVISION"), "REJECTED"),
    "revision": (("SUBMITTED",), "NEEDS_REVISION"),
    "fulfill": (("APPROVED",), "FULFILLED"),
}

MIN_PHONE_LENGTH = 7

REQUEST_FIELDS = {
    "event_name",
    "event_date",
    "venue",
    "attendees",
    "estimate_amount_cents",
    "service_type",
    "description",
    "funding_source",
    "contact_phone",
}

REQUEST_POLICY = ModelValidationPolicy(
    writable_fields=REQUEST_FIELDS,
    required_on_create={
        "event_name",
        "event_date",
        "venue",
        "attendees",
        "estimate_amount_cents",
        "funding_source",
    },
    min_lengths={
        "event_name": 3,
        "venue": 2,
        "funding_source": 2,
        "contact_phone": MIN_PHONE_LENGTH,
    },
    positive_fields={"attendees", "estimate_amount_cents"},
)

CREATE_EXTRA_FIELDS = {"department_id", "department_name", "phone"}


def get_request(request_id: int) -> ServiceRequest:
    service_request = db.session.get(ServiceRequest, request_id)
    if not service_request:
        raise NotFoundError("Request not found")
    return service_request


def get_request_for_user(request_id: int, user: User) -> ServiceRequest:
    """Load a request, enforcing read access (own requests for requesters)."""
    service_request = get_request(request_id)
    permission_service.require(user, "request.view", service_request)
    return service_request


def list_requests(user: User, *, status: str | None = None) -> list[ServiceRequest]:
    """
    Newest first. Users without VIEW_ALL_REQUESTS only see their own.
    """
    query = db.session.query(ServiceRequest)
    if not permission_service.is_allowed(user, "request.list_all"):
        query = query.filter(ServiceRequest.requester_id == user.id)
    if status:
        status = status.upper()
        if status not in REQUEST_STATUSES:
            raise ValidationError(
                "Invalid status filter",
                [{"field": "status", "message": f"must be one of {', '.join(REQUEST_STATUSES)}"}],
            )
        query = query.filter(ServiceRequest.status == status)
    return query.order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc()).all()


def list_pending_approvals(user: User) -> list[ServiceRequest]:
    permission_service.require(user, "approvals.view")
    return (
        db.session.query(ServiceRequest)
        .filter(ServiceRequest.status.in_(PENDING_STATUSES))
        .order_by(ServiceRequest.created_at.asc(), ServiceRequest.id.asc())
        .all()
    )


def _resolve_phone(user: User, patch: dict) -> str | None:
    """
    Contact phone for a new request.

    A user with no phone on file must supply one; it is saved to the user.
    """
    phone = patch.pop("phone", None)
    phone = phone.strip() if isinstance(phone, str) else phone

    if phone is not None and (not isinstance(phone, str) or len(phone) < MIN_PHONE_LENGTH):
        raise ValidationError(
            "Validation failed",
            [{"field": "phone", "message": f"must be at least {MIN_PHONE_LENGTH} characters"}],
        )

    if not user.phone and not phone and not patch.get("contact_phone"):
        raise ValidationError("Phone contact required", [{"field": "phone", "message": "is required"}])

    return phone or patch.get("contact_phone")


def create_request(user: User, payload: dict) -> ServiceRequest:
    """
    Submit a new service request.

    Validates the payload, resolves (or creates) the department, saves a
    missing phone to the user, allocates REQ-YYYY-NNNNN and writes the
    CREATE_REQUEST audit entry in one transaction. Approvers and finance
    officers are notified after commit.
    """
    permission_service.require(user, "request.create")

    patch = validate_payload(
        model=ServiceRequest,
        payload=payload,
        policy=REQUEST_POLICY,
        partial=False,
        extra_fields=CREATE_EXTRA_FIELDS,
    )
    department_id = patch.pop("department_id", None)
    department_name = patch.pop("department_name", None)
    if department_id is None and not department_name:
        raise ValidationError(
            "Validation failed",
            [{"field": "department_name", "message": "department_id or department_name is required"}],
        )

    new_phone = _resolve_phone(user, patch)
    user_id = user.id

    def _op() -> int:
        requester = db.session.get(User, user_id)
        department = department_service.resolve_department(
            department_id=department_id,
            department_name=department_name,
        )
        if new_phone and not requester.phone:
            requester.phone = new_phone

        service_request = ServiceRequest(
            request_no=next_request_no(),
            requester_id=requester.id,
            department_id=department.id,
            status="SUBMITTED",
            **patch,
        )
        if not service_request.contact_phone:
            service_request.contact_phone = requester.phone or ""
        if service_request.description is None:
            service_request.description = ""

        db.session.add(service_request)
        db.session.flush()

        audit_service.record(
            user_id=requester.id,
            action="CREATE_REQUEST",
            entity_type="ServiceRequest",
            entity_id=service_request.id,
            details=f"Created request {service_request.request_no}",
            request_id=service_request.id,
        )
        db.session.commit()
        return service_request.id

    request_id = run_numbered_with_retry(_op)
    service_request = get_request(request_id)

    current_app.logger.info(
        "Request %s created by user %s", service_request.request_no, user_id
    )

    notification_service.dispatch(
        "REQUEST_CREATED",
        notification_service.approvers_and_finance(),
        request_id=service_request.id,
        **notification_service.request_context(service_request),
    )
    return service_request


def update_request(user: User, request_id: int, payload: dict) -> ServiceRequest:
    """
    Edit a request's details.

    Only the owner or a user with EDIT_ANY_REQUEST, and only while the
    request is SUBMITTED or NEEDS_REVISION. Status is not writable here; an
    owner edit of a NEEDS_REVISION request resubmits it.
    """
    service_request = get_request(request_id)
    permission_service.require(user, "request.edit", service_request)

    if isinstance(payload, dict) and "status" in payload:
        raise ValidationError(
            "Validation failed",
            [{"field": "status", "message": "cannot be changed by editing; use the workflow actions"}],
        )

    patch = validate_payload(
        model=ServiceRequest,
        payload=payload,
        policy=REQUEST_POLICY,
        partial=True,
    )
    user_id = user.id

    def _op() -> bool:
        locked = lock_for_update(
            db.session.query(ServiceRequest).filter_by(id=request_id)
        ).first()
        if not locked:
            raise NotFoundError("Request not found")
        if locked.status not in EDITABLE_STATUSES:
            raise ConflictError(
                f"Cannot edit a request in status {locked.status}",
                current_status=locked.status,
            )

        for key, value in patch.items():
            setattr(locked, key, value)

        resubmitted = locked.status == "NEEDS_REVISION" and locked.requester_id == user_id
        if resubmitted:
            locked.status = "SUBMITTED"

        changed = ", ".join(sorted(patch)) or "nothing"
        audit_service.record(
            user_id=user_id,
            action="UPDATE_REQUEST",
            entity_type="ServiceRequest",
            entity_id=locked.id,
            details=f"Updated {changed}" + ("; resubmitted" if resubmitted else ""),
            request_id=locked.id,
        )
        db.session.commit()
        return resubmitted

    resubmitted = run_with_retry(_op)
    service_request = get_request(request_id)

    if resubmitted:
        current_app.logger.info("Request %s resubmitted after revision", service_request.request_no)
        notification_service.dispatch(
            "REQUEST_CREATED",
            notification_service.approvers_and_finance(),
            request_id=service_request.id,
            **notification_service.request_context(service_request),
        )
    return service_request


def _transition(user: User, request_id: int, action: str, *, comments: str | None = None) -> ServiceRequest:
    permission_service.require(user, f"request.{action}")
    allowed_from, target = TRANSITIONS[action]
    user_id = user.id

    def _op() -> None:
        service_request = lock_for_update(
            db.session.query(ServiceRequest).filter_by(id=request_id)
        ).first()
        if not service_request:
            raise NotFoundError("Request not found")
        if service_request.status not in allowed_from:
            raise ConflictError(
                f"Cannot {action} a request in status {service_request.status}",
                current_status=service_request.status,
            )

        previous = service_request.status
        service_request.status = target

        if action == "approve":
            service_request.approver_id = user_id
            service_request.approval_date = utcnow()
        elif action == "reject":
            service_request.approver_id = user_id
            service_request.rejection_reason = comments
        elif action == "revision":
            service_request.approver_id = user_id
            service_request.revision_comments = comments

        details = f"Request status changed from {previous} to {target}"
        if comments:
            details += f": {comments}"
        audit_service.record(
            user_id=user_id,
            action=f"{target}_REQUEST",
            entity_type="ServiceRequest",
            entity_id=service_request.id,
            details=details,
            request_id=service_request.id,
        )
        db.session.commit()

    run_with_retry(_op)
    service_request = get_request(request_id)
    current_app.logger.info(
        "Request %s -> %s by user %s", service_request.request_no, target, user_id
    )
    return service_request


def approve_request(user: User, request_id: int, comments: str | None = None) -> ServiceRequest:
    service_request = _transition(user, request_id, "approve", comments=comments)

    context = notification_service.request_context(service_request)
    notification_service.dispatch(
        "REQUEST_APPROVED",
        [service_request.requester],
        request_id=service_request.id,
        comments=comments,
        **context,
    )
    notification_service.dispatch(
        "FINANCE_ACTION_REQUIRED",
        notification_service.finance_officers(),
        request_id=service_request.id,
        comments=comments,
        **context,
    )
    return service_request


def reject_request(user: User, request_id: int, reason: str | None = None) -> ServiceRequest:
    service_request = _transition(user, request_id, "reject", comments=reason)
    notification_service.dispatch(
        "REQUEST_REJECTED",
        [service_request.requester],
        request_id=service_request.id,
        comments=reason,
        **notification_service.request_context(service_request),
    )
    return service_request


def request_revision(user: User, request_id: int, comments: str | None = None) -> ServiceRequest:
    service_request = _transition(user, request_id, "revision", comments=comments)
    notification_service.dispatch(
        "REQUEST_NEEDS_REVISION",
        [service_request.requester],
        request_id=service_request.id,
        comments=comments,
        **notification_service.request_context(service_request),
    )
    return service_request


def fulfill_request(user: User, request_id: int) -> ServiceRequest:
    return _transition(user, request_id, "fulfill")


def delete_request(user: User, request_id: int) -> None:
    """
    Delete a REJECTED request with no invoices.

    Attachments, notifications and audit rows of the request go with it;
    one DELETE_REQUEST entry, not linked to the request, records the fact.
    Stored upload files are removed once the delete is committed.
    """
    service_request = get_request(request_id)
    permission_service.require(user, "request.delete", service_request)

    if service_request.status != "REJECTED":
        raise WorkflowError("Only REJECTED requests can be deleted")
    if service_request.invoices:
        raise WorkflowError("Cannot delete a request that has invoices")

    request_no = service_request.request_no
    files = attachment_service.stored_paths(service_request.attachments)
    db.session.delete(service_request)
    db.session.flush()

    audit_service.record(
        user_id=user.id,
        action="DELETE_REQUEST",
        entity_type="ServiceRequest",
        entity_id=request_id,
        details=f"Deleted rejected request {request_no}",
        request_id=None,
    )
    db.session.commit()
    attachment_service.remove_files(files)
    current_app.logger.info("Request %s deleted by user %s", request_no, user.id)

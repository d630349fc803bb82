from __future__ import annotations

from ..extensions import db
from catering.time_utils import to_utc_z


class ServiceRequest(db.Model):
    """
    Catering / event service request.

    LIFECYCLE:
        SUBMITTED -> APPROVED -> FULFILLED
        SUBMITTED -> NEEDS_REVISION -> SUBMITTED (owner edit) | APPROVED | REJECTED
        SUBMITTED -> REJECTED (deletable while it has no invoices)

    DRAFT and CLOSED exist for completeness; no transition leads into them.
    The requester is fixed at creation.
    """
    __tablename__ = "service_requests"
    __table_args__ = (
        db.Index("ix_service_requests_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "REQ-2026-00012")
    request_no = db.Column(db.String(32), nullable=False, unique=True, index=True)

    # Event metadata
    event_name = db.Column(db.String(255), nullable=False)
    event_date = db.Column(db.DateTime(timezone=True), nullable=False)
    venue = db.Column(db.String(255), nullable=False)
    attendees = db.Column(db.Integer, nullable=False)
    estimate_amount_cents = db.Column(db.Integer, nullable=False)
    service_type = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=False, default="")

    funding_source = db.Column(db.String(255), nullable=False)
    contact_phone = db.Column(db.String(30), nullable=False, default="")

    requester_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="SUBMITTED", index=True)

    # Approval outcome
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    approval_date = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    revision_comments = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    requester = db.relationship("User", foreign_keys=[requester_id], backref=db.backref("requests", lazy=True))
    approver = db.relationship("User", foreign_keys=[approver_id])
    department = db.relationship("Department", backref=db.backref("requests", lazy=True))

    invoices = db.relationship(
        "Invoice",
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="Invoice.id",
    )
    attachments = db.relationship("Attachment", backref="request", cascade="all, delete-orphan", lazy=True)
    notifications = db.relationship("Notification", backref="request", cascade="all, delete-orphan", lazy=True)
    audit_logs = db.relationship("AuditLog", backref="request", cascade="all, delete-orphan", lazy=True)

    def __repr__(self) -> str:
        return f"<ServiceRequest id={self.id} no={self.request_no!r} status={self.status}>"

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "request_no": self.request_no,
            "event_name": self.event_name,
            "requester_id": self.requester_id,
        }

    def to_dict(self, *, include_invoices: bool = False) -> dict:
        data = {
            "id": self.id,
            "request_no": self.request_no,
            "event_name": self.event_name,
            "event_date": to_utc_z(self.event_date),
            "venue": self.venue,
            "attendees": self.attendees,
            "estimate_amount_cents": self.estimate_amount_cents,
            "service_type": self.service_type,
            "description": self.description,
            "funding_source": self.funding_source,
            "contact_phone": self.contact_phone,
            "status": self.status,
            "requester": self.requester.to_summary() if self.requester else None,
            "department": self.department.to_summary() if self.department else None,
            "approver": self.approver.to_summary() if self.approver else None,
            "approval_date": to_utc_z(self.approval_date),
            "rejection_reason": self.rejection_reason,
            "revision_comments": self.revision_comments,
            "invoice_count": len(self.invoices),
            "attachments": [a.to_dict() for a in self.attachments],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_invoices:
            data["invoices"] = [inv.to_dict(include_payments=True) for inv in self.invoices]
        return data


class Attachment(db.Model):
    """
    Uploaded file metadata. Exactly one of request/invoice/payment is set.
    """
    __tablename__ = "attachments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_type = db.Column(db.String(128), nullable=False, default="application/octet-stream")
    file_size = db.Column(db.Integer, nullable=False, default=0)
    file_url = db.Column(db.String(512), nullable=False)

    uploaded_by_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    request_id = db.Column(db.Integer, db.ForeignKey("service_requests.id"), nullable=True, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=True, index=True)
    payment_id = db.Column(db.Integer, db.ForeignKey("payments.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "file_name": self.file_name,
            "file_type": self.file_type,
            "file_size": self.file_size,
            "file_url": self.file_url,
            "uploaded_by_id": self.uploaded_by_id,
            "request_id": self.request_id,
            "invoice_id": self.invoice_id,
            "payment_id": self.payment_id,
            "created_at": to_utc_z(self.created_at),
        }

from __future__ import annotations

from ..extensions import db
from catering.time_utils import to_utc_z


class AuditLog(db.Model):
    """
    Append-only audit trail of workflow actions.

    - Written in the same transaction as the change it records.
    - Never updated; removed only when its parent request is deleted.
    - entity_type/entity_id is a generic pointer (no FK) so the entry
      survives deletion of payments and of the request itself.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    action = db.Column(db.String(64), nullable=False, index=True)  # e.g., CREATE_REQUEST, APPROVED_REQUEST
    details = db.Column(db.Text, nullable=True)

    entity_type = db.Column(db.String(32), nullable=False)  # ServiceRequest, Invoice, Payment
    entity_id = db.Column(db.Integer, nullable=False)

    request_id = db.Column(db.Integer, db.ForeignKey("service_requests.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "details": self.details,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "request_id": self.request_id,
            "created_at": to_utc_z(self.created_at),
        }


class DocumentSequence(db.Model):
    """
    Atomic per-type, per-year document sequences.

    WHY: Request/invoice/payment numbers must be unique; a counter row
    incremented with UPDATE ... SET next_number = next_number + 1 replaces
    random suffixes.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "year", name="uq_doc_sequences_type_year"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_type": self.document_type,
            "year": self.year,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }

# Overview: Service-layer operations for the audit trail.

from __future__ import annotations

from ..extensions import db
from ..models import AuditLog


def record(
    *,
    user_id: int | None,
    action: str,
    entity_type: str,
    entity_id: int,
    details: str | None = None,
    request_id: int | None = None,
) -> AuditLog:
    """
    Append an audit entry to the current session.

    Does not commit: the entry lands in the same transaction as the change
    it describes, so either both persist or neither does.
    """
    entry = AuditLog(
        user_id=user_id,
        action=action,
        details=details,
        entity_type=entity_type,
        entity_id=entity_id,
        request_id=request_id,
    )
    db.session.add(entry)
    return entry


def list_for_request(request_id: int) -> list[AuditLog]:
    return (
        db.session.query(AuditLog)
        .filter_by(request_id=request_id)
        .order_by(AuditLog.id.asc())
        .all()
    )

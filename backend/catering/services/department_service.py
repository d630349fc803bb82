# Overview: Service-layer operations for departments (reference data).

from __future__ import annotations

import time

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Department
from ..validation import ValidationError


CREATE_ATTEMPTS = 5


def list_departments() -> list[Department]:
    return db.session.query(Department).order_by(Department.name.asc()).all()


def derive_code(name: str, *, now_ms: int | None = None) -> str:
    """
    Code for an ad-hoc department: first three letters of the name,
    upper-cased, plus the last three digits of a millisecond timestamp.

    >>> derive_code("Chemistry", now_ms=1700000000123)
    'CHE123'
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{name[:3].upper()}{str(now_ms)[-3:]}"


def resolve_department(*, department_id=None, department_name: str | None = None) -> Department:
    """
    Resolve the department for a new request.

    department_id wins when given. Otherwise the name is matched
    case-insensitively; an unknown name creates the department (flushed,
    not committed, so it shares the caller's transaction).
    """
    if department_id is not None:
        try:
            department_id = int(department_id)
        except (TypeError, ValueError):
            raise ValidationError(
                "Validation failed", [{"field": "department_id", "message": "must be an integer"}]
            )
        department = db.session.get(Department, department_id)
        if not department:
            raise ValidationError(
                "Validation failed", [{"field": "department_id", "message": "does not exist"}]
            )
        return department

    name = (department_name or "").strip()
    if len(name) < 2:
        raise ValidationError(
            "Validation failed",
            [{"field": "department_name", "message": "department_id or department_name is required"}],
        )

    department = (
        db.session.query(Department)
        .filter(db.func.lower(Department.name) == name.lower())
        .first()
    )
    if department:
        return department

    now_ms = int(time.time() * 1000)
    for attempt in range(CREATE_ATTEMPTS):
        department = Department(name=name, code=derive_code(name, now_ms=now_ms + attempt))
        try:
            with db.session.begin_nested():
                db.session.add(department)
            return department
        except IntegrityError:
            # Same name created concurrently: the existing row is the answer.
            # Otherwise the code collided; try the next suffix.
            existing = (
                db.session.query(Department)
                .filter(db.func.lower(Department.name) == name.lower())
                .first()
            )
            if existing:
                return existing

    raise ValidationError(
        "Validation failed", [{"field": "department_name", "message": "could not create department"}]
    )

# Overview: Service-layer operations for maintenance; seeding reference data and retention cleanup.

from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import Department, User, ROLE_APPROVER, ROLE_FINANCE_OFFICER, ROLE_REQUESTER
from . import notification_service


# (name, code, cost centre, approver e-mail)
DEFAULT_DEPARTMENTS = [
    ("Computer Science", "CS", "CC-CS-001", "approver.cs@sasakawa.edu"),
    ("Business Administration", "BUS", "CC-BUS-001", "approver.bus@sasakawa.edu"),
    ("Engineering", "ENG", "CC-ENG-001", None),
    ("Liberal Arts", "LA", "CC-LA-001", None),
    ("Finance Office", "FIN", "CC-FIN-001", None),
]

# (external id, e-mail, name, role, department code, phone)
DEFAULT_USERS = [
    ("seed_approver_cs", "approver.cs@sasakawa.edu", "Dr. Sarah Johnson", ROLE_APPROVER, "CS", "+1-555-0101"),
    ("seed_approver_bus", "approver.bus@sasakawa.edu", "Prof. Maria Rodriguez", ROLE_APPROVER, "BUS", "+1-555-0102"),
    ("seed_fin_off", "finance.officer@sasakawa.edu", "Michael Chen", ROLE_FINANCE_OFFICER, "FIN", "+1-555-0201"),
    ("seed_req_cs", "requester.cs@sasakawa.edu", "Alice Cooper", ROLE_REQUESTER, "CS", "+1-555-0301"),
    ("seed_req_bus", "requester.bus@sasakawa.edu", "Bob Wilson", ROLE_REQUESTER, "BUS", "+1-555-0302"),
    ("seed_req_eng", "requester.eng@sasakawa.edu", "Carol Davis", ROLE_REQUESTER, "ENG", "+1-555-0303"),
]


def seed_reference_data() -> dict:
    """
    Create the default departments and users if missing.

    Idempotent: existing rows (matched by department code / user e-mail)
    are left as they are. Seeded users are linked to the identity provider
    by e-mail on their first sign-in.
    """
    created = {"departments": 0, "users": 0}

    departments = {}
    for name, code, cost_centre, _ in DEFAULT_DEPARTMENTS:
        department = db.session.query(Department).filter_by(code=code).first()
        if not department:
            department = Department(name=name, code=code, cost_centre=cost_centre)
            db.session.add(department)
            created["departments"] += 1
        departments[code] = department
    db.session.flush()

    users = {}
    for external_id, email, name, role, department_code, phone in DEFAULT_USERS:
        user = db.session.query(User).filter_by(email=email).first()
        if not user:
            user = User(
                external_id=external_id,
                email=email,
                name=name,
                role=role,
                department_id=departments[department_code].id,
                phone=phone,
            )
            db.session.add(user)
            created["users"] += 1
        users[email] = user
    db.session.flush()

    for _, code, _, approver_email in DEFAULT_DEPARTMENTS:
        department = departments[code]
        if approver_email and department.approver_id is None:
            department.approver_id = users[approver_email].id

    db.session.commit()
    current_app.logger.info(
        "Seeded %d department(s) and %d user(s)", created["departments"], created["users"]
    )
    return created


def cleanup_notifications(*, retention_days: int | None = None) -> int:
    """Delete read notifications older than retention_days (config default)."""
    return notification_service.cleanup_old_notifications(retention_days)

from __future__ import annotations

from ..extensions import db
from catering.time_utils import to_utc_z


ROLE_REQUESTER = "REQUESTER"
ROLE_APPROVER = "APPROVER"
ROLE_FINANCE_OFFICER = "FINANCE_OFFICER"
VALID_ROLES = (ROLE_REQUESTER, ROLE_APPROVER, ROLE_FINANCE_OFFICER)


class Department(db.Model):
    """
    University department (reference data).

    Departments are mostly seeded; a request naming an unknown department
    creates one on the fly with a derived code.
    """
    __tablename__ = "departments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    cost_centre = db.Column(db.String(32), nullable=True)

    # Default approver for requests raised by this department
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id", use_alter=True, name="fk_departments_approver_id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    approver = db.relationship("User", foreign_keys=[approver_id], post_update=True)

    def __repr__(self) -> str:
        return f"<Department id={self.id} code={self.code!r}>"

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "code": self.code}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "cost_centre": self.cost_centre,
            "approver_id": self.approver_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class User(db.Model):
    """
    User accounts, mirrored from the external identity provider.

    WHY: The identity provider owns sign-in; this table holds what the
    workflow needs (role, department, phone) and gives every action an owner.
    Rows are created on the first authenticated request.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    # Subject identifier issued by the identity provider
    external_id = db.Column(db.String(128), nullable=False, unique=True, index=True)

    email = db.Column(db.String(255), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=False, default=ROLE_REQUESTER, index=True)

    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)
    phone = db.Column(db.String(30), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    department = db.relationship("Department", foreign_keys=[department_id], backref=db.backref("users", lazy=True))

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r} role={self.role}>"

    def to_summary(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "phone": self.phone,
            "department": self.department.to_summary() if self.department else None,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }

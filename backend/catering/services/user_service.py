# Overview: Service-layer operations for users; mirrors identity-provider principals locally.

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User, VALID_ROLES, ROLE_REQUESTER
from ..validation import ConflictError, ValidationError, NotFoundError


# Placeholder subjects of pre-provisioned accounts (see maintenance_service.DEFAULT_USERS)
SEED_SUBJECT_PREFIX = "seed_"


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def find_by_external_id(external_id: str) -> User | None:
    return db.session.query(User).filter_by(external_id=external_id).first()


def ensure_user(*, external_id: str, email: str | None = None, name: str | None = None) -> User:
    """
    Return the local user for an identity-provider subject, creating it on
    first sight.

    Lookup order:
    1. external_id (the normal case after the first sign-in)
    2. email, for pre-provisioned (seeded) accounts still holding a
       SEED_SUBJECT_PREFIX placeholder; the row is linked to the subject so
       later lookups hit step 1. An e-mail already linked to a different
       subject raises ConflictError.
    3. otherwise a new REQUESTER is created

    A concurrent first sign-in for the same subject loses the insert race
    inside a savepoint and re-reads the winner's row.
    """
    if not external_id:
        raise ValidationError("Identity subject is required", [{"field": "external_id", "message": "is required"}])

    user = find_by_external_id(external_id)
    if user:
        return user

    email = (email or "").strip().lower()
    if not email:
        raise ValidationError("Identity email is required", [{"field": "email", "message": "is required"}])

    user = db.session.query(User).filter(db.func.lower(User.email) == email).first()
    if user:
        if not user.external_id.startswith(SEED_SUBJECT_PREFIX):
            current_app.logger.warning("Subject mismatch for user %s; e-mail already linked", user.id)
            raise ConflictError("E-mail is already linked to another identity")
        user.external_id = external_id
        if name and not user.name:
            user.name = name
        db.session.commit()
        current_app.logger.info("Linked user %s to identity subject", user.id)
        return user

    user = User(
        external_id=external_id,
        email=email,
        name=(name or "").strip() or email.split("@")[0],
        role=ROLE_REQUESTER,
    )
    try:
        with db.session.begin_nested():
            db.session.add(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        user = find_by_external_id(external_id)
        if not user:
            raise
        return user

    current_app.logger.info("Created user %s (%s) on first sign-in", user.id, user.email)
    return user


def list_users(*, role: str | None = None) -> list[User]:
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role.upper())
    return query.order_by(User.name.asc(), User.id.asc()).all()


def change_role(*, user_id: int, role: str, actor_id: int | None = None) -> User:
    """
    Change a user's role.

    Roles are a closed set; anything else is a validation error.
    """
    role = (role or "").strip().upper()
    if role not in VALID_ROLES:
        raise ValidationError(
            "Invalid role",
            [{"field": "role", "message": f"must be one of {', '.join(VALID_ROLES)}"}],
        )

    user = get_user(user_id)
    previous = user.role
    user.role = role
    db.session.commit()

    current_app.logger.info(
        "User %s role changed %s -> %s by %s", user.id, previous, role, actor_id
    )
    return user

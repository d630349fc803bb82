from __future__ import annotations
from datetime import datetime
from catering.time_utils import parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum amount: 999,999,999.99 in minor units
# This prevents database overflow issues and nonsensical amounts
MAX_AMOUNT_CENTS = 99_999_999_999


class ValidationError(ValueError):
    """400-level input problem. Carries a list of {field, message} issues."""

    def __init__(self, message: str, issues: list[dict] | None = None):
        super().__init__(message)
        self.issues = issues or []

    def to_dict(self) -> dict:
        return {"error": str(self), "issues": self.issues}


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., action invalid in current status)."""

    def __init__(self, message: str, current_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status

    def to_dict(self) -> dict:
        data = {"error": str(self)}
        if self.current_status is not None:
            data["current_status"] = self.current_status
        return data


class NotFoundError(LookupError):
    """404-level: an entity id does not resolve."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - min_lengths: minimum stripped length for string fields
    - positive_fields / non_negative_fields: numeric range rules
    - choices: enumerated string fields
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    min_lengths: dict[str, int] = field(default_factory=dict)
    positive_fields: set[str] = field(default_factory=set)
    non_negative_fields: set[str] = field(default_factory=set)
    choices: dict[str, tuple[str, ...]] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValueError("must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValueError("must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValueError("must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValueError("must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValueError("must be an integer, not a decimal")
        # Other types
        raise ValueError("must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValueError("must be an ISO-8601 date or datetime")
            if dt is None:
                raise ValueError("must be an ISO-8601 date or datetime")
            return dt
        raise ValueError("must be a date or datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise ValueError("must be a string")
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
    extra_fields: set[str] | None = None,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    - min length / range / choice rules from the policy
    Returns a cleaned patch dict with only writable fields.

    extra_fields are accepted (and passed through untouched) even though they
    are not model columns, e.g. department_name on request creation.

    All problems are collected and raised together as one ValidationError.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload", [{"field": None, "message": "Body must be a JSON object"}])

    extra_fields = extra_fields or set()
    issues: list[dict] = []

    if not partial:
        for f in sorted(policy.required_on_create):
            if payload.get(f) is None:
                issues.append({"field": f, "message": "is required"})

    cols = _columns_by_key(model)
    patch: dict = {}

    for k, raw in payload.items():
        if k in extra_fields:
            patch[k] = raw.strip() if isinstance(raw, str) else raw
            continue

        # Reject unknown / non-writable fields
        if k not in policy.writable_fields or k not in cols:
            issues.append({"field": k, "message": "is not an allowed field"})
            continue

        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable and (partial or k not in policy.required_on_create):
                issues.append({"field": k, "message": "cannot be null"})
            elif col.nullable:
                patch[k] = None
            continue

        try:
            val = _coerce_value(col, raw)
        except ValueError as e:
            issues.append({"field": k, "message": str(e)})
            continue

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "" and k in policy.min_lengths:
                issues.append({"field": k, "message": "cannot be blank"})
                continue

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                issues.append({"field": k, "message": f"exceeds max length {col.type.length}"})
                continue

        min_len = policy.min_lengths.get(k)
        if min_len and isinstance(val, str) and len(val) < min_len:
            issues.append({"field": k, "message": f"must be at least {min_len} characters"})
            continue

        if k in policy.positive_fields and val <= 0:
            issues.append({"field": k, "message": "must be positive"})
            continue

        if k in policy.non_negative_fields and val < 0:
            issues.append({"field": k, "message": "cannot be negative"})
            continue

        if isinstance(val, int) and not isinstance(val, bool) and abs(val) > MAX_AMOUNT_CENTS:
            issues.append({"field": k, "message": f"cannot exceed {MAX_AMOUNT_CENTS}"})
            continue

        allowed = policy.choices.get(k)
        if allowed is not None:
            val = val.upper()
            if val not in allowed:
                issues.append({"field": k, "message": f"must be one of {', '.join(allowed)}"})
                continue

        patch[k] = val

    if issues:
        raise ValidationError("Validation failed", issues)

    return patch

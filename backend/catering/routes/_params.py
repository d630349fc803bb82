# Overview: Shared query-string parsing for list routes.

from flask import request

from ..validation import ValidationError
from catering.time_utils import parse_iso_datetime


def date_range_args(from_key: str = "from", to_key: str = "to"):
    """Parse ?from=...&to=... as ISO-8601; raises ValidationError on bad input."""
    issues = []
    parsed = []
    for key in (from_key, to_key):
        raw = request.args.get(key)
        try:
            parsed.append(parse_iso_datetime(raw))
        except ValueError:
            issues.append({"field": key, "message": "must be an ISO-8601 date or datetime"})
            parsed.append(None)
    if issues:
        raise ValidationError("Invalid date range", issues)
    return parsed[0], parsed[1]

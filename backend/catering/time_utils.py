from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


# Timestamps are stored UTC-naive; the API speaks ISO-8601 with a trailing Z.


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def current_year() -> int:
    """Year used for document numbering (REQ-2026-00001)."""
    return utcnow().year


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an event, invoice or payment date from client input.

    Accepts "2026-03-01", "2026-03-01T12:00", "2026-03-01T12:00:00Z" and
    explicit offsets. Naive values are taken as UTC; offsets are converted.
    Blank input is None; anything unparseable raises ValueError.
    """
    text = (value or "").strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = f"{text[:-1]}+00:00"
    return _as_utc_naive(datetime.fromisoformat(text))


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """2026-03-01 12:00:00 -> '2026-03-01T12:00:00Z' (seconds precision)."""
    if dt is None:
        return None
    return _as_utc_naive(dt).replace(microsecond=0).isoformat() + "Z"


def format_day(dt: Optional[datetime]) -> str:
    """Calendar date for notification text; '' when unset."""
    return dt.strftime("%Y-%m-%d") if dt else ""

"""Shared utility functions."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize datetime to UTC timezone."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def hours_between(start: datetime, end: datetime) -> float:
    """Signed number of hours from ``start`` to ``end``."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600


def clean_text(value: str | None) -> str | None:
    """Strip user text and turn blanks into None."""
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None

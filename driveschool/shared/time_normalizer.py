"""Normalization of stored date/time values into comparable UTC instants.

Schedule and booking records carry dates and times in several encodings:
native ``datetime``/``date`` objects (or wrappers exposing a conversion
method), epoch-seconds wrapper objects such as ``{"_seconds": ...}``,
ISO-8601 strings and bare ``HH:MM[:SS]`` time-of-day strings that only make
sense together with a calendar date. ``normalize_instant`` maps all of them to
an aware UTC ``datetime`` or to the ``NOT_REPRESENTABLE`` marker.

Callers must never substitute "now" or the epoch for a non-representable
value: aggregate code skips the record, write paths use ``require_instant``
which raises ``ValidationException``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import UTC, date, datetime, time, timedelta, tzinfo
from typing import Any

from driveschool.shared.exceptions import ValidationException

_TIME_OF_DAY_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_CONVERTER_METHODS = ("to_datetime", "to_pydatetime", "toDate")
_SECONDS_KEYS = ("seconds", "_seconds")
_NANOS_KEYS = ("nanoseconds", "_nanoseconds")


class NotRepresentable:
    """Marker for values that cannot be turned into an instant."""

    __slots__ = ()
    _instance: NotRepresentable | None = None

    def __new__(cls) -> NotRepresentable:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NOT_REPRESENTABLE"


NOT_REPRESENTABLE = NotRepresentable()

Instant = datetime
NormalizedInstant = datetime | NotRepresentable


def is_representable(value: NormalizedInstant) -> bool:
    """Return True when ``value`` is a concrete instant."""
    return isinstance(value, datetime)


def _to_utc(value: datetime, tz: tzinfo) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)
    return value.astimezone(UTC)


def _lookup(value: Any, keys: tuple[str, ...]) -> Any:
    for key in keys:
        if isinstance(value, Mapping):
            if key in value:
                return value[key]
        elif hasattr(value, key):
            return getattr(value, key)
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _from_epoch_wrapper(value: Any) -> NormalizedInstant | None:
    seconds = _lookup(value, _SECONDS_KEYS)
    if seconds is None:
        return None
    if not _is_number(seconds):
        return NOT_REPRESENTABLE
    nanos = _lookup(value, _NANOS_KEYS) or 0
    if not _is_number(nanos):
        return NOT_REPRESENTABLE
    try:
        return datetime.fromtimestamp(seconds, tz=UTC) + timedelta(microseconds=nanos // 1000)
    except (OverflowError, OSError, ValueError):
        return NOT_REPRESENTABLE


def _from_converter(value: Any, tz: tzinfo) -> NormalizedInstant | None:
    for method_name in _CONVERTER_METHODS:
        converter = getattr(value, method_name, None)
        if not callable(converter):
            continue
        try:
            converted = converter()
        except (TypeError, ValueError, OverflowError):
            return NOT_REPRESENTABLE
        if isinstance(converted, datetime):
            return _to_utc(converted, tz)
        return NOT_REPRESENTABLE
    return None


def _from_time_of_day(match: re.Match[str], base_date: Any, tz: tzinfo) -> NormalizedInstant:
    hour, minute = int(match.group(1)), int(match.group(2))
    second = int(match.group(3) or 0)
    if hour > 23 or minute > 59 or second > 59:
        return NOT_REPRESENTABLE
    if base_date is None:
        return NOT_REPRESENTABLE

    base = normalize_instant(base_date, tz=tz)
    if not isinstance(base, datetime):
        return NOT_REPRESENTABLE
    local_day = base.astimezone(tz).date()
    return datetime.combine(local_day, time(hour, minute, second), tzinfo=tz).astimezone(UTC)


def _from_string(value: str, base_date: Any, tz: tzinfo) -> NormalizedInstant:
    text = value.strip()
    if not text:
        return NOT_REPRESENTABLE

    match = _TIME_OF_DAY_RE.match(text)
    if match:
        return _from_time_of_day(match, base_date, tz)

    if "-" not in text and "T" not in text and "Z" not in text:
        return NOT_REPRESENTABLE
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return NOT_REPRESENTABLE
    return _to_utc(parsed, tz)


def normalize_instant(value: Any, base_date: Any = None, tz: tzinfo = UTC) -> NormalizedInstant:
    """Convert a stored date/time value into an aware UTC datetime.

    Naive values are interpreted in ``tz``. Bare ``HH:MM[:SS]`` strings are
    applied to the calendar day of ``base_date`` (itself normalized first).
    """
    if value is None or isinstance(value, bool):
        return NOT_REPRESENTABLE
    if isinstance(value, datetime):
        return _to_utc(value, tz)
    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=tz).astimezone(UTC)
    if isinstance(value, str):
        return _from_string(value, base_date, tz)
    if _is_number(value):
        return NOT_REPRESENTABLE

    converted = _from_converter(value, tz)
    if converted is not None:
        return converted
    from_epoch = _from_epoch_wrapper(value)
    if from_epoch is not None:
        return from_epoch
    return NOT_REPRESENTABLE


def combine_date_and_time(date_value: Any, time_value: Any, tz: tzinfo = UTC) -> NormalizedInstant:
    """Instant of a lesson boundary stored as separate date and time fields."""
    return normalize_instant(time_value, base_date=date_value, tz=tz)


def require_instant(value: Any, field: str, base_date: Any = None, tz: tzinfo = UTC) -> datetime:
    """Normalize a value supplied on a write path or raise ``ValidationException``."""
    result = normalize_instant(value, base_date=base_date, tz=tz)
    if not isinstance(result, datetime):
        raise ValidationException(
            f"Invalid date/time value for {field}",
            {field: "Not a recognizable date/time value"},
        )
    return result

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context

"""
Canonical time handling:
- Every stored timestamp is a civil-calendar string "YYYY-MM-DD HH:MM:SS"
  in the configured timezone (Config.TIMEZONE), with no offset.
- The canonical form sorts lexicographically, so range filters compare strings.
- Inputs with Z/offsets are converted into the civil timezone first.
"""

CANONICAL_FORMAT = "%Y-%m-%d %H:%M:%S"
DEFAULT_TIMEZONE = "America/Sao_Paulo"

# Naive input layouts accepted besides ISO-8601 (pt-BR first, it's what the UI sends)
_NAIVE_FORMATS = (
    "%d/%m/%Y, %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M",
    "%d/%m/%Y",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
)


def civil_timezone() -> ZoneInfo:
    name = DEFAULT_TIMEZONE
    if has_app_context():
        name = current_app.config.get("TIMEZONE", DEFAULT_TIMEZONE)
    return ZoneInfo(name)


def now_local() -> datetime:
    """Server-side 'now' in the civil timezone (naive)."""
    return datetime.now(civil_timezone()).replace(tzinfo=None, microsecond=0)


def format_timestamp(dt: datetime) -> str:
    if dt.tzinfo is not None:
        dt = dt.astimezone(civil_timezone()).replace(tzinfo=None)
    return dt.strftime(CANONICAL_FORMAT)


def now_str() -> str:
    return format_timestamp(now_local())


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a user-supplied date/time into a naive civil datetime.

    - None / "" -> None
    - datetime -> converted to the civil zone when aware
    - date -> midnight of that day
    - str -> pt-BR layouts, canonical layout, or ISO-8601 (Z/offsets honoured)

    Raises ValueError for anything else.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(civil_timezone()).replace(tzinfo=None)
        return value

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    if not isinstance(value, str):
        raise ValueError(f"unsupported timestamp value: {value!r}")

    s = value.strip()
    if not s:
        return None

    for fmt in _NAIVE_FORMATS:
        try:
            return datetime.strptime(s, fmt)
        except ValueError:
            continue

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)
    if dt.tzinfo is not None:
        return dt.astimezone(civil_timezone()).replace(tzinfo=None)
    return dt


def normalize_timestamp(value, *, default_now: bool = True) -> Optional[str]:
    """
    Canonical storage string for value.

    Absent or unparseable input falls back to "now" when default_now is set,
    otherwise to None.
    """
    try:
        dt = parse_timestamp(value)
    except ValueError:
        dt = None
    if dt is None:
        return now_str() if default_now else None
    return format_timestamp(dt)


def day_bounds(day: Optional[date] = None) -> tuple[str, str]:
    """Inclusive-start/exclusive-end canonical strings for one civil day."""
    if day is None:
        day = now_local().date()
    start = datetime(day.year, day.month, day.day)
    return format_timestamp(start), format_timestamp(start + timedelta(days=1))

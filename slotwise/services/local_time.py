"""Conversion between business wall-clock times and absolute UTC instants.

Skipped and ambiguous local times (DST transitions) resolve with zoneinfo's
default ``fold=0``: a time inside a spring-forward gap uses the offset in
effect before the gap, and a repeated fall-back time maps to its first
occurrence.
"""

import re
from datetime import UTC, date, datetime, time
from functools import lru_cache
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from slotwise.core.errors import InvalidInput, InvalidTimeFormat, InvalidTimeZone

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@lru_cache(maxsize=256)
def resolve_zone(timezone: str) -> ZoneInfo:
    if not timezone or not isinstance(timezone, str):
        raise InvalidTimeZone(f"Invalid time zone: {timezone!r}")
    try:
        return ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidTimeZone(f"Invalid time zone: {timezone!r}") from e


def parse_hhmm(value: str) -> time:
    match = _HHMM_RE.match(value) if isinstance(value, str) else None
    if not match:
        raise InvalidTimeFormat(f"Invalid time {value!r}, expected HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD query value."""
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as e:
        raise InvalidInput(f"Invalid date {value!r}, expected YYYY-MM-DD") from e


def to_instant(day: date, hhmm: str, timezone: str) -> datetime:
    """Local (date, HH:MM) in `timezone` -> aware UTC datetime."""
    zone = resolve_zone(timezone)
    local = datetime.combine(day, parse_hhmm(hhmm), tzinfo=zone)
    return local.astimezone(UTC)


def to_local(instant: datetime, timezone: str) -> tuple[date, str]:
    """Aware (or naive UTC) instant -> local (date, HH:MM) in `timezone`."""
    zone = resolve_zone(timezone)
    local = ensure_utc(instant).astimezone(zone)
    return local.date(), local.strftime("%H:%M")


def ensure_utc(dt: datetime) -> datetime:
    """Naive datetimes are treated as UTC (how the database stores them)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_naive_utc(dt: datetime) -> datetime:
    """Convert to naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def utc_now() -> datetime:
    return datetime.now(UTC)


def format_instant(instant: datetime) -> str:
    """ISO-8601 in UTC with a trailing Z."""
    return ensure_utc(instant).isoformat().replace("+00:00", "Z")

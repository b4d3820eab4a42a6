"""Time helpers for schedule slots that are local to an animal's timezone."""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

MINUTES_PER_DAY = 24 * 60


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(instant: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def get_zone(timezone_name: Optional[str]) -> ZoneInfo:
    if not timezone_name:
        raise ValueError("Timezone name is required")
    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(f"Unknown timezone: {timezone_name!r}") from exc


def to_local(instant: datetime, timezone_name: str) -> datetime:
    return ensure_utc(instant).astimezone(get_zone(timezone_name))


def minutes_since_midnight(local_dt: datetime) -> int:
    return local_dt.hour * 60 + local_dt.minute


def parse_time_local(token: str) -> int:
    """Parse "HH:MM" or "HH:MM:SS" into minutes since midnight."""
    if not isinstance(token, str):
        raise ValueError(f"Invalid time value: {token!r}")
    parts = token.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time value: {token!r}")
    hour, minute = int(parts[0]), int(parts[1])
    if hour > 23 or minute > 59 or (len(parts) == 3 and int(parts[2]) > 59):
        raise ValueError(f"Invalid time value: {token!r}")
    return hour * 60 + minute


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def local_slot_to_utc(local_date: date, minutes: int, timezone_name: str) -> datetime:
    zone = get_zone(timezone_name)
    local = datetime.combine(local_date, time(hour=minutes // 60, minute=minutes % 60), tzinfo=zone)
    return local.astimezone(timezone.utc)


def minutes_between(start: datetime, end: datetime) -> int:
    """Whole minutes from start to end, truncated toward negative infinity."""
    delta: timedelta = ensure_utc(end) - ensure_utc(start)
    return int(delta.total_seconds() // 60)

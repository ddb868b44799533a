from datetime import datetime, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo

from dosetrack.core.config import settings


def get_zoneinfo(tz_name: Optional[str] = None) -> Optional[ZoneInfo]:
    name = tz_name or getattr(settings, "DEFAULT_TIMEZONE", None)
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except Exception:
        return None


def utcnow() -> datetime:
    return datetime.now(dt_timezone.utc)


def to_utc_aware(dt: datetime | None) -> datetime | None:
    """
    Normalize any datetime to UTC-aware (tzinfo=UTC).
    - Aware datetimes are converted to UTC
    - Naive datetimes are assumed UTC and tz attached

    SQLite hands back naive values for DateTime(timezone=True) columns, so every
    comparison against a stored timestamp goes through here first.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=dt_timezone.utc)
    return dt.astimezone(dt_timezone.utc)


def to_local(dt: datetime | None, tz_name: Optional[str] = None) -> datetime | None:
    """Convert to the user's (or the default) timezone for display in messages."""
    if dt is None:
        return None
    tz = get_zoneinfo(tz_name)
    aware = to_utc_aware(dt)
    return aware.astimezone(tz) if tz else aware

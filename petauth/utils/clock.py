"""UTC 시간 유틸리티.

UTC clock helpers. Every persisted timestamp is UTC; some drivers (SQLite)
hand them back naive, so comparisons go through `as_utc`.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    """현재 UTC 시각 (Current timezone-aware UTC time)."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """naive 값은 UTC로 간주하여 tz 정보를 붙입니다.

    Attach UTC to naive datetimes, convert aware ones to UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

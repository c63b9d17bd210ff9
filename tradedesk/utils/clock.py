"""UTC time helpers.

SQLite hands datetimes back without tzinfo, so everything read from the store
goes through ``as_utc`` before it is compared or handed to the scheduler.
"""

from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

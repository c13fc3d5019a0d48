"""
UTC time helpers

All timestamps are stored and compared in UTC. Some drivers hand back naive
datetimes for timezone-aware columns; those are interpreted as UTC.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

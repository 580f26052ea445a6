# UTC time helpers shared by services, schemas and sweepers.
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return `value` as an aware UTC datetime.

    SQLite hands back naive datetimes; stored values are always UTC, so a naive
    value is tagged rather than converted.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_active(end_date: Optional[datetime], now: Optional[datetime] = None) -> bool:
    # A lease is active while its end date is at or after the current instant
    if end_date is None:
        return False
    return as_utc(end_date) >= (now or utcnow())


def days_until(end_date: datetime, now: Optional[datetime] = None) -> int:
    delta = as_utc(end_date) - (now or utcnow())
    return math.ceil(delta.total_seconds() / 86400)

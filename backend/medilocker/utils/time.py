"""UTC helpers shared by the services."""

from __future__ import annotations

import math
from datetime import UTC, date, datetime


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utc_day(value: datetime) -> date:
    """Calendar day bucket of a timestamp; day boundaries are UTC midnight."""
    return ensure_utc(value).date()


def days_left(expires_at: datetime, now: datetime | None = None) -> int:
    """Whole days until ``expires_at``, rounded up (negative once lapsed)."""
    now = now or utcnow()
    return math.ceil((ensure_utc(expires_at) - now).total_seconds() / 86400)

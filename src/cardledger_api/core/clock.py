"""UTC clock helpers shared by services that compare stored timestamps."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on round-trip)."""

    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def window_contains(start_at: datetime | None, end_at: datetime | None, now: datetime) -> bool:
    start = ensure_utc(start_at)
    end = ensure_utc(end_at)
    if start is not None and now < start:
        return False
    if end is not None and now > end:
        return False
    return True

"""
Time helpers shared by the rate limiter and the admission services.

Rate limit windows are tracked in epoch milliseconds; registration and
check-in timestamps are timezone-aware UTC datetimes. Some database drivers
(SQLite) hand back naive datetimes, so reads go through ``ensure_utc``.
"""

import time
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(time.time() * 1000)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

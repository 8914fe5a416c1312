from __future__ import annotations

import calendar
from datetime import datetime, timezone


def days_in_month(month: int, year: int) -> int:
    return calendar.monthrange(year, month)[1]


def now_utc() -> datetime:
    """Current UTC time.

    Note: Wrapped so tests can patch/mock easier.
    """
    return datetime.now(timezone.utc)

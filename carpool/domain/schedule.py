"""Calendar-day helpers.  Business rules compare dates, never times."""

from __future__ import annotations

from datetime import date, datetime, tzinfo
from typing import Callable

Clock = Callable[[], datetime]


def local_date(moment: datetime, tz: tzinfo) -> date:
    """Calendar date of *moment* in *tz*; naive values are already local."""
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(tz).date()


def system_clock(tz: tzinfo) -> Clock:
    return lambda: datetime.now(tz)

"""Calendar helpers: the local "today" and period windows."""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

PERIODS = ("week", "month", "year")


def local_today(tz_name: str, now: datetime | None = None) -> date:
    """Today's date in the configured timezone."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(ZoneInfo(tz_name)).date()


def shift_months(dt: datetime, months: int) -> datetime:
    """Move dt by whole months, clamping the day to the target month's length."""
    month_index = dt.month - 1 + months
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


def period_start(now: datetime, period: str) -> datetime:
    """Start of the trailing window ending at now.

    week  -> 7 days back
    month -> same day of the previous month
    year  -> same day of the previous year
    """
    if period == "week":
        return now - timedelta(days=7)
    if period == "month":
        return shift_months(now, -1)
    if period == "year":
        return shift_months(now, -12)
    msg = f"Unknown period '{period}'"
    raise ValueError(msg)


def previous_period_start(start: datetime, period: str) -> datetime:
    """Start of the window immediately before the one beginning at start."""
    return period_start(start, period)


def utc_date(ts: datetime) -> date:
    """Calendar date of a timestamp in UTC. Naive timestamps are taken as UTC."""
    if ts.tzinfo is None:
        return ts.date()
    return ts.astimezone(timezone.utc).date()


def days_back(end: date, count: int) -> list[date]:
    """The count dates ending at end, oldest first."""
    return [end - timedelta(days=offset) for offset in range(count - 1, -1, -1)]

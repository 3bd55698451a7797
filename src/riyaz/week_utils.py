"""Local-date and period boundary utilities.

Practice days are counted in the user's own time zone. Weeks run Saturday to
Friday (the Iranian week), months follow the Gregorian calendar.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

# date.weekday(): Monday=0 ... Saturday=5
WEEK_START_WEEKDAY = 5


def resolve_tz(name: str | None, default: str = "Asia/Tehran") -> ZoneInfo:
    """Return the ZoneInfo for name, falling back to default on unknown/empty names."""
    try:
        return ZoneInfo(name or default)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo(default)


def local_today(tz: ZoneInfo, now: datetime | None = None) -> date:
    """The calendar date at `now` (UTC if omitted) in the given zone."""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(tz).date()


def get_week_start(d: date) -> date:
    """Saturday on or before d."""
    return d - timedelta(days=(d.weekday() - WEEK_START_WEEKDAY) % 7)


def get_week_boundaries(d: date) -> tuple[date, date]:
    """(Saturday, Friday) of the week containing d."""
    start = get_week_start(d)
    return start, start + timedelta(days=6)


def get_month_boundaries(d: date) -> tuple[date, date]:
    """(first day, last day) of the month containing d."""
    start = d.replace(day=1)
    next_month = (start + timedelta(days=32)).replace(day=1)
    return start, next_month - timedelta(days=1)


class UnknownPeriodError(ValueError):
    """A challenge definition names a period other than "week" or "month"."""


def period_window(period: str | None, d: date) -> tuple[date, date]:
    """Window of the given period ("week" or "month") that contains d."""
    if period == "month":
        return get_month_boundaries(d)
    if period in (None, "week"):
        return get_week_boundaries(d)
    raise UnknownPeriodError(f"Unknown challenge period: {period}")


def next_period_window(period: str | None, d: date) -> tuple[date, date]:
    """Window that immediately follows the one containing d."""
    _, end = period_window(period, d)
    return period_window(period, end + timedelta(days=1))


def calculate_percentile(rank: int, total: int) -> float:
    """Calculate percentile from rank and total participants.

    Rank 1 out of 100 → 99.0 (top 1%)
    Rank 100 out of 100 → 0.0 (bottom)
    """
    if total <= 0 or rank <= 0:
        return 0.0
    return round(100 - (rank / total * 100), 2)

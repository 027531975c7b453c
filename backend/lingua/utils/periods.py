"""Ranking period boundaries.

A period is a half-open interval `[start, end)` anchored to a given
instant: the calendar day, the Monday-based week, or the calendar month
containing it. Boundaries keep the tzinfo of the anchor instant.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from ..errors import InvalidArgumentError
from ..models import PERIODS


def ranking_timezone(name: str):
    """Resolve a timezone name from settings; `UTC` needs no tz database."""
    if not name or name.upper() == "UTC":
        return timezone.utc
    return ZoneInfo(name)


def now_in(name: str) -> datetime:
    return datetime.now(ranking_timezone(name))


def _midnight(d: date, tzinfo) -> datetime:
    return datetime.combine(d, time.min, tzinfo=tzinfo)


def get_monday(dt: datetime | date) -> date:
    """Get the Monday of the week containing dt."""
    d = dt.date() if isinstance(dt, datetime) else dt
    return d - timedelta(days=d.weekday())


def first_of_next_month(d: date) -> date:
    if d.month == 12:
        return date(d.year + 1, 1, 1)
    return date(d.year, d.month + 1, 1)


def period_bounds(period: str, now: datetime) -> tuple[datetime, datetime]:
    """Return `(start, end)` of the `period` containing `now`.

    - daily: midnight to the next midnight
    - weekly: Monday 00:00 to the following Monday 00:00
    - monthly: the 1st 00:00 to the 1st of the next month 00:00

    Raises `InvalidArgumentError` for any other period tag.
    """
    tz = now.tzinfo
    if period == "daily":
        start = _midnight(now.date(), tz)
        end = _midnight(now.date() + timedelta(days=1), tz)
    elif period == "weekly":
        monday = get_monday(now)
        start = _midnight(monday, tz)
        end = _midnight(monday + timedelta(days=7), tz)
    elif period == "monthly":
        first = now.date().replace(day=1)
        start = _midnight(first, tz)
        end = _midnight(first_of_next_month(first), tz)
    else:
        raise InvalidArgumentError("invalid period", {"period": period, "allowed": list(PERIODS)})
    return start, end


def format_duration(seconds: float | int | None) -> str:
    """Format a duration in seconds as `MM:SS` (minutes may exceed 59)."""
    if not seconds or seconds < 0:
        return "00:00"
    total = int(round(seconds))
    return f"{total // 60:02d}:{total % 60:02d}"

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from lingua.errors import InvalidArgumentError
from lingua.utils.periods import format_duration, get_monday, period_bounds, ranking_timezone


class TestPeriodBounds:
    """Half-open period intervals anchored to an instant."""

    def test_daily(self):
        now = datetime(2026, 3, 11, 15, 30, tzinfo=timezone.utc)
        start, end = period_bounds("daily", now)
        assert start == datetime(2026, 3, 11, tzinfo=timezone.utc)
        assert end == datetime(2026, 3, 12, tzinfo=timezone.utc)

    def test_weekly_starts_monday(self):
        now = datetime(2026, 3, 11, 15, 30, tzinfo=timezone.utc)  # Wednesday
        start, end = period_bounds("weekly", now)
        assert start.weekday() == 0
        assert start == datetime(2026, 3, 9, tzinfo=timezone.utc)
        assert end - start == timedelta(days=7)

    def test_weekly_on_sunday_belongs_to_previous_monday(self):
        sunday = datetime(2026, 3, 15, 23, 59, tzinfo=timezone.utc)
        start, end = period_bounds("weekly", sunday)
        assert start == datetime(2026, 3, 9, tzinfo=timezone.utc)
        assert end == datetime(2026, 3, 16, tzinfo=timezone.utc)

    def test_monthly(self):
        start, end = period_bounds("monthly", datetime(2026, 2, 14, 1, 0, tzinfo=timezone.utc))
        assert start == datetime(2026, 2, 1, tzinfo=timezone.utc)
        assert end == datetime(2026, 3, 1, tzinfo=timezone.utc)

    def test_monthly_wraps_year(self):
        start, end = period_bounds("monthly", datetime(2026, 12, 31, 23, 0, tzinfo=timezone.utc))
        assert start == datetime(2026, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2027, 1, 1, tzinfo=timezone.utc)

    def test_keeps_anchor_timezone(self):
        tz = ZoneInfo("Europe/Moscow")
        start, end = period_bounds("daily", datetime(2026, 3, 11, 1, 0, tzinfo=tz))
        assert start.tzinfo is tz
        assert (start.hour, start.minute) == (0, 0)

    def test_unknown_period(self):
        with pytest.raises(InvalidArgumentError):
            period_bounds("hourly", datetime(2026, 3, 11, tzinfo=timezone.utc))


def test_get_monday_accepts_dates():
    assert get_monday(date(2026, 3, 13)) == date(2026, 3, 9)
    assert get_monday(datetime(2026, 3, 9, 0, 0)) == date(2026, 3, 9)


def test_ranking_timezone_defaults_to_utc():
    assert ranking_timezone("UTC") is timezone.utc
    assert ranking_timezone("") is timezone.utc
    assert ranking_timezone("Europe/Berlin") == ZoneInfo("Europe/Berlin")


@pytest.mark.parametrize("seconds,expected", [
    (0, "00:00"),
    (None, "00:00"),
    (59, "00:59"),
    (125, "02:05"),
    (3725, "62:05"),
    (89.6, "01:30"),
])
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected

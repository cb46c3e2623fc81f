"""Tests for calendar helpers: local today, period windows, day ranges."""

from datetime import date, datetime, timezone

import pytest

from routinely.dates import days_back, local_today, period_start, previous_period_start, shift_months, utc_date


class TestLocalToday:

    def test_utc(self):
        now = datetime(2024, 1, 1, 23, 30, tzinfo=timezone.utc)
        assert local_today("UTC", now) == date(2024, 1, 1)

    def test_timezone_ahead_of_utc_rolls_over(self):
        """23:30 UTC is already the next day in Madrid."""
        now = datetime(2024, 1, 1, 23, 30, tzinfo=timezone.utc)
        assert local_today("Europe/Madrid", now) == date(2024, 1, 2)

    def test_timezone_behind_utc(self):
        now = datetime(2024, 1, 2, 3, 0, tzinfo=timezone.utc)
        assert local_today("America/Mexico_City", now) == date(2024, 1, 1)


class TestPeriods:

    def test_week_is_seven_days(self):
        now = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)
        assert period_start(now, "week") == datetime(2024, 3, 8, 12, 0, tzinfo=timezone.utc)

    def test_month_clamps_day(self):
        now = datetime(2024, 3, 31, tzinfo=timezone.utc)
        assert period_start(now, "month") == datetime(2024, 2, 29, tzinfo=timezone.utc)

    def test_month_crosses_year(self):
        now = datetime(2024, 1, 15, tzinfo=timezone.utc)
        assert period_start(now, "month") == datetime(2023, 12, 15, tzinfo=timezone.utc)

    def test_year(self):
        now = datetime(2024, 2, 29, tzinfo=timezone.utc)
        assert period_start(now, "year") == datetime(2023, 2, 28, tzinfo=timezone.utc)

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            period_start(datetime(2024, 1, 1, tzinfo=timezone.utc), "decade")

    def test_previous_window_is_adjacent(self):
        now = datetime(2024, 3, 15, tzinfo=timezone.utc)
        start = period_start(now, "month")
        assert previous_period_start(start, "month") == datetime(2024, 1, 15, tzinfo=timezone.utc)

    def test_shift_months_forward(self):
        assert shift_months(datetime(2024, 1, 31), 1) == datetime(2024, 2, 29)


class TestDayHelpers:

    def test_utc_date_converts_aware(self):
        ts = datetime(2024, 1, 1, 23, 0, tzinfo=timezone.utc)
        assert utc_date(ts) == date(2024, 1, 1)

    def test_utc_date_naive_taken_as_utc(self):
        assert utc_date(datetime(2024, 1, 1, 23, 0)) == date(2024, 1, 1)

    def test_days_back_oldest_first(self):
        assert days_back(date(2024, 1, 3), 3) == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]

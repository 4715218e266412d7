"""Tests for budget period date helpers."""

from datetime import date, datetime, timezone
from unittest.mock import patch

import pytest

from budget_planner.services.budget_dates import (
    add_months,
    get_current_month_period_dates,
    get_next_month_period_dates,
    month_label,
    month_name,
    month_range,
    period_progress,
    today_utc,
    trailing_months,
)


class TestMonthRange:
    """Test calendar month ranges."""

    def test_current_month(self):
        """Test the period containing a mid-month day."""
        dates = get_current_month_period_dates(date(2026, 3, 14))

        assert dates.period_start == date(2026, 3, 1)
        assert dates.period_end == date(2026, 3, 31)

    def test_leap_february(self):
        """Test February in a leap year ends on the 29th."""
        assert month_range(2028, 2).period_end == date(2028, 2, 29)
        assert month_range(2026, 2).period_end == date(2026, 2, 28)

    def test_next_month_crosses_year(self):
        """Test the month after December is January of the next year."""
        dates = get_next_month_period_dates(date(2026, 12, 31))

        assert dates.period_start == date(2027, 1, 1)
        assert dates.period_end == date(2027, 1, 31)

    def test_next_month_from_short_month(self):
        """Test the month after February."""
        dates = get_next_month_period_dates(date(2026, 2, 28))

        assert dates.period_start == date(2026, 3, 1)
        assert dates.period_end == date(2026, 3, 31)


class TestAddMonths:
    """Test month arithmetic."""

    @pytest.mark.parametrize(
        "day,months,expected",
        [
            (date(2026, 1, 15), 1, date(2026, 2, 15)),
            (date(2026, 1, 31), 1, date(2026, 2, 28)),
            (date(2026, 3, 1), -12, date(2025, 3, 1)),
            (date(2026, 1, 10), -1, date(2025, 12, 10)),
            (date(2026, 11, 30), 3, date(2027, 2, 28)),
        ],
    )
    def test_add_months(self, day, months, expected):
        """Test shifting and clamping to month end."""
        assert add_months(day, months) == expected


class TestPeriodProgress:
    """Test elapsed/remaining day counts."""

    def test_first_day_counts_as_elapsed(self):
        """Test the first day of the period."""
        progress = period_progress(date(2026, 1, 1), date(2026, 1, 31), date(2026, 1, 1))

        assert progress.total_days == 31
        assert progress.days_elapsed == 1
        assert progress.days_remaining == 30

    def test_mid_period(self):
        """Test progress halfway through a 30-day month."""
        progress = period_progress(date(2026, 4, 1), date(2026, 4, 30), date(2026, 4, 15))

        assert progress.days_elapsed == 15
        assert progress.days_remaining == 15
        assert progress.progress == pytest.approx(0.5)

    def test_after_period_end(self):
        """Test remaining days never go negative."""
        progress = period_progress(date(2026, 4, 1), date(2026, 4, 30), date(2026, 5, 3))

        assert progress.days_remaining == 0
        assert progress.progress > 1

    def test_before_period_start(self):
        """Test at least one day is always elapsed."""
        progress = period_progress(date(2026, 4, 1), date(2026, 4, 30), date(2026, 3, 20))

        assert progress.days_elapsed == 1


def test_month_name():
    """Test month names and out-of-range months."""
    assert month_name(1) == "January"
    assert month_name(12) == "December"
    assert month_name(13) == ""


def test_month_label():
    """Test short month labels."""
    assert month_label(date(2026, 1, 15)) == "Jan 2026"
    assert month_label(date(2025, 12, 31)) == "Dec 2025"


class TestTrailingMonths:
    """Test trailing month windows."""

    def test_window_ends_with_current_month(self):
        """Test months are oldest first and cross the year boundary."""
        months = trailing_months(3, today=date(2026, 2, 10))

        assert [m.period_start for m in months] == [
            date(2025, 12, 1),
            date(2026, 1, 1),
            date(2026, 2, 1),
        ]
        assert months[-1].period_end == date(2026, 2, 28)

    def test_single_month(self):
        """Test a one-month window is the current month."""
        months = trailing_months(1, today=date(2026, 4, 30))

        assert len(months) == 1
        assert months[0].period_start == date(2026, 4, 1)
        assert months[0].period_end == date(2026, 4, 30)


def test_today_utc_uses_aware_clock():
    """Test today is taken from a timezone-aware UTC clock."""
    with patch("budget_planner.services.budget_dates.datetime") as mock_datetime:
        mock_datetime.now.return_value = datetime(2026, 3, 31, 23, 30, tzinfo=timezone.utc)

        assert today_utc() == date(2026, 3, 31)

    mock_datetime.now.assert_called_once_with(timezone.utc)

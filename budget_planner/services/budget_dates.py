"""Calendar helpers for monthly budget periods."""

import calendar
from dataclasses import dataclass
from datetime import date as date_type, datetime, timedelta, timezone
from typing import List, Optional


MONTH_NAMES = [
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
]


@dataclass(frozen=True)
class PeriodDateRange:
    """Inclusive date range of one budget period."""

    period_start: date_type
    period_end: date_type


@dataclass(frozen=True)
class PeriodProgress:
    """How far into a period a given day is."""

    total_days: int
    days_elapsed: int
    days_remaining: int
    progress: float


def today_utc() -> date_type:
    """Current UTC date."""
    return datetime.now(timezone.utc).date()


def month_range(year: int, month: int) -> PeriodDateRange:
    """First and last day of a calendar month."""
    last_day = calendar.monthrange(year, month)[1]
    return PeriodDateRange(date_type(year, month, 1), date_type(year, month, last_day))


def get_current_month_period_dates(today: Optional[date_type] = None) -> PeriodDateRange:
    """Period dates of the calendar month containing ``today``."""
    today = today or today_utc()
    return month_range(today.year, today.month)


def get_next_month_period_dates(period_end: date_type) -> PeriodDateRange:
    """Period dates of the calendar month following ``period_end``."""
    next_day = period_end + timedelta(days=1)
    return month_range(next_day.year, next_day.month)


def add_months(day: date_type, months: int) -> date_type:
    """Shift a date by whole months, clamping the day to the target month."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    return date_type(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def period_progress(
    period_start: date_type, period_end: date_type, today: Optional[date_type] = None
) -> PeriodProgress:
    """Elapsed/remaining day counts for a period.

    Both ends are inclusive: a 31-day month has ``total_days == 31`` and the
    first day of the period counts as one elapsed day.
    """
    today = today or today_utc()
    total_days = (period_end - period_start).days + 1
    days_elapsed = max(1, (today - period_start).days + 1)
    days_remaining = max(0, total_days - days_elapsed)
    progress = days_elapsed / total_days if total_days > 0 else 0.0
    return PeriodProgress(
        total_days=total_days,
        days_elapsed=days_elapsed,
        days_remaining=days_remaining,
        progress=progress,
    )


def month_name(month: int) -> str:
    """English month name for a 1-based month number."""
    if 1 <= month <= 12:
        return MONTH_NAMES[month - 1]
    return ""


def month_label(day: date_type) -> str:
    """Short label such as ``Jan 2026`` for the month containing ``day``."""
    return f"{month_name(day.month)[:3]} {day.year}"


def trailing_months(months: int, today: Optional[date_type] = None) -> List[PeriodDateRange]:
    """The last ``months`` calendar months, oldest first, ending with the current one."""
    current = get_current_month_period_dates(today).period_start
    return [
        month_range(start.year, start.month)
        for start in (add_months(current, -offset) for offset in range(months - 1, -1, -1))
    ]

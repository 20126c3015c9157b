"""Date manipulation utilities"""

import calendar
from datetime import date, timedelta

from dateutil.relativedelta import relativedelta


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _normalize_month(year: int, month: int) -> tuple[int, int]:
    """Fold month values outside 1..12 into the neighbouring years"""
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return year, month


def rolled_date(year: int, month: int, day: int) -> date:
    """
    Build a date letting day overflow roll into the following month.

    rolled_date(2025, 2, 31) -> 2025-03-03, rolled_date(2024, 13, 5) -> 2025-01-05
    """
    year, month = _normalize_month(year, month)
    return date(year, month, 1) + timedelta(days=day - 1)


def clamped_date(year: int, month: int, day: int) -> date:
    """Build a date capping the day to the month's last day (Feb 31 -> Feb 28/29)"""
    year, month = _normalize_month(year, month)
    return date(year, month, min(day, days_in_month(year, month)))


def add_months(anchor: date, months: int) -> date:
    """Same day `months` later, clamped to month end (Jan 31 + 1 -> Feb 28/29)"""
    return anchor + relativedelta(months=months)


def month_key(day: date) -> str:
    """YYYY-MM bucket for a date"""
    return day.strftime("%Y-%m")


def month_bounds(month: str) -> tuple[date, date]:
    """First and last day for a YYYY-MM string (raises ValueError if malformed)"""
    year_str, sep, month_str = month.partition("-")
    if not sep or len(year_str) != 4 or len(month_str) != 2:
        raise ValueError(f"Invalid month format: {month!r}")
    year, month_num = int(year_str), int(month_str)
    first = date(year, month_num, 1)
    return first, date(year, month_num, days_in_month(year, month_num))

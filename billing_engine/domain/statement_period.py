"""Statement period boundaries for credit cards billed on a monthly closing day"""

from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from billing_engine.domain.exceptions import ValidationError
from billing_engine.domain.models import (
    DatedItem,
    OverflowPolicy,
    PeriodBadge,
    PeriodInfo,
    PeriodType,
    StatementPeriod,
)
from billing_engine.utils.date_utils import clamped_date, days_in_month, rolled_date


def validate_closing_day(closing_day: int) -> None:
    if not 1 <= closing_day <= 31:
        raise ValidationError("Closing day must be between 1 and 31")


def closing_date(year: int, month: int, closing_day: int, overflow: OverflowPolicy) -> date:
    """Closing date of the given month under the overflow policy"""
    if overflow == OverflowPolicy.CLAMP:
        return clamped_date(year, month, closing_day)
    return rolled_date(year, month, closing_day)


def get_statement_period(
    reference_date: date,
    closing_day: int,
    overflow: OverflowPolicy = OverflowPolicy.ROLL_FORWARD,
) -> StatementPeriod:
    """
    Get the statement period containing `reference_date`.

    On or before the closing day the period ends this month; after it, the
    period ends next month. Start is always the day after the previous close.

    Example:
        closing_day=5, 2024-12-03 -> 2024-11-06 .. 2024-12-05
        closing_day=5, 2024-12-10 -> 2024-12-06 .. 2025-01-05
    """
    validate_closing_day(closing_day)

    year, month = reference_date.year, reference_date.month
    effective_day = closing_day
    if overflow == OverflowPolicy.CLAMP:
        effective_day = min(closing_day, days_in_month(year, month))

    if reference_date.day <= effective_day:
        period_end = closing_date(year, month, closing_day, overflow)
        period_start = closing_date(year, month - 1, closing_day, overflow) + timedelta(days=1)
    else:
        period_start = closing_date(year, month, closing_day, overflow) + timedelta(days=1)
        period_end = closing_date(year, month + 1, closing_day, overflow)

    if reference_date < period_start:
        # Early days of the month still inside last month's rolled-over close
        period_end = period_start - timedelta(days=1)
        period_start = closing_date(year, month - 2, closing_day, overflow) + timedelta(days=1)

    return StatementPeriod(period_start=period_start, period_end=period_end)


def next_statement_period(
    period: StatementPeriod,
    closing_day: int,
    overflow: OverflowPolicy = OverflowPolicy.ROLL_FORWARD,
) -> StatementPeriod:
    """Period starting the day after `period` ends"""
    return get_statement_period(period.period_end + timedelta(days=1), closing_day, overflow)


def statement_ending_on(
    closed_on: date,
    closing_day: int,
    overflow: OverflowPolicy = OverflowPolicy.ROLL_FORWARD,
) -> Optional[StatementPeriod]:
    """
    The statement period that closes exactly on `closed_on`, if any.

    A rolled-forward close (closing day 31 in April lands on May 1) ends the
    April statement; April 30 closes nothing.

    Example:
        closing_day=31, 2025-05-01 -> 2025-04-01 .. 2025-05-01
        closing_day=31, 2025-04-30 -> None
    """
    period = get_statement_period(closed_on, closing_day, overflow)
    return period if period.period_end == closed_on else None


def is_date_in_period(day: date, period: StatementPeriod) -> bool:
    return period.period_start <= day <= period.period_end


def _classify(
    day: date,
    closing_day: int,
    current: StatementPeriod,
    upcoming: StatementPeriod,
    overflow: OverflowPolicy,
) -> PeriodInfo:
    if is_date_in_period(day, current):
        return PeriodInfo(PeriodType.CURRENT, current.period_start, current.period_end)

    if is_date_in_period(day, upcoming):
        return PeriodInfo(PeriodType.NEXT, upcoming.period_start, upcoming.period_end)

    # Outside both: report the period the date itself falls in
    own = get_statement_period(day, closing_day, overflow)
    if day < current.period_start:
        return PeriodInfo(PeriodType.PAST, own.period_start, own.period_end)

    # Beyond the next period is still upcoming spend
    return PeriodInfo(PeriodType.NEXT, own.period_start, own.period_end)


def classify_date(
    day: date,
    closing_day: int,
    reference_date: date,
    overflow: OverflowPolicy = OverflowPolicy.ROLL_FORWARD,
) -> PeriodInfo:
    """Classify `day` as current, next or past relative to the period holding `reference_date`"""
    current = get_statement_period(reference_date, closing_day, overflow)
    upcoming = next_statement_period(current, closing_day, overflow)
    return _classify(day, closing_day, current, upcoming, overflow)


def classify_dates(
    items: Iterable[DatedItem],
    reference_date: date,
    overflow: OverflowPolicy = OverflowPolicy.ROLL_FORWARD,
) -> Dict[str, PeriodBadge]:
    """
    Classify many dated items at once.

    Items are grouped by funding instrument so the current/next boundaries are
    computed once per instrument rather than once per item. Instruments that
    are not in credit mode, or have no closing day, get a badge with
    should_display=False.
    """
    by_instrument: Dict[str, List[DatedItem]] = {}
    for item in items:
        by_instrument.setdefault(item.payment_method_id, []).append(item)

    badges: Dict[str, PeriodBadge] = {}
    for group in by_instrument.values():
        first = group[0]
        if not first.credit_mode or first.closing_day is None:
            for item in group:
                badges[item.item_id] = PeriodBadge(
                    item_id=item.item_id,
                    period=PeriodType.CURRENT,
                    period_start=None,
                    period_end=None,
                    should_display=False,
                )
            continue

        closing_day = first.closing_day
        current = get_statement_period(reference_date, closing_day, overflow)
        upcoming = next_statement_period(current, closing_day, overflow)

        for item in group:
            info = _classify(item.date, closing_day, current, upcoming, overflow)
            badges[item.item_id] = PeriodBadge(
                item_id=item.item_id,
                period=info.period,
                period_start=info.period_start,
                period_end=info.period_end,
                should_display=True,
            )

    return badges

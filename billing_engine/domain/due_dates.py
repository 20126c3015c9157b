"""Payment due dates derived from the statement closing day and a due-day offset"""

from datetime import date, timedelta

from billing_engine.domain.exceptions import ValidationError
from billing_engine.domain.models import OverflowPolicy, PaymentDueDate, StatementPeriod
from billing_engine.domain.statement_period import get_statement_period, validate_closing_day

MAX_DUE_DAY_OFFSET = 60

# Any 31-day month works for projecting the typical due day
_PROJECTION_REFERENCE = date(2024, 1, 1)


def validate_due_day_offset(due_day_offset: int, max_offset: int = MAX_DUE_DAY_OFFSET) -> None:
    if not 1 <= due_day_offset <= max_offset:
        raise ValidationError(f"Payment due day must be between 1 and {max_offset}")


def due_date_for_period(period: StatementPeriod, due_day_offset: int) -> date:
    """Payment due date for a closed statement: closing date plus offset"""
    return period.period_end + timedelta(days=due_day_offset)


def calculate_payment_due_date(
    closing_day: int,
    due_day_offset: int,
    reference_date: date,
    overflow: OverflowPolicy = OverflowPolicy.ROLL_FORWARD,
) -> PaymentDueDate:
    """
    Next payment due date for the statement that holds `reference_date`.

    Example:
        closing_day=5,  offset=10, 2024-12-01 -> 2024-12-15
        closing_day=25, offset=10, 2024-12-01 -> 2025-01-04
    """
    validate_due_day_offset(due_day_offset)

    period = get_statement_period(reference_date, closing_day, overflow)
    next_due = due_date_for_period(period, due_day_offset)

    return PaymentDueDate(
        next_due_date=next_due,
        due_day=next_due.day,
        due_month=next_due.month,
        due_year=next_due.year,
    )


def calculate_recurring_due_day(
    closing_day: int,
    due_day_offset: int,
    overflow: OverflowPolicy = OverflowPolicy.ROLL_FORWARD,
) -> int:
    """
    Day of month a payment is typically due, for settings previews.

    closing 5 + offset 10 -> 15; closing 25 + offset 10 wraps into the next
    month and is resolved by projecting a concrete date.
    """
    validate_closing_day(closing_day)
    validate_due_day_offset(due_day_offset)

    day = closing_day + due_day_offset
    if day <= 31:
        return day

    projected = calculate_payment_due_date(closing_day, due_day_offset, _PROJECTION_REFERENCE, overflow)
    return projected.due_day

"""Installment schedule generation and amortization arithmetic"""

from datetime import date
from typing import List

from billing_engine.domain.exceptions import ValidationError
from billing_engine.domain.models import ScheduledPayment
from billing_engine.utils.date_utils import add_months

MAX_INSTALLMENTS = 60


def validate_plan_terms(total_amount_cents: int, total_installments: int, max_installments: int = MAX_INSTALLMENTS) -> None:
    if total_amount_cents <= 0:
        raise ValidationError("Amount must be greater than zero")
    if not 1 <= total_installments <= max_installments:
        raise ValidationError(f"Installments must be between 1 and {max_installments}")


def split_amount(amount_cents: int, count: int) -> List[int]:
    """
    Split an amount into `count` parts; the last part absorbs the rounding remainder.

    Example:
        100000 cents / 3 -> [33333, 33333, 33334]
    """
    if count <= 0:
        return []

    # Floor division keeps every part but the last at the same cent value
    base = amount_cents // count
    last = amount_cents - base * (count - 1)
    return [base] * (count - 1) + [last]


def generate_installment_schedule(
    total_amount_cents: int,
    total_installments: int,
    first_due_date: date,
    max_installments: int = MAX_INSTALLMENTS,
) -> List[ScheduledPayment]:
    """
    Generate monthly installments for a new plan.

    Requirements:
    - Installments 1..n-1 get floor(total / n); installment n gets the rest
    - Sum of all installments equals the total exactly
    - Due dates step one calendar month from the first due date

    Args:
        total_amount_cents: Total amount to split into installments
        total_installments: Number of payments (1-60)
        first_due_date: Due date of installment 1
        max_installments: Upper bound on the installment count

    Returns:
        List of ScheduledPayment numbered 1..n

    Example:
        $1000.00 over 3 -> [$333.33, $333.33, $333.34]
    """
    validate_plan_terms(total_amount_cents, total_installments, max_installments)

    amounts = split_amount(total_amount_cents, total_installments)
    return [
        ScheduledPayment(
            installment_number=i + 1,
            due_date=add_months(first_due_date, i),
            amount_cents=amount,
        )
        for i, amount in enumerate(amounts)
    ]


def plan_additional_payments(last_installment_number: int, last_due_date: date, count: int) -> List[ScheduledPayment]:
    """
    Payments appended when the installment count grows.

    They continue the monthly cadence from the last existing due date and carry
    a placeholder amount of 0 until the pending payments are recalculated.
    """
    return [
        ScheduledPayment(
            installment_number=last_installment_number + i,
            due_date=add_months(last_due_date, i),
            amount_cents=0,
        )
        for i in range(1, count + 1)
    ]


def recalculate_pending_amounts(
    total_amount_cents: int,
    total_installments: int,
    paid_count: int,
    paid_amount_cents: int,
) -> List[int]:
    """
    New amounts for the pending payments, in installment order.

    remaining = total - paid is spread evenly with the last pending payment
    absorbing the remainder, so paid + pending always equals the total.
    Returns [] when nothing is pending.
    """
    pending_count = total_installments - paid_count
    if pending_count <= 0:
        return []

    remaining = total_amount_cents - paid_amount_cents
    return split_amount(remaining, pending_count)

"""Unit tests for installment schedule generation and recalculation"""

import pytest
from datetime import date
from billing_engine.domain.exceptions import ValidationError
from billing_engine.domain.installments import (
    generate_installment_schedule,
    plan_additional_payments,
    recalculate_pending_amounts,
    split_amount,
)


def test_generate_schedule_equal_split():
    """Test plan with evenly divisible amount"""
    amount = 120000  # $1200
    installments = generate_installment_schedule(amount, 12, date(2025, 1, 10))

    assert len(installments) == 12
    assert all(inst.amount_cents == 10000 for inst in installments)  # Each $100
    assert sum(inst.amount_cents for inst in installments) == amount


def test_generate_schedule_rounding():
    """Test last installment absorbs remainder"""
    amount = 100000  # $1000
    installments = generate_installment_schedule(amount, 3, date(2025, 1, 10))

    assert [inst.amount_cents for inst in installments] == [33333, 33333, 33334]
    assert sum(inst.amount_cents for inst in installments) == amount


def test_generate_schedule_numbers_and_dates():
    """Test monthly due dates from the first due date"""
    installments = generate_installment_schedule(30000, 3, date(2024, 11, 15))

    assert [inst.installment_number for inst in installments] == [1, 2, 3]
    assert [inst.due_date for inst in installments] == [
        date(2024, 11, 15),
        date(2024, 12, 15),
        date(2025, 1, 15),
    ]


def test_generate_schedule_month_end_does_not_drift():
    """Dates step from the first due date, so a short month does not pull later ones back"""
    installments = generate_installment_schedule(40000, 4, date(2024, 1, 31))

    assert [inst.due_date for inst in installments] == [
        date(2024, 1, 31),
        date(2024, 2, 29),
        date(2024, 3, 31),
        date(2024, 4, 30),
    ]


def test_generate_schedule_single_installment():
    installments = generate_installment_schedule(9999, 1, date(2025, 1, 1))
    assert [inst.amount_cents for inst in installments] == [9999]


@pytest.mark.parametrize(
    "amount,count",
    [(0, 3), (-100, 3), (1000, 0), (1000, 61)],
)
def test_generate_schedule_rejects_invalid_terms(amount: int, count: int):
    with pytest.raises(ValidationError):
        generate_installment_schedule(amount, count, date(2025, 1, 1))


@pytest.mark.parametrize(
    "amount,count",
    [(100000, 3), (1, 7), (123457, 60), (999999, 13), (500, 500)],
)
def test_split_amount_preserves_total(amount: int, count: int):
    parts = split_amount(amount, count)

    assert len(parts) == count
    assert sum(parts) == amount
    # Residual stays on the last part and is below the part count
    assert all(part == parts[0] for part in parts[:-1])
    assert 0 <= parts[-1] - parts[0] < count


def test_split_amount_zero_count():
    assert split_amount(1000, 0) == []


def test_additional_payments_continue_cadence():
    extra = plan_additional_payments(3, date(2025, 1, 31), 2)

    assert [p.installment_number for p in extra] == [4, 5]
    assert [p.due_date for p in extra] == [date(2025, 2, 28), date(2025, 3, 31)]
    assert all(p.amount_cents == 0 for p in extra)


def test_recalculate_after_total_reduced():
    """1 of 3 paid at 333.33; new total 900 spreads 566.67 over the 2 pending"""
    amounts = recalculate_pending_amounts(90000, 3, 1, 33333)

    assert amounts == [28333, 28334]
    assert 33333 + sum(amounts) == 90000


def test_recalculate_with_nothing_pending():
    assert recalculate_pending_amounts(90000, 3, 3, 90000) == []

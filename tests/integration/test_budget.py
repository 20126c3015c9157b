"""Integration tests for the budget view and installment commitments"""

import pytest
from datetime import date
from sqlalchemy.orm import Session
from billing_engine.domain.models import NewPlan
from billing_engine.infrastructure.database.models import Category, PaymentMethod
from billing_engine.infrastructure.database.repositories import TransactionRepository
from billing_engine.services.budget import BudgetAggregator
from billing_engine.services.plan_lifecycle import PlanLifecycleManager

pytestmark = pytest.mark.integration

USER_ID = "user_ana"

# Card closes on the 5th: this statement covers 2024-11-06 .. 2024-12-05
PERIOD_START = date(2024, 11, 6)
PERIOD_END = date(2024, 12, 5)


def add_transaction(db: Session, card: PaymentMethod, amount: int, on: date, category: Category | None = None, **fields):
    txn = TransactionRepository(db).create(
        user_id=fields.pop("user_id", USER_ID),
        amount_cents=amount,
        type=fields.pop("type", "expense"),
        description=fields.pop("description", "Compra"),
        date=on,
        category_id=category.id if category else None,
        payment_method_id=card.id,
        **fields,
    )
    db.commit()
    return txn


def add_plan(db: Session, card: PaymentMethod, category: Category | None, first_due: date, total: int = 30000, count: int = 3) -> str:
    result = PlanLifecycleManager(db).create_plan(
        NewPlan(
            user_id=USER_ID,
            payment_method_id=str(card.id),
            description="Notebook",
            total_amount_cents=total,
            total_installments=count,
            first_due_date=first_due,
            category_id=str(category.id) if category else None,
        )
    )
    assert result.success, result.error
    return result.data.plan_id


@pytest.fixture
def aggregator(db: Session) -> BudgetAggregator:
    return BudgetAggregator(db)


def test_empty_period_returns_empty_view(db, aggregator, credit_card):
    result = aggregator.get_budget_view(USER_ID, str(credit_card.id), PERIOD_START, PERIOD_END)

    assert result.success
    assert result.data.lines == []
    assert result.data.total_cents == 0
    assert result.data.period_start == PERIOD_START


def test_budget_view_merges_transactions_and_installments(db, aggregator, credit_card, category):
    add_transaction(db, credit_card, 15000, date(2024, 11, 20), category)
    add_transaction(db, credit_card, 5000, date(2024, 12, 1))
    add_transaction(db, credit_card, 7000, date(2024, 12, 10), category)  # next statement
    add_transaction(db, credit_card, 90000, date(2024, 11, 25), type="income")
    add_plan(db, credit_card, category, first_due=date(2024, 11, 15))

    result = aggregator.get_budget_view(USER_ID, str(credit_card.id), PERIOD_START, PERIOD_END, locale="pt-BR")

    assert result.success, result.error
    view = result.data
    assert view.total_cents == 30000
    assert [line.category_name for line in view.lines] == ["Mercado", "Sem Categoria"]

    groceries = view.lines[0]
    assert groceries.total_cents == 25000
    assert (groceries.item_count, groceries.installment_count, groceries.regular_count) == (2, 1, 1)
    installment = next(item for item in groceries.items if item.is_installment)
    assert (installment.installment_number, installment.total_installments) == (1, 3)
    assert groceries.category_icon == "cart"

    assert view.lines[1].category_id is None
    assert view.lines[1].total_cents == 5000


def test_paid_installment_counted_once(db, aggregator, credit_card, category):
    plan_id = add_plan(db, credit_card, category, first_due=date(2024, 11, 15))
    PlanLifecycleManager(db).mark_payment_paid(USER_ID, plan_id, 1, date(2024, 11, 15))

    view = aggregator.get_budget_view(USER_ID, str(credit_card.id), PERIOD_START, PERIOD_END).data

    assert view.total_cents == 10000
    assert view.lines[0].item_count == 1
    assert view.lines[0].installment_count == 1


def test_closed_plans_are_excluded(db, aggregator, credit_card, category):
    plan_id = add_plan(db, credit_card, category, first_due=date(2024, 11, 15))
    PlanLifecycleManager(db).payoff_plan(USER_ID, plan_id, date(2024, 11, 1))

    view = aggregator.get_budget_view(USER_ID, str(credit_card.id), PERIOD_START, PERIOD_END).data
    assert view.lines == []


def test_budget_spent(db, aggregator, credit_card, category):
    add_transaction(db, credit_card, 15000, date(2024, 11, 20), category)
    add_plan(db, credit_card, category, first_due=date(2024, 12, 5))

    result = aggregator.calculate_budget_spent(USER_ID, str(credit_card.id), PERIOD_START, PERIOD_END)
    assert result.data == 25000


def test_budget_view_errors(db, aggregator, credit_card):
    card_id = str(credit_card.id)

    assert aggregator.get_budget_view(USER_ID, card_id, PERIOD_END, PERIOD_START).error_code == "validation_error"
    assert aggregator.get_budget_view(USER_ID, "bad-id", PERIOD_START, PERIOD_END).error_code == "validation_error"
    assert aggregator.get_budget_view("someone_else", card_id, PERIOD_START, PERIOD_END).error_code == "unauthorized"


def test_future_commitments_by_month(db, aggregator, credit_card, category):
    add_plan(db, credit_card, category, first_due=date(2024, 11, 15))
    add_plan(db, credit_card, None, first_due=date(2024, 12, 20), total=20000, count=2)

    result = aggregator.get_future_commitments(USER_ID, date(2024, 12, 1), months_ahead=12)

    assert result.success, result.error
    assert [(c.month, c.total_due_cents, c.payment_count) for c in result.data] == [
        ("2024-12", 20000, 2),
        ("2025-01", 20000, 2),
    ]


def test_future_commitments_window(db, aggregator, credit_card):
    add_plan(db, credit_card, None, first_due=date(2025, 1, 10), total=120000, count=12)

    result = aggregator.get_future_commitments(USER_ID, date(2024, 12, 31), months_ahead=3)
    assert [c.month for c in result.data] == ["2025-01", "2025-02", "2025-03"]

    assert aggregator.get_future_commitments(USER_ID, date(2024, 12, 31), months_ahead=0).error_code == "validation_error"


def test_commitments_for_month(db, aggregator, credit_card, category):
    plan_id = add_plan(db, credit_card, category, first_due=date(2024, 11, 15))

    result = aggregator.get_commitments_for_month(USER_ID, "2024-12")

    assert result.success, result.error
    assert len(result.data) == 1
    detail = result.data[0]
    assert detail.plan_id == plan_id
    assert (detail.installment_number, detail.total_installments) == (2, 3)
    assert detail.due_date == date(2024, 12, 15)


@pytest.mark.parametrize("month", ["2024-13", "12-2024", "2024/12", ""])
def test_commitments_for_malformed_month(db, aggregator, month):
    assert aggregator.get_commitments_for_month(USER_ID, month).error_code == "validation_error"

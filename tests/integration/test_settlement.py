"""Integration tests for statement settlement and the closed-statement job"""

import pytest
import uuid
from datetime import date
from sqlalchemy.orm import Session
from billing_engine.config import settings
from billing_engine.domain.models import SettlementRequest
from billing_engine.infrastructure.database.models import PaymentMethod, Transaction
from billing_engine.infrastructure.database.repositories import TransactionRepository
from billing_engine.infrastructure.observability.events import EventRecorder
from billing_engine.services.settlement import (
    AutoPaymentTransactionCreator,
    SettlementCategoryCache,
    SettlementJob,
)

pytestmark = pytest.mark.integration

USER_ID = "user_ana"
CLOSED_ON = date(2024, 12, 5)


def settlement_rows(db: Session) -> list[Transaction]:
    return db.query(Transaction).filter(Transaction.settlement_period_end.isnot(None)).all()


def add_card(db: Session, name: str, closing_day: int, user_id: str = USER_ID) -> PaymentMethod:
    card = PaymentMethod(
        user_id=user_id,
        name=name,
        type="credit",
        credit_mode=True,
        statement_closing_day=closing_day,
        payment_due_day=10,
    )
    db.add(card)
    db.commit()
    return card


def add_expense(db: Session, card: PaymentMethod, amount: int, on: date) -> None:
    TransactionRepository(db).create(
        user_id=card.user_id,
        amount_cents=amount,
        type="expense",
        description="Compra",
        date=on,
        payment_method_id=card.id,
    )
    db.commit()


@pytest.fixture
def creator(db: Session, category_cache: SettlementCategoryCache, recorder: EventRecorder) -> AutoPaymentTransactionCreator:
    return AutoPaymentTransactionCreator(db, category_cache, recorder)


def test_settlement_created(db, creator, credit_card, bank_account, settlement_category, recorder):
    result = creator.create(SettlementRequest(USER_ID, str(credit_card.id), CLOSED_ON, statement_total_cents=45000))

    assert result.success, result.error
    outcome = result.data
    assert outcome.status == "created"
    assert outcome.period_start == date(2024, 11, 6)
    assert outcome.period_end == CLOSED_ON
    assert outcome.due_date == date(2024, 12, 15)
    assert outcome.account_linked is True

    txn = db.get(Transaction, uuid.UUID(outcome.transaction_id))
    assert txn.description == "Pagamento Cartão Nubank - Fatura Dez/2024"
    assert txn.amount_cents == 45000
    assert txn.date == date(2024, 12, 15)
    assert txn.category_id == settlement_category.id
    assert txn.payment_method_id == bank_account.id
    assert txn.meta["auto_generated"] is True
    assert txn.meta["source"] == "statement_close"
    assert txn.meta["statement_period_start"] == "2024-11-06"
    assert txn.meta["statement_total_cents"] == 45000

    assert recorder.events[-1]["event"] == "auto_payment_created"


def test_settlement_is_idempotent(db, creator, credit_card, bank_account, settlement_category):
    request = SettlementRequest(USER_ID, str(credit_card.id), CLOSED_ON, statement_total_cents=45000)

    first = creator.create(request)
    second = creator.create(request)

    assert first.data.status == "created"
    assert second.success
    assert second.data.status == "already_exists"
    assert second.data.transaction_id == first.data.transaction_id
    assert len(settlement_rows(db)) == 1


def test_unique_constraint_guards_concurrent_insert(db, creator, credit_card, settlement_category, monkeypatch):
    """A duplicate that slips past the lookup is caught by the unique constraint"""
    existing = creator.create(SettlementRequest(USER_ID, str(credit_card.id), CLOSED_ON, statement_total_cents=45000))

    original = creator.transactions.find_settlement
    calls = []

    def racing_lookup(*args):
        calls.append(args)
        # First lookup misses, as if the other run had not committed yet
        return None if len(calls) == 1 else original(*args)

    monkeypatch.setattr(creator.transactions, "find_settlement", racing_lookup)

    result = creator.create(SettlementRequest(USER_ID, str(credit_card.id), CLOSED_ON, statement_total_cents=45000))

    assert result.success, result.error
    assert result.data.status == "already_exists"
    assert result.data.transaction_id == existing.data.transaction_id
    assert len(settlement_rows(db)) == 1


def test_settlement_without_default_account(db, creator, credit_card, settlement_category):
    result = creator.create(SettlementRequest(USER_ID, str(credit_card.id), CLOSED_ON, statement_total_cents=1000))

    assert result.success, result.error
    assert result.data.account_linked is False
    assert db.get(Transaction, uuid.UUID(result.data.transaction_id)).payment_method_id is None


def test_settlement_total_from_statement(db, creator, credit_card, settlement_category):
    add_expense(db, credit_card, 12000, date(2024, 11, 10))
    add_expense(db, credit_card, 3000, date(2024, 12, 5))
    add_expense(db, credit_card, 9999, date(2024, 12, 6))  # next statement

    result = creator.create(SettlementRequest(USER_ID, str(credit_card.id), CLOSED_ON))

    assert result.data.amount_cents == 15000


def test_settlement_english_description(db, creator, credit_card, settlement_category):
    result = creator.create(
        SettlementRequest(USER_ID, str(credit_card.id), CLOSED_ON, statement_total_cents=1000, locale="en")
    )
    txn = db.get(Transaction, uuid.UUID(result.data.transaction_id))
    assert txn.description == "Nubank Payment - Statement Dec/2024"


def test_settlement_category_is_cached(db, creator, credit_card, settlement_category, category_cache):
    creator.create(SettlementRequest(USER_ID, str(credit_card.id), CLOSED_ON, statement_total_cents=1000))
    assert category_cache.get(settings.settlement_category_name) == settlement_category.id

    category_cache.invalidate()
    assert category_cache.get(settings.settlement_category_name) is None


def test_settlement_requires_system_category(db, creator, credit_card):
    result = creator.create(SettlementRequest(USER_ID, str(credit_card.id), CLOSED_ON, statement_total_cents=1000))

    assert result.error_code == "not_found"
    assert settlement_rows(db) == []


def test_settlement_errors(db, creator, credit_card, bank_account, settlement_category):
    other = creator.create(SettlementRequest("someone_else", str(credit_card.id), CLOSED_ON, statement_total_cents=1000))
    assert other.error_code == "unauthorized"

    not_a_card = creator.create(SettlementRequest(USER_ID, str(bank_account.id), CLOSED_ON, statement_total_cents=1000))
    assert not_a_card.error_code == "validation_error"

    empty = creator.create(SettlementRequest(USER_ID, str(credit_card.id), CLOSED_ON, statement_total_cents=0))
    assert empty.error_code == "validation_error"

    missing = creator.create(SettlementRequest(USER_ID, str(uuid.uuid4()), CLOSED_ON, statement_total_cents=1000))
    assert missing.error_code == "not_found"


def test_settlement_job(db, credit_card, settlement_category, category_cache, recorder):
    quiet_card = add_card(db, "Inter", closing_day=5)
    later_card = add_card(db, "Itaú", closing_day=20)
    shared_card = add_card(db, "C6", closing_day=5, user_id="user_bruno")
    add_expense(db, credit_card, 20000, date(2024, 11, 20))
    add_expense(db, shared_card, 5000, date(2024, 12, 1))
    add_expense(db, later_card, 7000, date(2024, 11, 30))

    job = SettlementJob(db, category_cache, recorder)
    result = job.run(CLOSED_ON)

    assert result.success, result.error
    summary = result.data
    assert summary.statements_closed == 3  # Itaú closes on the 20th
    assert summary.transactions_created == 2
    assert summary.transactions_skipped == 1  # Inter had no spending
    assert summary.transactions_failed == 0
    assert summary.total_amount_cents == 25000
    assert summary.success_rate == 100.0
    assert {row.settlement_payment_method_id for row in settlement_rows(db)} == {credit_card.id, shared_card.id}
    assert quiet_card.id not in {row.settlement_payment_method_id for row in settlement_rows(db)}


def test_settlement_job_rerun_creates_nothing(db, credit_card, settlement_category, category_cache):
    add_expense(db, credit_card, 20000, date(2024, 11, 20))
    job = SettlementJob(db, category_cache)

    job.run(CLOSED_ON)
    rerun = job.run(CLOSED_ON).data

    assert rerun.transactions_created == 0
    assert rerun.transactions_skipped == 1
    assert len(settlement_rows(db)) == 1


def test_settlement_job_reports_failures(db, credit_card, category_cache):
    add_expense(db, credit_card, 20000, date(2024, 11, 20))

    summary = SettlementJob(db, category_cache).run(CLOSED_ON).data

    assert summary.transactions_failed == 1
    assert summary.errors[0]["error_code"] == "not_found"
    assert summary.success_rate == 0.0


def test_settlement_job_with_no_closing_cards(db, credit_card, category_cache):
    summary = SettlementJob(db, category_cache).run(date(2024, 12, 6)).data

    assert summary.statements_closed == 0
    assert summary.success_rate == 100.0


def test_settlement_for_rolled_over_close(db, creator, settlement_category):
    """Closing day 31 in April closes on May 1 and settles April's spending"""
    card = add_card(db, "Santander", closing_day=31)
    add_expense(db, card, 8000, date(2025, 4, 1))
    add_expense(db, card, 4000, date(2025, 5, 1))
    add_expense(db, card, 9999, date(2025, 5, 2))  # next statement

    result = creator.create(SettlementRequest(USER_ID, str(card.id), date(2025, 5, 1)))

    assert result.success, result.error
    assert result.data.period_start == date(2025, 4, 1)
    assert result.data.period_end == date(2025, 5, 1)
    assert result.data.due_date == date(2025, 5, 11)
    assert result.data.amount_cents == 12000
    assert settlement_rows(db)[0].settlement_period_end == date(2025, 5, 1)


def test_settlement_rejects_day_that_closes_no_statement(db, creator, settlement_category):
    card = add_card(db, "Santander", closing_day=31)

    result = creator.create(SettlementRequest(USER_ID, str(card.id), date(2025, 4, 30), statement_total_cents=1000))

    assert result.error_code == "validation_error"
    assert settlement_rows(db) == []


def test_unreconciled_insert_race_is_a_conflict(db, creator, credit_card, settlement_category, monkeypatch):
    creator.create(SettlementRequest(USER_ID, str(credit_card.id), CLOSED_ON, statement_total_cents=45000))
    monkeypatch.setattr(creator.transactions, "find_settlement", lambda *args: None)

    result = creator.create(SettlementRequest(USER_ID, str(credit_card.id), CLOSED_ON, statement_total_cents=45000))

    assert result.error_code == "conflict"
    assert len(settlement_rows(db)) == 1


@pytest.mark.parametrize(
    "closing_day, closed_on, spent_on",
    [
        (29, date(2025, 3, 1), date(2025, 2, 10)),
        (30, date(2025, 3, 2), date(2025, 2, 10)),
        (31, date(2025, 3, 3), date(2025, 3, 1)),
        (31, date(2025, 5, 1), date(2025, 4, 15)),
        (31, date(2025, 10, 1), date(2025, 9, 20)),
        (30, date(2025, 4, 30), date(2025, 4, 2)),
    ],
)
def test_settlement_job_closes_short_month_statements(
    db, settlement_category, category_cache, closing_day: int, closed_on: date, spent_on: date
):
    card = add_card(db, "Santander", closing_day=closing_day)
    add_expense(db, card, 7000, spent_on)

    summary = SettlementJob(db, category_cache).run(closed_on).data

    assert summary.statements_closed == 1
    assert summary.transactions_created == 1
    assert summary.total_amount_cents == 7000
    assert settlement_rows(db)[0].settlement_period_end == closed_on


def test_settlement_job_skips_day_before_rolled_close(db, settlement_category, category_cache):
    card = add_card(db, "Santander", closing_day=31)
    add_expense(db, card, 7000, date(2025, 4, 15))

    summary = SettlementJob(db, category_cache).run(date(2025, 4, 30)).data

    assert summary.statements_closed == 0
    assert settlement_rows(db) == []

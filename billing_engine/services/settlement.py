"""Auto-generated settlement transactions for closed credit card statements"""

import logging
import time
import uuid
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from billing_engine.config import Settings, settings
from billing_engine.domain.due_dates import due_date_for_period, validate_due_day_offset
from billing_engine.domain.exceptions import AuthorizationError, ConflictError, NotFoundError, ValidationError
from billing_engine.domain.localization import format_auto_payment_description
from billing_engine.domain.models import (
    Result,
    SettlementJobResult,
    SettlementOutcome,
    SettlementRequest,
    StatementPeriod,
)
from billing_engine.domain.statement_period import statement_ending_on
from billing_engine.infrastructure.database.models import PaymentMethod, Transaction
from billing_engine.infrastructure.database.repositories import (
    CategoryRepository,
    PaymentMethodRepository,
    TransactionRepository,
)
from billing_engine.infrastructure.observability.events import EventRecorder
from billing_engine.infrastructure.observability.metrics import record_settlement
from billing_engine.services.base import BillingService, parse_id
from billing_engine.services.budget import BudgetAggregator

logger = logging.getLogger(__name__)

CREATED = "created"
ALREADY_EXISTS = "already_exists"


class SettlementCategoryCache:
    """Resolved system category IDs, kept until invalidated"""

    def __init__(self):
        self._ids: Dict[str, uuid.UUID] = {}

    def get(self, name: str) -> Optional[uuid.UUID]:
        return self._ids.get(name)

    def set(self, name: str, category_id: uuid.UUID) -> None:
        self._ids[name] = category_id

    def invalidate(self) -> None:
        self._ids.clear()


class AutoPaymentTransactionCreator(BillingService):
    """
    Creates the payment transaction for a closed statement, at most once.

    The unique constraint on (user, card, statement end) is what guarantees a
    single row; the lookup before inserting only avoids the failed insert in
    the common duplicate case.
    """

    def __init__(
        self,
        db: Session,
        category_cache: SettlementCategoryCache,
        recorder: EventRecorder | None = None,
        config: Settings = settings,
    ):
        super().__init__(db, recorder, config)
        self.category_cache = category_cache
        self.transactions = TransactionRepository(db)
        self.categories = CategoryRepository(db)
        self.payment_methods = PaymentMethodRepository(db)

    def create(self, request: SettlementRequest) -> Result:
        result = self._run(
            "create_settlement",
            request.user_id,
            lambda: self._create(request),
            payment_method_id=request.payment_method_id,
            closed_on=request.closed_on.isoformat(),
        )
        record_settlement(result.data.status if result.success else "failed")
        return result

    def _create(self, request: SettlementRequest) -> SettlementOutcome:
        card = self._load_card(request.user_id, request.payment_method_id)

        period = statement_ending_on(request.closed_on, card.statement_closing_day, self.overflow)
        if period is None:
            raise ValidationError(f"No statement for this card closes on {request.closed_on.isoformat()}")
        due_date = due_date_for_period(period, card.payment_due_day)

        existing = self.transactions.find_settlement(request.user_id, card.id, period.period_end)
        if existing is not None:
            return self._already_exists(existing, period, due_date)

        amount = request.statement_total_cents
        if amount is None:
            amount = self._statement_total(request.user_id, card, period)
        if amount <= 0:
            raise ValidationError("Statement total must be greater than zero")

        category_id = self._resolve_category()
        account = self.payment_methods.get_default_bank_account(request.user_id)
        if account is None:
            logger.info(
                "No default bank account; settlement created without one",
                extra={"user_id": request.user_id, "payment_method_id": str(card.id)},
            )

        locale = request.locale or self.config.default_locale
        # Captured before a possible rollback expires the instance
        card_id, card_name, user_id = card.id, card.name, request.user_id

        try:
            txn = self.transactions.create(
                user_id=user_id,
                amount_cents=amount,
                type="expense",
                description=format_auto_payment_description(card_name, period.period_end, locale),
                date=due_date,
                category_id=category_id,
                payment_method_id=account.id if account else None,
                settlement_payment_method_id=card_id,
                settlement_period_end=period.period_end,
                meta={
                    "auto_generated": True,
                    "source": "statement_close",
                    "credit_card_id": str(card_id),
                    "statement_period_start": period.period_start.isoformat(),
                    "statement_period_end": period.period_end.isoformat(),
                    "statement_total_cents": amount,
                },
            )
        except IntegrityError:
            # A concurrent run inserted the same settlement first
            self.db.rollback()
            existing = self.transactions.find_settlement(user_id, card_id, period.period_end)
            if existing is None:
                raise ConflictError("Settlement insert conflicted with a row that is no longer visible")
            return self._already_exists(existing, period, due_date)

        self.recorder.record(
            "auto_payment_created",
            user_id,
            payment_method_id=card_id,
            transaction_id=txn.id,
            amount_cents=amount,
            account_linked=account is not None,
        )
        return SettlementOutcome(
            status=CREATED,
            transaction_id=str(txn.id),
            amount_cents=amount,
            due_date=due_date,
            period_start=period.period_start,
            period_end=period.period_end,
            account_linked=account is not None,
        )

    def _load_card(self, user_id: str, payment_method_id: str) -> PaymentMethod:
        card = self.payment_methods.get(parse_id(payment_method_id, "payment method ID"))
        if card is None:
            raise NotFoundError("Payment method not found")
        if card.user_id != user_id:
            raise AuthorizationError("Payment method belongs to another user")
        if not card.credit_mode or card.statement_closing_day is None or card.payment_due_day is None:
            raise ValidationError("Card has no statement closing day and due day configured")
        validate_due_day_offset(card.payment_due_day, self.config.max_due_day_offset)
        return card

    def _resolve_category(self) -> uuid.UUID:
        name = self.config.settlement_category_name
        category_id = self.category_cache.get(name)
        if category_id is not None:
            return category_id

        category = self.categories.find_system_category(name)
        if category is None:
            raise NotFoundError(f"System category '{name}' not found")

        self.category_cache.set(name, category.id)
        return category.id

    def _statement_total(self, user_id: str, card: PaymentMethod, period: StatementPeriod) -> int:
        budget = BudgetAggregator(self.db, self.recorder, self.config)
        items = budget.collect_items(user_id, str(card.id), period.period_start, period.period_end)
        return sum(item.amount_cents for item in items)

    def _already_exists(self, existing: Transaction, period: StatementPeriod, due_date: date) -> SettlementOutcome:
        return SettlementOutcome(
            status=ALREADY_EXISTS,
            transaction_id=str(existing.id),
            amount_cents=existing.amount_cents,
            due_date=existing.date or due_date,
            period_start=period.period_start,
            period_end=period.period_end,
            account_linked=existing.payment_method_id is not None,
        )


class SettlementJob(BillingService):
    """
    Closes every statement that ends on a given day.

    The external scheduler decides when to run it; re-running for the same
    day creates nothing new.
    """

    def __init__(
        self,
        db: Session,
        category_cache: SettlementCategoryCache,
        recorder: EventRecorder | None = None,
        config: Settings = settings,
    ):
        super().__init__(db, recorder, config)
        self.payment_methods = PaymentMethodRepository(db)
        self.budget = BudgetAggregator(db, self.recorder, config)
        self.creator = AutoPaymentTransactionCreator(db, category_cache, self.recorder, config)

    def run(self, closed_on: date, locale: Optional[str] = None) -> Result:
        return self._run(
            "settlement_job",
            "system",
            lambda: self._run_job(closed_on, locale),
            mutates=False,
            closed_on=closed_on.isoformat(),
        )

    def closing_cards(self, closed_on: date) -> List[Tuple[PaymentMethod, StatementPeriod]]:
        """Statement cards with a period ending on `closed_on`, paired with that period"""
        closing = []
        for card in self.payment_methods.list_statement_cards():
            if not 1 <= card.statement_closing_day <= 31:
                logger.warning(
                    "Skipping card with invalid closing day",
                    extra={"payment_method_id": str(card.id), "closing_day": card.statement_closing_day},
                )
                continue
            period = statement_ending_on(closed_on, card.statement_closing_day, self.overflow)
            if period is not None:
                closing.append((card, period))
        return closing

    def _run_job(self, closed_on: date, locale: Optional[str]) -> SettlementJobResult:
        start_time = time.perf_counter()
        # Plain values so a rollback inside one settlement cannot expire them
        cards = [(str(card.id), card.user_id, period) for card, period in self.closing_cards(closed_on)]
        summary = SettlementJobResult(statements_closed=len(cards))

        batch_size = max(1, self.config.settlement_batch_size)
        for offset in range(0, len(cards), batch_size):
            batch = cards[offset:offset + batch_size]
            for card_id, user_id, period in batch:
                self._settle(summary, card_id, user_id, period, closed_on, locale)

            logger.info(
                "Settlement batch processed",
                extra={"batch_start": offset, "batch_size": len(batch), "closed_on": closed_on.isoformat()},
            )

        processed = summary.transactions_created + summary.transactions_skipped
        summary.success_rate = round(processed / summary.statements_closed * 100, 2) if summary.statements_closed else 100.0
        summary.duration_ms = round((time.perf_counter() - start_time) * 1000, 2)

        self.recorder.record(
            "settlement_job_completed",
            "system",
            closed_on=closed_on.isoformat(),
            statements_closed=summary.statements_closed,
            transactions_created=summary.transactions_created,
            transactions_failed=summary.transactions_failed,
        )
        return summary

    def _settle(
        self,
        summary: SettlementJobResult,
        card_id: str,
        user_id: str,
        period: StatementPeriod,
        closed_on: date,
        locale: Optional[str],
    ) -> None:
        spent = self.budget.calculate_budget_spent(user_id, card_id, period.period_start, period.period_end)
        if not spent.success:
            summary.transactions_failed += 1
            summary.errors.append({"payment_method_id": card_id, "error_code": spent.error_code, "error": spent.error})
            return

        if spent.data == 0:
            # Nothing charged this period
            summary.transactions_skipped += 1
            return

        result = self.creator.create(
            SettlementRequest(
                user_id=user_id,
                payment_method_id=card_id,
                closed_on=closed_on,
                statement_total_cents=spent.data,
                locale=locale,
            )
        )
        if not result.success:
            summary.transactions_failed += 1
            summary.errors.append({"payment_method_id": card_id, "error_code": result.error_code, "error": result.error})
        elif result.data.status == CREATED:
            summary.transactions_created += 1
            summary.total_amount_cents += result.data.amount_cents
        else:
            summary.transactions_skipped += 1

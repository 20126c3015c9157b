"""Budget view merging transactions and installment obligations for a statement period"""

import uuid
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from billing_engine.config import Settings, settings
from billing_engine.domain.exceptions import AuthorizationError, NotFoundError, ValidationError
from billing_engine.domain.localization import message
from billing_engine.domain.models import (
    BudgetItem,
    BudgetLine,
    BudgetView,
    CommitmentDetail,
    FutureCommitment,
    Result,
)
from billing_engine.infrastructure.database.models import Category
from billing_engine.infrastructure.database.repositories import (
    CategoryRepository,
    PaymentMethodRepository,
    PlanRepository,
    TransactionRepository,
)
from billing_engine.infrastructure.observability.events import EventRecorder
from billing_engine.services.base import BillingService, parse_id
from billing_engine.utils.date_utils import add_months, month_bounds, month_key

MAX_MONTHS_AHEAD = 120


def build_budget_view(
    period_start: date,
    period_end: date,
    items: List[BudgetItem],
    categories: Dict[uuid.UUID, Category],
    uncategorized_name: str,
) -> BudgetView:
    """
    Group budget items by category.

    Lines are ordered by total, largest first; items within a line by date,
    most recent first. No items gives a view with no lines.
    """
    grouped: Dict[Optional[str], List[BudgetItem]] = defaultdict(list)
    for item in items:
        grouped[item.category_id].append(item)

    lines = []
    for category_id, group in grouped.items():
        category = categories.get(uuid.UUID(category_id)) if category_id else None
        installment_count = sum(1 for item in group if item.is_installment)
        lines.append(
            BudgetLine(
                category_id=category_id,
                category_name=category.name if category else uncategorized_name,
                category_icon=category.icon if category else None,
                total_cents=sum(item.amount_cents for item in group),
                item_count=len(group),
                installment_count=installment_count,
                regular_count=len(group) - installment_count,
                items=sorted(group, key=lambda item: item.date, reverse=True),
            )
        )

    lines.sort(key=lambda line: (-line.total_cents, line.category_name))
    return BudgetView(
        period_start=period_start,
        period_end=period_end,
        total_cents=sum(line.total_cents for line in lines),
        lines=lines,
    )


class BudgetAggregator(BillingService):
    """Read-only aggregation over a user's transactions and installment payments"""

    def __init__(self, db: Session, recorder: EventRecorder | None = None, config: Settings = settings):
        super().__init__(db, recorder, config)
        self.transactions = TransactionRepository(db)
        self.plans = PlanRepository(db)
        self.categories = CategoryRepository(db)
        self.payment_methods = PaymentMethodRepository(db)

    def get_budget_view(
        self,
        user_id: str,
        payment_method_id: str,
        period_start: date,
        period_end: date,
        locale: Optional[str] = None,
    ) -> Result:
        return self._run(
            "budget_view",
            user_id,
            lambda: self._budget_view(user_id, payment_method_id, period_start, period_end, locale),
            mutates=False,
            payment_method_id=payment_method_id,
        )

    def calculate_budget_spent(
        self,
        user_id: str,
        payment_method_id: str,
        period_start: date,
        period_end: date,
    ) -> Result:
        """Total of the budget view for the period, in cents"""
        return self._run(
            "budget_spent",
            user_id,
            lambda: sum(
                item.amount_cents
                for item in self.collect_items(user_id, payment_method_id, period_start, period_end)
            ),
            mutates=False,
            payment_method_id=payment_method_id,
        )

    def get_future_commitments(self, user_id: str, after: date, months_ahead: int = 12) -> Result:
        return self._run(
            "future_commitments",
            user_id,
            lambda: self._future_commitments(user_id, after, months_ahead),
            mutates=False,
        )

    def get_commitments_for_month(self, user_id: str, month: str) -> Result:
        return self._run(
            "commitments_for_month",
            user_id,
            lambda: self._commitments_for_month(user_id, month),
            mutates=False,
            month=month,
        )

    def collect_items(
        self,
        user_id: str,
        payment_method_id: str,
        period_start: date,
        period_end: date,
    ) -> List[BudgetItem]:
        """
        Expense transactions and due installment payments for one instrument.

        Installment payments already linked to a transaction are left out;
        the transaction row counts them.
        """
        if period_start > period_end:
            raise ValidationError("Period start must not be after period end")

        instrument_id = parse_id(payment_method_id, "payment method ID")
        instrument = self.payment_methods.get(instrument_id)
        if instrument is None:
            raise NotFoundError("Payment method not found")
        if instrument.user_id != user_id:
            raise AuthorizationError("Payment method belongs to another user")

        # Two batched queries, joined in memory
        transactions = self.transactions.list_expenses_for_period(user_id, instrument_id, period_start, period_end)
        due = self.plans.list_payments_due(
            user_id,
            period_start,
            period_end,
            payment_method_id=instrument_id,
            unlinked_only=True,
        )

        items = [
            BudgetItem(
                source_id=str(txn.id),
                date=txn.date,
                description=txn.description,
                amount_cents=txn.amount_cents,
                category_id=str(txn.category_id) if txn.category_id else None,
                is_installment=txn.installment_plan_id is not None,
            )
            for txn in transactions
        ]
        items.extend(
            BudgetItem(
                source_id=str(payment.id),
                date=payment.due_date,
                description=plan.description,
                amount_cents=payment.amount_cents,
                category_id=str(plan.category_id) if plan.category_id else None,
                is_installment=True,
                installment_number=payment.installment_number,
                total_installments=plan.total_installments,
            )
            for payment, plan in due
        )
        return items

    def _budget_view(
        self,
        user_id: str,
        payment_method_id: str,
        period_start: date,
        period_end: date,
        locale: Optional[str],
    ) -> BudgetView:
        items = self.collect_items(user_id, payment_method_id, period_start, period_end)
        categories = self.categories.get_many(uuid.UUID(item.category_id) for item in items if item.category_id)
        return build_budget_view(
            period_start,
            period_end,
            items,
            categories,
            message(locale or self.config.default_locale, "uncategorized"),
        )

    def _future_commitments(self, user_id: str, after: date, months_ahead: int) -> List[FutureCommitment]:
        if not 1 <= months_ahead <= MAX_MONTHS_AHEAD:
            raise ValidationError(f"months_ahead must be between 1 and {MAX_MONTHS_AHEAD}")

        rows = self.plans.list_payments_due(
            user_id,
            after + timedelta(days=1),
            add_months(after, months_ahead),
            pending_only=True,
        )

        totals: Dict[str, Tuple[int, int]] = {}
        for payment, _plan in rows:
            key = month_key(payment.due_date)
            amount, count = totals.get(key, (0, 0))
            totals[key] = (amount + payment.amount_cents, count + 1)

        return [
            FutureCommitment(month=key, total_due_cents=amount, payment_count=count)
            for key, (amount, count) in sorted(totals.items())
        ]

    def _commitments_for_month(self, user_id: str, month: str) -> List[CommitmentDetail]:
        try:
            first, last = month_bounds(month)
        except ValueError:
            raise ValidationError("Month must be formatted as YYYY-MM")

        rows = self.plans.list_payments_due(user_id, first, last, pending_only=True)
        return [
            CommitmentDetail(
                plan_id=str(plan.id),
                description=plan.description,
                installment_number=payment.installment_number,
                total_installments=plan.total_installments,
                amount_cents=payment.amount_cents,
                due_date=payment.due_date,
                category_id=str(plan.category_id) if plan.category_id else None,
            )
            for payment, plan in rows
        ]

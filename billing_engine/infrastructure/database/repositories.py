"""Data access layer for plans, payments, transactions and their reference data"""

import secrets
import uuid
from datetime import date
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from billing_engine.domain.models import NewPlan, PaymentStatus, PlanStatus, ScheduledPayment
from billing_engine.infrastructure.database.models import (
    Category,
    InstallmentPayment,
    InstallmentPlan,
    PaymentMethod,
    Transaction,
)


class PaymentMethodRepository:
    """Repository for funding instruments and bank accounts"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, payment_method_id: uuid.UUID) -> Optional[PaymentMethod]:
        return self.db.get(PaymentMethod, payment_method_id)

    def get_default_bank_account(self, user_id: str) -> Optional[PaymentMethod]:
        """User's default bank account, if one is configured"""
        return (
            self.db.query(PaymentMethod)
            .filter(
                PaymentMethod.user_id == user_id,
                PaymentMethod.type == "bank",
                PaymentMethod.is_default.is_(True),
            )
            .order_by(PaymentMethod.created_at)
            .first()
        )

    def list_statement_cards(self) -> List[PaymentMethod]:
        """Credit-mode cards with both a closing day and a due-day offset configured"""
        return (
            self.db.query(PaymentMethod)
            .filter(
                PaymentMethod.credit_mode.is_(True),
                PaymentMethod.statement_closing_day.isnot(None),
                PaymentMethod.payment_due_day.isnot(None),
            )
            .all()
        )


class CategoryRepository:
    """Repository for categories"""

    def __init__(self, db: Session):
        self.db = db

    def get_many(self, category_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, Category]:
        ids = {cid for cid in category_ids if cid is not None}
        if not ids:
            return {}
        rows = self.db.query(Category).filter(Category.id.in_(ids)).all()
        return {row.id: row for row in rows}

    def find_system_category(self, name: str) -> Optional[Category]:
        return (
            self.db.query(Category)
            .filter(Category.is_system.is_(True), Category.name == name)
            .first()
        )


class TransactionRepository:
    """Repository for ledger transactions"""

    def __init__(self, db: Session):
        self.db = db

    def generate_readable_id(self) -> str:
        """6-character upper-case hex ID not yet used by any transaction"""
        while True:
            candidate = secrets.token_hex(3).upper()
            exists = self.db.query(Transaction.id).filter(Transaction.readable_id == candidate).first()
            if not exists:
                return candidate

    def create(self, **fields) -> Transaction:
        """Persist a transaction with a fresh readable ID"""
        db_transaction = Transaction(readable_id=self.generate_readable_id(), **fields)
        self.db.add(db_transaction)
        self.db.flush()  # Get ID without committing
        return db_transaction

    def get_many(self, transaction_ids: Iterable[uuid.UUID]) -> List[Transaction]:
        ids = {tid for tid in transaction_ids if tid is not None}
        if not ids:
            return []
        return self.db.query(Transaction).filter(Transaction.id.in_(ids)).all()

    def list_linked_to_plan(self, plan_id: uuid.UUID) -> List[Transaction]:
        return self.db.query(Transaction).filter(Transaction.installment_plan_id == plan_id).all()

    def list_expenses_for_period(
        self,
        user_id: str,
        payment_method_id: uuid.UUID,
        period_start: date,
        period_end: date,
    ) -> List[Transaction]:
        """Expense transactions charged to an instrument within an inclusive period"""
        return (
            self.db.query(Transaction)
            .filter(
                Transaction.user_id == user_id,
                Transaction.payment_method_id == payment_method_id,
                Transaction.type == "expense",
                Transaction.date >= period_start,
                Transaction.date <= period_end,
            )
            .order_by(Transaction.date.desc())
            .all()
        )

    def find_settlement(self, user_id: str, payment_method_id: uuid.UUID, period_end: date) -> Optional[Transaction]:
        """Auto-generated settlement already recorded for this statement close"""
        return (
            self.db.query(Transaction)
            .filter(
                Transaction.user_id == user_id,
                Transaction.settlement_payment_method_id == payment_method_id,
                Transaction.settlement_period_end == period_end,
            )
            .first()
        )

    def clear_installment_links(self, transactions: Iterable[Transaction]) -> int:
        """Detach transactions from their plan and payment, keeping the ledger rows"""
        count = 0
        for txn in transactions:
            txn.installment_plan_id = None
            txn.installment_payment_id = None
            if txn.meta:
                meta = dict(txn.meta)
                meta.pop("installment_plan_id", None)
                meta.pop("installment_payment_id", None)
                txn.meta = meta
            count += 1
        self.db.flush()
        return count


class PlanRepository:
    """Repository for installment plans"""

    def __init__(self, db: Session):
        self.db = db

    def create_plan(self, new_plan: NewPlan, payment_method_id: uuid.UUID, category_id: Optional[uuid.UUID], schedule: List[ScheduledPayment]) -> InstallmentPlan:
        """Create plan with its full schedule"""
        db_plan = InstallmentPlan(
            user_id=new_plan.user_id,
            payment_method_id=payment_method_id,
            description=new_plan.description,
            merchant=new_plan.merchant,
            category_id=category_id,
            total_amount_cents=new_plan.total_amount_cents,
            total_installments=new_plan.total_installments,
            status=PlanStatus.ACTIVE.value,
        )
        self.db.add(db_plan)
        self.db.flush()

        PaymentRepository(self.db).add_payments(db_plan, schedule)
        return db_plan

    def get_plan_by_id(self, plan_id: uuid.UUID) -> Optional[InstallmentPlan]:
        """Fetch plan with payments"""
        return (
            self.db.query(InstallmentPlan)
            .filter(InstallmentPlan.id == plan_id)
            .first()
        )

    def delete_plan(self, plan: InstallmentPlan) -> None:
        """Delete plan; payments go with it"""
        self.db.delete(plan)
        self.db.flush()

    def list_payments_due(
        self,
        user_id: str,
        period_start: date,
        period_end: date,
        payment_method_id: Optional[uuid.UUID] = None,
        pending_only: bool = False,
        unlinked_only: bool = False,
    ) -> List[Tuple[InstallmentPayment, InstallmentPlan]]:
        """Payments of active plans due within an inclusive date range, with their plan"""
        query = (
            self.db.query(InstallmentPayment, InstallmentPlan)
            .join(InstallmentPlan, InstallmentPayment.plan_id == InstallmentPlan.id)
            .filter(
                InstallmentPlan.user_id == user_id,
                InstallmentPlan.status == PlanStatus.ACTIVE.value,
                InstallmentPayment.due_date >= period_start,
                InstallmentPayment.due_date <= period_end,
            )
        )
        if payment_method_id is not None:
            query = query.filter(InstallmentPlan.payment_method_id == payment_method_id)
        if pending_only:
            query = query.filter(InstallmentPayment.status == PaymentStatus.PENDING.value)
        if unlinked_only:
            query = query.filter(InstallmentPayment.transaction_id.is_(None))
        return query.order_by(InstallmentPayment.due_date, InstallmentPayment.installment_number).all()


class PaymentRepository:
    """Repository for the payments of a plan"""

    def __init__(self, db: Session):
        self.db = db

    def add_payments(self, plan: InstallmentPlan, scheduled: List[ScheduledPayment]) -> List[InstallmentPayment]:
        created = []
        for item in scheduled:
            db_payment = InstallmentPayment(
                installment_number=item.installment_number,
                due_date=item.due_date,
                amount_cents=item.amount_cents,
                status=PaymentStatus.PENDING.value,
            )
            plan.payments.append(db_payment)
            created.append(db_payment)
        self.db.flush()
        return created

    def delete_payments(self, plan: InstallmentPlan, payments: List[InstallmentPayment]) -> None:
        for payment in payments:
            plan.payments.remove(payment)  # delete-orphan removes the row
        self.db.flush()


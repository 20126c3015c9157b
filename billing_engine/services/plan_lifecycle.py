"""Installment plan lifecycle: create, update, payoff, pay one installment, delete"""

import uuid
from datetime import date
from typing import Dict, Optional

from sqlalchemy.orm import Session

from billing_engine.config import Settings, settings
from billing_engine.domain.exceptions import AuthorizationError, NotFoundError, StateError, ValidationError
from billing_engine.domain.installments import generate_installment_schedule, validate_plan_terms
from billing_engine.domain.localization import message
from billing_engine.domain.models import (
    DeleteResult,
    NewPlan,
    PaymentSettled,
    PaymentStatus,
    PaymentView,
    PayoffResult,
    PayoffSummary,
    PlanChanges,
    PlanStatus,
    PlanView,
    Result,
    UpdateSummary,
)
from billing_engine.infrastructure.database.models import InstallmentPlan, Transaction
from billing_engine.infrastructure.database.repositories import (
    PaymentMethodRepository,
    PlanRepository,
    TransactionRepository,
)
from billing_engine.infrastructure.observability.events import EventRecorder
from billing_engine.services.base import BillingService, parse_id, parse_optional_id
from billing_engine.services.schedule_mutator import (
    ScheduleMutator,
    ordered_payments,
    paid_payments,
    pending_payments,
)


def to_plan_view(plan: InstallmentPlan) -> PlanView:
    return PlanView(
        plan_id=str(plan.id),
        user_id=plan.user_id,
        payment_method_id=str(plan.payment_method_id),
        description=plan.description,
        merchant=plan.merchant,
        category_id=str(plan.category_id) if plan.category_id else None,
        total_amount_cents=plan.total_amount_cents,
        total_installments=plan.total_installments,
        status=plan.status,
        payments=[
            PaymentView(
                installment_number=p.installment_number,
                due_date=p.due_date,
                amount_cents=p.amount_cents,
                status=p.status,
                transaction_id=str(p.transaction_id) if p.transaction_id else None,
            )
            for p in ordered_payments(plan)
        ],
    )


class PlanLifecycleManager(BillingService):
    """
    Orchestrates the installment plan state machine.

    active -> paid_off (payoff, or last installment paid)
    active -> cancelled (delete; the plan row is removed)

    Every operation returns a Result and is applied atomically.
    """

    def __init__(self, db: Session, recorder: EventRecorder | None = None, config: Settings = settings):
        super().__init__(db, recorder, config)
        self.plans = PlanRepository(db)
        self.transactions = TransactionRepository(db)
        self.payment_methods = PaymentMethodRepository(db)
        self.mutator = ScheduleMutator(db)

    # Public operations

    def create_plan(self, new_plan: NewPlan) -> Result:
        return self._run("create_plan", new_plan.user_id, lambda: self._create(new_plan))

    def get_plan(self, user_id: str, plan_id: str) -> Result:
        return self._run(
            "get_plan",
            user_id,
            lambda: to_plan_view(self._load_plan(user_id, plan_id)),
            mutates=False,
            plan_id=plan_id,
        )

    def update_plan(self, user_id: str, plan_id: str, changes: PlanChanges) -> Result:
        return self._run("update_plan", user_id, lambda: self._update(user_id, plan_id, changes), plan_id=plan_id)

    def get_payoff_summary(self, user_id: str, plan_id: str) -> Result:
        return self._run(
            "payoff_summary",
            user_id,
            lambda: self._payoff_summary(user_id, plan_id),
            mutates=False,
            plan_id=plan_id,
        )

    def payoff_plan(
        self,
        user_id: str,
        plan_id: str,
        paid_on: date,
        create_transaction: bool = False,
        locale: Optional[str] = None,
    ) -> Result:
        return self._run(
            "payoff_plan",
            user_id,
            lambda: self._payoff(user_id, plan_id, paid_on, create_transaction, locale),
            plan_id=plan_id,
        )

    def mark_payment_paid(
        self,
        user_id: str,
        plan_id: str,
        installment_number: int,
        paid_on: date,
        create_transaction: bool = True,
        locale: Optional[str] = None,
    ) -> Result:
        return self._run(
            "mark_payment_paid",
            user_id,
            lambda: self._mark_paid(user_id, plan_id, installment_number, paid_on, create_transaction, locale),
            plan_id=plan_id,
            installment_number=installment_number,
        )

    def delete_plan(self, user_id: str, plan_id: str) -> Result:
        return self._run("delete_plan", user_id, lambda: self._delete(user_id, plan_id), plan_id=plan_id)

    # Internals

    def _load_plan(self, user_id: str, plan_id: str) -> InstallmentPlan:
        plan = self.plans.get_plan_by_id(parse_id(plan_id, "plan ID"))
        if plan is None:
            raise NotFoundError("Installment plan not found")
        if plan.user_id != user_id:
            raise AuthorizationError("Installment plan belongs to another user")
        return plan

    def _load_active_plan(self, user_id: str, plan_id: str) -> InstallmentPlan:
        plan = self._load_plan(user_id, plan_id)
        if plan.status != PlanStatus.ACTIVE.value:
            raise StateError(f"Plan is {plan.status}; only active plans can be changed")
        return plan

    def _create(self, new_plan: NewPlan) -> PlanView:
        description = (new_plan.description or "").strip()
        if not description:
            raise ValidationError("Description is required")

        payment_method_id = parse_id(new_plan.payment_method_id, "payment method ID")
        category_id = parse_optional_id(new_plan.category_id, "category ID")

        card = self.payment_methods.get(payment_method_id)
        if card is None:
            raise NotFoundError("Payment method not found")
        if card.user_id != new_plan.user_id:
            raise AuthorizationError("Payment method belongs to another user")
        if card.type != "credit" or not card.credit_mode:
            raise ValidationError("Installment plans require a credit card in credit mode")

        schedule = generate_installment_schedule(
            new_plan.total_amount_cents,
            new_plan.total_installments,
            new_plan.first_due_date,
            max_installments=self.config.max_installments,
        )

        new_plan.description = description
        plan = self.plans.create_plan(new_plan, payment_method_id, category_id, schedule)

        self.recorder.record(
            "installment_plan_created",
            new_plan.user_id,
            plan_id=plan.id,
            total_amount_cents=plan.total_amount_cents,
            total_installments=plan.total_installments,
        )
        return to_plan_view(plan)

    def _update(self, user_id: str, plan_id: str, changes: PlanChanges) -> UpdateSummary:
        plan = self._load_active_plan(user_id, plan_id)

        details = self._detail_changes(plan, changes)
        new_total = changes.total_amount_cents if changes.total_amount_cents is not None else plan.total_amount_cents
        new_count = changes.total_installments if changes.total_installments is not None else plan.total_installments
        terms_changed = new_total != plan.total_amount_cents or new_count != plan.total_installments

        if not details and not terms_changed:
            raise ValidationError("No changes to apply")

        summary = UpdateSummary(plan_id=str(plan.id), fields_changed=sorted(details))
        if terms_changed:
            validate_plan_terms(new_total, new_count, self.config.max_installments)
            self._apply_terms(plan, new_total, new_count, summary)
        if details:
            self._apply_details(plan, details)

        summary.status = plan.status
        self.recorder.record(
            "installment_plan_updated",
            user_id,
            plan_id=plan.id,
            fields_changed=summary.fields_changed,
            payments_added=summary.payments_added,
            payments_removed=summary.payments_removed,
        )
        return summary

    def _detail_changes(self, plan: InstallmentPlan, changes: PlanChanges) -> Dict[str, object]:
        """Descriptive fields whose requested value differs from the plan's"""
        detail: Dict[str, object] = {}

        if changes.description is not None:
            description = changes.description.strip()
            if not description:
                raise ValidationError("Description cannot be empty")
            if description != plan.description:
                detail["description"] = description

        if changes.merchant is not None:
            merchant = changes.merchant.strip() or None
            if merchant != plan.merchant:
                detail["merchant"] = merchant

        if changes.category_id is not None:
            category_id = parse_optional_id(changes.category_id, "category ID")
            if category_id != plan.category_id:
                detail["category_id"] = category_id

        return detail

    def _apply_details(self, plan: InstallmentPlan, detail: Dict[str, object]) -> None:
        for field_name, value in detail.items():
            setattr(plan, field_name, value)
        self.db.flush()

    def _apply_terms(self, plan: InstallmentPlan, new_total: int, new_count: int, summary: UpdateSummary) -> None:
        """Adjust payment count then recalculate pending amounts so paid + pending == total"""
        paid = paid_payments(plan)
        paid_count = len(paid)
        paid_amount = sum(p.amount_cents for p in paid)

        if new_count < paid_count:
            raise StateError(f"Cannot reduce installments below {paid_count} already paid")
        if new_total < paid_amount:
            raise StateError("New total is below the amount already paid")
        if new_count == paid_count and new_total != paid_amount:
            raise StateError("No pending installments would remain to absorb the new total")

        old_total, old_count = plan.total_amount_cents, plan.total_installments
        if new_total != old_total:
            summary.fields_changed.append("total_amount_cents")
            summary.old_amount_cents, summary.new_amount_cents = old_total, new_total
        if new_count != old_count:
            summary.fields_changed.append("total_installments")
            summary.old_installments, summary.new_installments = old_count, new_count

        added, removed = self.mutator.adjust_payment_count(plan, old_count, new_count, paid_count)
        plan.total_amount_cents = new_total
        plan.total_installments = new_count
        recalculated = self.mutator.recalculate_pending_payments(plan, new_total, new_count, paid_count, paid_amount)

        summary.payments_added = added
        summary.payments_removed = removed
        summary.payments_recalculated = recalculated

        if not pending_payments(plan):
            plan.status = PlanStatus.PAID_OFF.value
        self.db.flush()

    def _payoff_summary(self, user_id: str, plan_id: str) -> PayoffSummary:
        plan = self._load_active_plan(user_id, plan_id)
        paid = paid_payments(plan)
        pending = pending_payments(plan)

        return PayoffSummary(
            plan_id=str(plan.id),
            description=plan.description,
            payment_method_name=plan.payment_method.name if plan.payment_method else "",
            total_amount_cents=plan.total_amount_cents,
            total_installments=plan.total_installments,
            payments_paid=len(paid),
            amount_paid_cents=sum(p.amount_cents for p in paid),
            payments_pending=len(pending),
            amount_remaining_cents=sum(p.amount_cents for p in pending),
        )

    def _payoff(
        self,
        user_id: str,
        plan_id: str,
        paid_on: date,
        create_transaction: bool,
        locale: Optional[str],
    ) -> PayoffResult:
        plan = self._load_active_plan(user_id, plan_id)
        pending = pending_payments(plan)
        amount = sum(p.amount_cents for p in pending)

        payoff_txn = None
        if create_transaction and amount > 0:
            payoff_txn = self._create_plan_transaction(
                plan,
                amount,
                paid_on,
                message(locale or self.config.default_locale, "payoff_description", plan.description),
                {"payoff": True, "payments_settled": len(pending)},
            )

        for payment in pending:
            payment.status = PaymentStatus.PAID.value
            if payoff_txn is not None:
                payment.transaction_id = payoff_txn.id

        plan.status = PlanStatus.PAID_OFF.value
        self.db.flush()

        self.recorder.record(
            "installment_plan_paid_off",
            user_id,
            plan_id=plan.id,
            payments_settled=len(pending),
            amount_settled_cents=amount,
        )
        return PayoffResult(
            plan_id=str(plan.id),
            payments_settled=len(pending),
            amount_settled_cents=amount,
            payoff_transaction_id=str(payoff_txn.id) if payoff_txn else None,
        )

    def _mark_paid(
        self,
        user_id: str,
        plan_id: str,
        installment_number: int,
        paid_on: date,
        create_transaction: bool,
        locale: Optional[str],
    ) -> PaymentSettled:
        plan = self._load_active_plan(user_id, plan_id)

        payment = next((p for p in plan.payments if p.installment_number == installment_number), None)
        if payment is None:
            raise NotFoundError(f"Installment {installment_number} not found")
        if payment.status != PaymentStatus.PENDING.value:
            raise StateError(f"Installment {installment_number} is already paid")

        txn = None
        if create_transaction:
            txn = self._create_plan_transaction(
                plan,
                payment.amount_cents,
                paid_on,
                message(
                    locale or self.config.default_locale,
                    "installment_description",
                    plan.description,
                    payment.installment_number,
                    plan.total_installments,
                ),
                {"installment_number": payment.installment_number},
                installment_payment_id=payment.id,
            )

        payment.status = PaymentStatus.PAID.value
        if txn is not None:
            payment.transaction_id = txn.id

        if not pending_payments(plan):
            plan.status = PlanStatus.PAID_OFF.value
        self.db.flush()

        self.recorder.record(
            "installment_payment_paid",
            user_id,
            plan_id=plan.id,
            installment_number=installment_number,
            plan_status=plan.status,
        )
        return PaymentSettled(
            plan_id=str(plan.id),
            installment_number=installment_number,
            amount_cents=payment.amount_cents,
            plan_status=plan.status,
            transaction_id=str(txn.id) if txn else None,
        )

    def _create_plan_transaction(
        self,
        plan: InstallmentPlan,
        amount_cents: int,
        on: date,
        description: str,
        extra_meta: dict,
        installment_payment_id: uuid.UUID | None = None,
    ) -> Transaction:
        meta = {"source": "installment_plan", "installment_plan_id": str(plan.id), **extra_meta}
        if installment_payment_id is not None:
            meta["installment_payment_id"] = str(installment_payment_id)

        return self.transactions.create(
            user_id=plan.user_id,
            amount_cents=amount_cents,
            type="expense",
            description=description,
            date=on,
            category_id=plan.category_id,
            payment_method_id=plan.payment_method_id,
            installment_plan_id=plan.id,
            installment_payment_id=installment_payment_id,
            meta=meta,
        )

    def _delete(self, user_id: str, plan_id: str) -> DeleteResult:
        plan = self._load_plan(user_id, plan_id)
        paid = paid_payments(plan)
        pending = pending_payments(plan)

        # Ledger rows survive; only their link to the plan is cleared
        linked: Dict[uuid.UUID, Transaction] = {
            txn.id: txn for txn in self.transactions.get_many(p.transaction_id for p in plan.payments)
        }
        for txn in self.transactions.list_linked_to_plan(plan.id):
            linked[txn.id] = txn
        orphaned = self.transactions.clear_installment_links(linked.values())

        result = DeleteResult(
            plan_id=str(plan.id),
            description=plan.description,
            paid_count=len(paid),
            pending_count=len(pending),
            paid_amount_cents=sum(p.amount_cents for p in paid),
            pending_amount_cents=sum(p.amount_cents for p in pending),
            transactions_orphaned=orphaned,
        )

        previous_status = plan.status
        self.plans.delete_plan(plan)

        self.recorder.record(
            "installment_plan_deleted",
            user_id,
            plan_id=result.plan_id,
            previous_status=previous_status,
            status=PlanStatus.CANCELLED.value,
            transactions_orphaned=orphaned,
        )
        return result


"""Payment-count adjustment and amount recalculation on a persisted schedule"""

from typing import List, Tuple

from sqlalchemy.orm import Session

from billing_engine.domain.exceptions import StateError
from billing_engine.domain.installments import plan_additional_payments, recalculate_pending_amounts
from billing_engine.domain.models import PaymentStatus
from billing_engine.infrastructure.database.models import InstallmentPayment, InstallmentPlan
from billing_engine.infrastructure.database.repositories import PaymentRepository


def ordered_payments(plan: InstallmentPlan) -> List[InstallmentPayment]:
    return sorted(plan.payments, key=lambda p: p.installment_number)


def pending_payments(plan: InstallmentPlan) -> List[InstallmentPayment]:
    return [p for p in ordered_payments(plan) if p.status == PaymentStatus.PENDING.value]


def paid_payments(plan: InstallmentPlan) -> List[InstallmentPayment]:
    return [p for p in ordered_payments(plan) if p.status == PaymentStatus.PAID.value]


class ScheduleMutator:
    """
    Mutates the pending part of a plan's schedule.

    Paid payments are never touched. Callers run both steps inside one
    database transaction; the plan is inconsistent between them.
    """

    def __init__(self, db: Session):
        self.db = db
        self.payments = PaymentRepository(db)

    def adjust_payment_count(
        self,
        plan: InstallmentPlan,
        old_installments: int,
        new_installments: int,
        paid_count: int,
    ) -> Tuple[int, int]:
        """
        Grow or shrink the schedule to `new_installments` payments.

        Growing appends pending payments with amount 0 continuing the monthly
        cadence from the last due date. Shrinking deletes pending payments
        numbered above `new_installments`.

        Returns:
            (payments_added, payments_removed)
        """
        if new_installments < paid_count:
            raise StateError(f"Cannot reduce installments below {paid_count} already paid")

        if new_installments == old_installments:
            return 0, 0

        payments = ordered_payments(plan)

        if new_installments > old_installments:
            last = payments[-1]
            additional = plan_additional_payments(
                last.installment_number,
                last.due_date,
                new_installments - old_installments,
            )
            self.payments.add_payments(plan, additional)
            return len(additional), 0

        beyond = [p for p in payments if p.installment_number > new_installments]
        if any(p.status == PaymentStatus.PAID.value for p in beyond):
            raise StateError(f"Installment {beyond[-1].installment_number} is already paid")

        self.payments.delete_payments(plan, beyond)
        return 0, len(beyond)

    def recalculate_pending_payments(
        self,
        plan: InstallmentPlan,
        total_amount_cents: int,
        total_installments: int,
        paid_count: int,
        paid_amount_cents: int,
    ) -> int:
        """Spread the unpaid remainder over pending payments; returns how many were updated"""
        amounts = recalculate_pending_amounts(total_amount_cents, total_installments, paid_count, paid_amount_cents)
        if not amounts:
            return 0

        pending = pending_payments(plan)
        if len(pending) != len(amounts):
            raise StateError("Payment schedule does not match plan terms")

        for payment, amount in zip(pending, amounts):
            payment.amount_cents = amount

        self.db.flush()
        return len(amounts)

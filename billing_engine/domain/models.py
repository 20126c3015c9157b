"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, List, Optional

from billing_engine.domain.exceptions import DomainException


class PlanStatus(str, Enum):
    ACTIVE = "active"
    PAID_OFF = "paid_off"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class PeriodType(str, Enum):
    CURRENT = "current"
    NEXT = "next"
    PAST = "past"


class OverflowPolicy(str, Enum):
    """How a closing day missing from a short month is resolved"""

    ROLL_FORWARD = "roll_forward"  # Feb 31 -> Mar 3
    CLAMP = "clamp"  # Feb 31 -> Feb 28


@dataclass(frozen=True)
class StatementPeriod:
    """Inclusive date range covered by one statement"""

    period_start: date
    period_end: date


@dataclass
class PeriodInfo:
    """Classification of a date relative to the current statement"""

    period: PeriodType
    period_start: date
    period_end: date


@dataclass
class DatedItem:
    """A dated row (transaction, payment) with its funding instrument's billing setup"""

    item_id: str
    date: date
    payment_method_id: str
    credit_mode: bool = False
    closing_day: Optional[int] = None


@dataclass
class PeriodBadge:
    item_id: str
    period: PeriodType
    period_start: Optional[date]
    period_end: Optional[date]
    should_display: bool


@dataclass
class PaymentDueDate:
    next_due_date: date
    due_day: int
    due_month: int
    due_year: int


@dataclass
class ScheduledPayment:
    """Single payment in an installment schedule"""

    installment_number: int
    due_date: date
    amount_cents: int


@dataclass
class NewPlan:
    """Input for creating an installment plan"""

    user_id: str
    payment_method_id: str
    description: str
    total_amount_cents: int
    total_installments: int
    first_due_date: date
    merchant: Optional[str] = None
    category_id: Optional[str] = None


@dataclass
class PlanChanges:
    """Requested edits to an active plan; None means 'leave unchanged'"""

    description: Optional[str] = None
    merchant: Optional[str] = None
    category_id: Optional[str] = None
    total_amount_cents: Optional[int] = None
    total_installments: Optional[int] = None


@dataclass
class PaymentView:
    installment_number: int
    due_date: date
    amount_cents: int
    status: str
    transaction_id: Optional[str] = None


@dataclass
class PlanView:
    plan_id: str
    user_id: str
    payment_method_id: str
    description: str
    merchant: Optional[str]
    category_id: Optional[str]
    total_amount_cents: int
    total_installments: int
    status: str
    payments: List[PaymentView]


@dataclass
class UpdateSummary:
    plan_id: str
    fields_changed: List[str]
    old_amount_cents: Optional[int] = None
    new_amount_cents: Optional[int] = None
    old_installments: Optional[int] = None
    new_installments: Optional[int] = None
    payments_added: int = 0
    payments_removed: int = 0
    payments_recalculated: int = 0
    status: str = PlanStatus.ACTIVE.value


@dataclass
class PayoffSummary:
    """Paid/pending totals shown before confirming a payoff"""

    plan_id: str
    description: str
    payment_method_name: str
    total_amount_cents: int
    total_installments: int
    payments_paid: int
    amount_paid_cents: int
    payments_pending: int
    amount_remaining_cents: int


@dataclass
class PayoffResult:
    plan_id: str
    payments_settled: int
    amount_settled_cents: int
    payoff_transaction_id: Optional[str] = None


@dataclass
class PaymentSettled:
    plan_id: str
    installment_number: int
    amount_cents: int
    plan_status: str
    transaction_id: Optional[str] = None


@dataclass
class DeleteResult:
    plan_id: str
    description: str
    paid_count: int
    pending_count: int
    paid_amount_cents: int
    pending_amount_cents: int
    transactions_orphaned: int


@dataclass
class BudgetItem:
    """One row contributing to a budget line: a transaction or an installment payment"""

    source_id: str
    date: date
    description: str
    amount_cents: int
    category_id: Optional[str]
    is_installment: bool
    installment_number: Optional[int] = None
    total_installments: Optional[int] = None


@dataclass
class BudgetLine:
    category_id: Optional[str]
    category_name: str
    category_icon: Optional[str]
    total_cents: int
    item_count: int
    installment_count: int
    regular_count: int
    items: List[BudgetItem] = field(default_factory=list)


@dataclass
class BudgetView:
    period_start: date
    period_end: date
    total_cents: int
    lines: List[BudgetLine] = field(default_factory=list)


@dataclass
class FutureCommitment:
    month: str  # YYYY-MM
    total_due_cents: int
    payment_count: int


@dataclass
class CommitmentDetail:
    plan_id: str
    description: str
    installment_number: int
    total_installments: int
    amount_cents: int
    due_date: date
    category_id: Optional[str]


@dataclass
class SettlementRequest:
    """A statement that closed on `closed_on` for one funding instrument"""

    user_id: str
    payment_method_id: str
    closed_on: date
    statement_total_cents: Optional[int] = None
    locale: Optional[str] = None


@dataclass
class SettlementOutcome:
    status: str  # created | already_exists
    transaction_id: str
    amount_cents: int
    due_date: date
    period_start: date
    period_end: date
    account_linked: bool


@dataclass
class SettlementJobResult:
    statements_closed: int = 0
    transactions_created: int = 0
    transactions_skipped: int = 0
    transactions_failed: int = 0
    total_amount_cents: int = 0
    duration_ms: float = 0.0
    success_rate: float = 0.0
    errors: List[dict] = field(default_factory=list)


@dataclass
class Result:
    """Outcome envelope returned by every public service operation"""

    success: bool
    data: Any = None
    error_code: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "Result":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, exc: DomainException) -> "Result":
        return cls(success=False, error_code=exc.code, error=exc.message)

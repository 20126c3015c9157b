"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, ConfigDict, Field
from datetime import date
from typing import List, Optional


class ResponseModel(BaseModel):
    """Responses are built straight from domain dataclasses"""

    model_config = ConfigDict(from_attributes=True)


# Plans

class PlanCreateRequest(BaseModel):
    """Request body for POST /v1/plans"""

    user_id: str = Field(..., min_length=1, description="User identifier")
    payment_method_id: str = Field(..., description="Credit card the purchase is billed to")
    description: str = Field(..., min_length=1)
    total_amount_cents: int = Field(..., gt=0, description="Purchase total in cents")
    total_installments: int = Field(..., ge=1, le=60)
    first_due_date: date
    merchant: Optional[str] = None
    category_id: Optional[str] = None


class PlanUpdateRequest(BaseModel):
    """Request body for PATCH /v1/plans/{plan_id}; omitted fields are left unchanged"""

    user_id: str = Field(..., min_length=1)
    description: Optional[str] = None
    merchant: Optional[str] = None
    category_id: Optional[str] = None
    total_amount_cents: Optional[int] = Field(None, gt=0)
    total_installments: Optional[int] = Field(None, ge=1, le=60)


class PaymentSchema(ResponseModel):
    """Single payment in an installment plan"""

    installment_number: int
    due_date: date
    amount_cents: int
    status: str
    transaction_id: Optional[str] = None


class PlanResponse(ResponseModel):
    """Installment plan with its ordered schedule"""

    plan_id: str
    user_id: str
    payment_method_id: str
    description: str
    merchant: Optional[str] = None
    category_id: Optional[str] = None
    total_amount_cents: int
    total_installments: int
    status: str
    payments: List[PaymentSchema]


class UpdateSummaryResponse(ResponseModel):
    plan_id: str
    fields_changed: List[str]
    old_amount_cents: Optional[int] = None
    new_amount_cents: Optional[int] = None
    old_installments: Optional[int] = None
    new_installments: Optional[int] = None
    payments_added: int
    payments_removed: int
    payments_recalculated: int
    status: str


class PayoffRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    paid_on: Optional[date] = None
    create_transaction: bool = False
    locale: Optional[str] = None


class PayoffSummaryResponse(ResponseModel):
    plan_id: str
    description: str
    payment_method_name: str
    total_amount_cents: int
    total_installments: int
    payments_paid: int
    amount_paid_cents: int
    payments_pending: int
    amount_remaining_cents: int


class PayoffResponse(ResponseModel):
    plan_id: str
    payments_settled: int
    amount_settled_cents: int
    payoff_transaction_id: Optional[str] = None


class PayInstallmentRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    paid_on: Optional[date] = None
    create_transaction: bool = True
    locale: Optional[str] = None


class PaymentSettledResponse(ResponseModel):
    plan_id: str
    installment_number: int
    amount_cents: int
    plan_status: str
    transaction_id: Optional[str] = None


class DeletePlanResponse(ResponseModel):
    plan_id: str
    description: str
    paid_count: int
    pending_count: int
    paid_amount_cents: int
    pending_amount_cents: int
    transactions_orphaned: int


# Budget

class BudgetItemSchema(ResponseModel):
    source_id: str
    date: date
    description: str
    amount_cents: int
    category_id: Optional[str] = None
    is_installment: bool
    installment_number: Optional[int] = None
    total_installments: Optional[int] = None


class BudgetLineSchema(ResponseModel):
    category_id: Optional[str] = None
    category_name: str
    category_icon: Optional[str] = None
    total_cents: int
    item_count: int
    installment_count: int
    regular_count: int
    items: List[BudgetItemSchema]


class BudgetResponse(ResponseModel):
    period_start: date
    period_end: date
    total_cents: int
    lines: List[BudgetLineSchema]


class FutureCommitmentSchema(ResponseModel):
    month: str
    total_due_cents: int
    payment_count: int


class CommitmentsResponse(BaseModel):
    user_id: str
    commitments: List[FutureCommitmentSchema]


class CommitmentDetailSchema(ResponseModel):
    plan_id: str
    description: str
    installment_number: int
    total_installments: int
    amount_cents: int
    due_date: date
    category_id: Optional[str] = None


class MonthCommitmentsResponse(BaseModel):
    user_id: str
    month: str
    total_due_cents: int
    payments: List[CommitmentDetailSchema]


# Statements

class StatementPeriodResponse(BaseModel):
    """Response for GET /v1/statements/period"""

    period_start: date
    period_end: date
    label: str
    next_due_date: Optional[date] = None
    next_due_date_label: Optional[str] = None
    recurring_due_day: Optional[int] = None
    recurring_due_day_label: Optional[str] = None


class SettlementCreateRequest(BaseModel):
    """Request body for POST /v1/statements/settlements"""

    user_id: str = Field(..., min_length=1)
    payment_method_id: str
    closed_on: date
    statement_total_cents: Optional[int] = Field(None, gt=0)
    locale: Optional[str] = None


class SettlementResponse(ResponseModel):
    status: str  # created | already_exists
    transaction_id: str
    amount_cents: int
    due_date: date
    period_start: date
    period_end: date
    account_linked: bool


class SettlementJobRequest(BaseModel):
    closed_on: Optional[date] = None
    locale: Optional[str] = None


class SettlementJobResponse(ResponseModel):
    statements_closed: int
    transactions_created: int
    transactions_skipped: int
    transactions_failed: int
    total_amount_cents: int
    duration_ms: float
    success_rate: float
    errors: List[dict]

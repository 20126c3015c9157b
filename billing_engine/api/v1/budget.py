"""/v1/budget and /v1/commitments - Spending views"""

from datetime import date
from typing import Optional
from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from billing_engine.api.dependencies import get_request_id
from billing_engine.api.errors import unwrap
from billing_engine.api.v1.schemas import (
    BudgetResponse,
    CommitmentDetailSchema,
    CommitmentsResponse,
    FutureCommitmentSchema,
    MonthCommitmentsResponse,
)
from billing_engine.infrastructure.database.session import get_db
from billing_engine.services.budget import BudgetAggregator

router = APIRouter()


@router.get("/budget", response_model=BudgetResponse)
def get_budget(
    request: Request,
    user_id: str = Query(..., min_length=1),
    payment_method_id: str = Query(...),
    period_start: date = Query(...),
    period_end: date = Query(...),
    locale: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Transactions and due installments for a card and period, grouped by category"""
    result = BudgetAggregator(db).get_budget_view(user_id, payment_method_id, period_start, period_end, locale)
    return BudgetResponse.model_validate(unwrap(result, get_request_id(request)))


@router.get("/commitments", response_model=CommitmentsResponse)
def get_future_commitments(
    request: Request,
    user_id: str = Query(..., min_length=1),
    months_ahead: int = Query(12, ge=1, le=120),
    db: Session = Depends(get_db),
):
    """Pending installment totals per month, starting tomorrow"""
    result = BudgetAggregator(db).get_future_commitments(user_id, date.today(), months_ahead)
    commitments = unwrap(result, get_request_id(request))
    return CommitmentsResponse(
        user_id=user_id,
        commitments=[FutureCommitmentSchema.model_validate(c) for c in commitments],
    )


@router.get("/commitments/{month}", response_model=MonthCommitmentsResponse)
def get_commitments_for_month(
    month: str,
    request: Request,
    user_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """Pending installments due in one YYYY-MM month"""
    result = BudgetAggregator(db).get_commitments_for_month(user_id, month)
    payments = unwrap(result, get_request_id(request))
    return MonthCommitmentsResponse(
        user_id=user_id,
        month=month,
        total_due_cents=sum(p.amount_cents for p in payments),
        payments=[CommitmentDetailSchema.model_validate(p) for p in payments],
    )

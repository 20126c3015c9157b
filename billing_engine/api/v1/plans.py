"""/v1/plans - Installment plan lifecycle endpoints"""

from datetime import date
from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session

from billing_engine.api.dependencies import get_analytics_client, get_event_recorder, get_request_id, ship_events
from billing_engine.api.errors import unwrap
from billing_engine.api.v1.schemas import (
    DeletePlanResponse,
    PayInstallmentRequest,
    PaymentSettledResponse,
    PayoffRequest,
    PayoffResponse,
    PayoffSummaryResponse,
    PlanCreateRequest,
    PlanResponse,
    PlanUpdateRequest,
    UpdateSummaryResponse,
)
from billing_engine.domain.models import NewPlan, PlanChanges
from billing_engine.infrastructure.clients.analytics import AnalyticsClient
from billing_engine.infrastructure.database.session import get_db
from billing_engine.infrastructure.observability.events import EventRecorder
from billing_engine.services.plan_lifecycle import PlanLifecycleManager

router = APIRouter()


@router.post("/plans", response_model=PlanResponse, status_code=201)
def create_plan(
    request_body: PlanCreateRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    recorder: EventRecorder = Depends(get_event_recorder),
    analytics_client: AnalyticsClient = Depends(get_analytics_client),
):
    """
    Create an installment plan on a credit card.

    The full schedule is generated with the plan: installments 1..n-1 get
    floor(total / n) and the last one absorbs the remainder.
    """
    manager = PlanLifecycleManager(db, recorder)
    result = manager.create_plan(NewPlan(**request_body.model_dump()))
    ship_events(background_tasks, recorder, analytics_client)
    return PlanResponse.model_validate(unwrap(result, get_request_id(request)))


@router.get("/plans/{plan_id}", response_model=PlanResponse)
def get_plan(plan_id: str, request: Request, user_id: str = Query(..., min_length=1), db: Session = Depends(get_db)):
    """Retrieve a plan with its payment schedule"""
    result = PlanLifecycleManager(db).get_plan(user_id, plan_id)
    return PlanResponse.model_validate(unwrap(result, get_request_id(request)))


@router.patch("/plans/{plan_id}", response_model=UpdateSummaryResponse)
def update_plan(
    plan_id: str,
    request_body: PlanUpdateRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    recorder: EventRecorder = Depends(get_event_recorder),
    analytics_client: AnalyticsClient = Depends(get_analytics_client),
):
    """
    Edit an active plan.

    Changing the total or the installment count re-spreads the unpaid
    remainder over pending payments; paid payments are left as they are.
    """
    changes = PlanChanges(**request_body.model_dump(exclude={"user_id"}))
    result = PlanLifecycleManager(db, recorder).update_plan(request_body.user_id, plan_id, changes)
    ship_events(background_tasks, recorder, analytics_client)
    return UpdateSummaryResponse.model_validate(unwrap(result, get_request_id(request)))


@router.get("/plans/{plan_id}/payoff", response_model=PayoffSummaryResponse)
def get_payoff_summary(
    plan_id: str,
    request: Request,
    user_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """Paid and remaining amounts, shown before confirming a payoff"""
    result = PlanLifecycleManager(db).get_payoff_summary(user_id, plan_id)
    return PayoffSummaryResponse.model_validate(unwrap(result, get_request_id(request)))


@router.post("/plans/{plan_id}/payoff", response_model=PayoffResponse)
def payoff_plan(
    plan_id: str,
    request_body: PayoffRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    recorder: EventRecorder = Depends(get_event_recorder),
    analytics_client: AnalyticsClient = Depends(get_analytics_client),
):
    """Mark every pending payment paid and close the plan"""
    result = PlanLifecycleManager(db, recorder).payoff_plan(
        request_body.user_id,
        plan_id,
        request_body.paid_on or date.today(),
        create_transaction=request_body.create_transaction,
        locale=request_body.locale,
    )
    ship_events(background_tasks, recorder, analytics_client)
    return PayoffResponse.model_validate(unwrap(result, get_request_id(request)))


@router.post("/plans/{plan_id}/payments/{installment_number}/pay", response_model=PaymentSettledResponse)
def pay_installment(
    plan_id: str,
    installment_number: int,
    request_body: PayInstallmentRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    recorder: EventRecorder = Depends(get_event_recorder),
    analytics_client: AnalyticsClient = Depends(get_analytics_client),
):
    """Mark one installment paid, optionally recording its expense transaction"""
    result = PlanLifecycleManager(db, recorder).mark_payment_paid(
        request_body.user_id,
        plan_id,
        installment_number,
        request_body.paid_on or date.today(),
        create_transaction=request_body.create_transaction,
        locale=request_body.locale,
    )
    ship_events(background_tasks, recorder, analytics_client)
    return PaymentSettledResponse.model_validate(unwrap(result, get_request_id(request)))


@router.delete("/plans/{plan_id}", response_model=DeletePlanResponse)
def delete_plan(
    plan_id: str,
    background_tasks: BackgroundTasks,
    request: Request,
    user_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
    recorder: EventRecorder = Depends(get_event_recorder),
    analytics_client: AnalyticsClient = Depends(get_analytics_client),
):
    """
    Delete a plan and its payments.

    Transactions already recorded for paid installments are kept; only their
    link to the plan is cleared.
    """
    result = PlanLifecycleManager(db, recorder).delete_plan(user_id, plan_id)
    ship_events(background_tasks, recorder, analytics_client)
    return DeletePlanResponse.model_validate(unwrap(result, get_request_id(request)))

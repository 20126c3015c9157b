"""/v1/statements - Statement period previews and settlement triggers"""

import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from billing_engine.api.dependencies import (
    get_analytics_client,
    get_category_cache,
    get_event_recorder,
    get_request_id,
    ship_events,
)
from billing_engine.api.errors import unwrap
from billing_engine.api.v1.schemas import (
    SettlementCreateRequest,
    SettlementJobRequest,
    SettlementJobResponse,
    SettlementResponse,
    StatementPeriodResponse,
)
from billing_engine.config import settings
from billing_engine.domain.due_dates import calculate_payment_due_date, calculate_recurring_due_day
from billing_engine.domain.exceptions import ValidationError
from billing_engine.domain.localization import format_due_day, format_payment_due_date, format_statement_period
from billing_engine.domain.models import OverflowPolicy, SettlementRequest
from billing_engine.domain.statement_period import get_statement_period
from billing_engine.infrastructure.clients.analytics import AnalyticsClient
from billing_engine.infrastructure.database.session import get_db
from billing_engine.infrastructure.observability.events import EventRecorder
from billing_engine.services.settlement import (
    AutoPaymentTransactionCreator,
    SettlementCategoryCache,
    SettlementJob,
)

router = APIRouter()


@router.get("/statements/period", response_model=StatementPeriodResponse)
def preview_statement_period(
    request: Request,
    closing_day: int = Query(...),
    reference_date: Optional[date] = None,
    due_day_offset: Optional[int] = None,
    locale: Optional[str] = None,
):
    """
    Statement period holding `reference_date` (default today).

    With `due_day_offset`, also returns the payment due date for that
    statement and the day of month payments typically fall on.
    """
    reference = reference_date or date.today()
    overflow = OverflowPolicy(settings.closing_day_overflow)
    locale = locale or settings.default_locale

    try:
        period = get_statement_period(reference, closing_day, overflow)
        response = StatementPeriodResponse(
            period_start=period.period_start,
            period_end=period.period_end,
            label=format_statement_period(period, locale),
        )

        if due_day_offset is not None:
            due = calculate_payment_due_date(closing_day, due_day_offset, reference, overflow)
            recurring_day = calculate_recurring_due_day(closing_day, due_day_offset, overflow)
            response.next_due_date = due.next_due_date
            response.next_due_date_label = format_payment_due_date(due.next_due_date, locale)
            response.recurring_due_day = recurring_day
            response.recurring_due_day_label = format_due_day(recurring_day, locale)

        return response

    except ValidationError as e:
        logging.warning(f"Invalid statement preview: {e}", extra={"request_id": get_request_id(request)})
        raise HTTPException(status_code=400, detail={"code": e.code, "message": e.message})


@router.post("/statements/settlements", response_model=SettlementResponse)
def create_settlement(
    request_body: SettlementCreateRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    category_cache: SettlementCategoryCache = Depends(get_category_cache),
    recorder: EventRecorder = Depends(get_event_recorder),
    analytics_client: AnalyticsClient = Depends(get_analytics_client),
):
    """
    Create the payment transaction for a statement that closed on `closed_on`.

    Safe to repeat: a second call for the same card and statement returns
    the existing transaction with status "already_exists".
    """
    creator = AutoPaymentTransactionCreator(db, category_cache, recorder)
    result = creator.create(SettlementRequest(**request_body.model_dump()))
    ship_events(background_tasks, recorder, analytics_client)
    return SettlementResponse.model_validate(unwrap(result, get_request_id(request)))


@router.post("/statements/settlements/run", response_model=SettlementJobResponse)
def run_settlement_job(
    request_body: SettlementJobRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    category_cache: SettlementCategoryCache = Depends(get_category_cache),
    recorder: EventRecorder = Depends(get_event_recorder),
    analytics_client: AnalyticsClient = Depends(get_analytics_client),
):
    """Settle every statement closing on `closed_on` (default today); called by the scheduler"""
    job = SettlementJob(db, category_cache, recorder)
    result = job.run(request_body.closed_on or date.today(), locale=request_body.locale)
    ship_events(background_tasks, recorder, analytics_client)
    return SettlementJobResponse.model_validate(unwrap(result, get_request_id(request)))

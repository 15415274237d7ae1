"""Alert endpoints - dry-run evaluation, manual trigger, delivery history and jobs"""

import logging
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session, sessionmaker

from branch_expenses.api.dependencies import (
    get_business_today,
    get_db_session_factory,
    get_email_client,
    get_request_id,
)
from branch_expenses.api.v1.schemas import (
    AlertCandidateSchema,
    AlertLogBranchSummary,
    AlertLogExpenseSummary,
    AlertLogListResponse,
    AlertLogResponse,
    AlertLogRuleSummary,
    AlertPreviewResponse,
    AlertRunResponse,
    AlertStatsResponse,
    ScheduledJobSchema,
    ScheduledJobsResponse,
)
from branch_expenses.config import Settings, get_settings
from branch_expenses.domain.alerts import describe_rule, evaluate_alerts
from branch_expenses.domain.exceptions import InvalidDateError
from branch_expenses.domain.models import AlertRuleType, AlertSendStatus
from branch_expenses.infrastructure.clients.email import EmailClient
from branch_expenses.infrastructure.database.models import AlertLog
from branch_expenses.infrastructure.database.repositories import (
    AlertLogRepository,
    AlertRuleRepository,
    ExpenseRepository,
    settlement_for,
)
from branch_expenses.infrastructure.database.session import get_db
from branch_expenses.jobs.alert_evaluator import run_alert_evaluator_job_with_lock
from branch_expenses.jobs.scheduler import describe_jobs
from branch_expenses.utils.date_utils import (
    parse_instant,
    start_of_business_day,
    timezone_label,
    today_in_business_tz,
)
from branch_expenses.utils.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, get_pagination

router = APIRouter()


@router.get("/alerts/preview", response_model=AlertPreviewResponse)
def preview_alerts(
    at: Optional[str] = Query(None, description="ISO-8601 instant with offset; defaults to now"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """
    Evaluate alerts without sending anything.

    Returns the candidates the daily job would process for the business day
    containing `at`.
    """
    offset = settings.business_utc_offset_minutes
    try:
        now = parse_instant(at) if at else None
        today = today_in_business_tz(now, offset)
    except InvalidDateError as e:
        raise HTTPException(status_code=400, detail=str(e))

    rules = AlertRuleRepository(db).list_active()
    expenses = ExpenseRepository(db).list_for_evaluation(today, settings.expense_window_days)
    evaluation = evaluate_alerts(today, expenses, rules, timezone=timezone_label(offset))

    return AlertPreviewResponse(
        evaluation_date=evaluation.evaluation_date,
        timezone=evaluation.timezone,
        total_expenses_evaluated=evaluation.total_expenses_evaluated,
        eligible_expense_count=evaluation.eligible_expense_count,
        candidates=[AlertCandidateSchema.model_validate(c) for c in evaluation.candidates],
    )


@router.post("/alerts/run", response_model=AlertRunResponse)
async def run_alerts(
    request: Request,
    session_factory: sessionmaker = Depends(get_db_session_factory),
    email_client: EmailClient = Depends(get_email_client),
    settings: Settings = Depends(get_settings),
):
    """
    Trigger the alert evaluator job now.

    Returns 409 when another instance holds the job lock and 500 when the
    run itself failed.
    """
    request_id = get_request_id(request)
    logging.info("Manual alert job trigger", extra={"request_id": request_id})

    outcome = await run_alert_evaluator_job_with_lock(session_factory, email_client, settings)

    if outcome.error is not None:
        logging.error(f"Alert job failed: {outcome.error}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Alert job failed")

    if not outcome.executed:
        raise HTTPException(status_code=409, detail="Alert job is already running on another instance")

    result = outcome.result
    return AlertRunResponse(
        executed=True,
        evaluation_date=result.evaluation_date,
        total_candidates=result.total_candidates,
        sent_count=result.sent_count,
        failed_count=result.failed_count,
        skipped_already_sent=result.skipped_already_sent,
        skipped_no_recipients=result.skipped_no_recipients,
        errors=result.errors,
    )


def build_alert_log_response(log: AlertLog, today: date) -> AlertLogResponse:
    """Serialize a log row with its branch, live expense balance and rule label"""
    expense = log.expense
    branch = expense.branch
    state = settlement_for(expense, today)
    return AlertLogResponse(
        id=log.id,
        alert_key=log.alert_key,
        trigger_date=log.trigger_local_date,
        branch=AlertLogBranchSummary(
            id=branch.id,
            display_name=branch.display_name,
            city=branch.city,
            label=branch.label,
        ),
        expense=AlertLogExpenseSummary(
            id=expense.id,
            expense_type=expense.expense_type,
            period=expense.period,
            due_date=expense.due_date,
            amount=expense.amount,
            balance_remaining=state.balance_remaining,
            status=state.status,
        ),
        rule=AlertLogRuleSummary(
            rule_id=log.rule_id,
            rule_type=log.rule_type,
            day_offset=log.day_offset,
            description=describe_rule(log.rule_type, log.day_offset),
        ),
        sent_to=log.sent_to,
        sent_at=log.sent_at,
        status=log.status,
        error_message=log.error_message,
    )


@router.get("/alerts/stats", response_model=AlertStatsResponse)
def get_alert_stats(
    db: Session = Depends(get_db),
    today: date = Depends(get_business_today),
    settings: Settings = Depends(get_settings),
):
    """Delivery totals plus SENT counts for today and the last seven days"""
    day_start = start_of_business_day(today, settings.business_utc_offset_minutes)
    return AlertStatsResponse(**AlertLogRepository(db).stats(day_start))


@router.get("/alerts/logs", response_model=AlertLogListResponse)
def list_alert_logs(
    branch_id: Optional[int] = Query(None),
    expense_id: Optional[int] = Query(None),
    rule_type: Optional[AlertRuleType] = Query(None),
    status: Optional[AlertSendStatus] = Query(None),
    date_from: Optional[date] = Query(None, description="First business day included"),
    date_to: Optional[date] = Query(None, description="Last business day included"),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    db: Session = Depends(get_db),
    today: date = Depends(get_business_today),
    settings: Settings = Depends(get_settings),
):
    """Alert delivery history, newest first"""
    offset = settings.business_utc_offset_minutes
    pagination = get_pagination(page, page_size)
    total, rows = AlertLogRepository(db).list_logs(
        pagination,
        branch_id=branch_id,
        expense_id=expense_id,
        rule_type=rule_type,
        status=status,
        sent_since=start_of_business_day(date_from, offset) if date_from else None,
        sent_until=start_of_business_day(date_to + timedelta(days=1), offset) if date_to else None,
    )
    return AlertLogListResponse(
        items=[build_alert_log_response(row, today) for row in rows],
        page=pagination.page,
        page_size=pagination.page_size,
        total=total,
    )


@router.get("/alerts/logs/{log_id}", response_model=AlertLogResponse)
def get_alert_log(
    log_id: int,
    db: Session = Depends(get_db),
    today: date = Depends(get_business_today),
):
    log = AlertLogRepository(db).get_log(log_id)
    if log is None:
        raise HTTPException(status_code=404, detail="Alert log not found")
    return build_alert_log_response(log, today)


@router.get("/alerts/jobs", response_model=ScheduledJobsResponse)
def list_scheduled_jobs(request: Request):
    """Jobs registered with the in-process scheduler; empty when it is disabled"""
    scheduler = getattr(request.app.state, "scheduler", None)
    jobs = describe_jobs(scheduler) if scheduler is not None else []
    return ScheduledJobsResponse(jobs=[ScheduledJobSchema(**job) for job in jobs])

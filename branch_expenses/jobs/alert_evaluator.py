"""
Daily alert evaluator job.

1. Resolve today in the business time zone
2. Load active rules and expenses due around today (with payments)
3. Run the pure evaluation pass
4. For each candidate: skip if already SENT today, skip (and log) if the
   branch has no active recipients, otherwise email every recipient and log
   each outcome
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session, sessionmaker

from branch_expenses.config import Settings
from branch_expenses.domain.alerts import evaluate_alerts
from branch_expenses.domain.models import AlertCandidate, AlertSendStatus
from branch_expenses.infrastructure.clients.email import AlertEmailPayload, EmailClient
from branch_expenses.infrastructure.database.repositories import (
    AlertLogRepository,
    AlertRuleRepository,
    BranchRepository,
    ExpenseRepository,
)
from branch_expenses.infrastructure.observability.logging import log_job_result
from branch_expenses.infrastructure.observability.metrics import (
    alert_email_counter,
    alert_job_counter,
    alert_job_duration_histogram,
    record_candidates,
)
from branch_expenses.jobs.job_lock import LockedRun, with_job_lock
from branch_expenses.utils.date_utils import (
    format_date,
    parse_date_string,
    timezone_label,
    today_in_business_tz,
)

logger = logging.getLogger(__name__)

JOB_NAME = "daily-alert-evaluator"
NO_RECIPIENTS = "no-recipients"


@dataclass
class AlertJobResult:
    evaluation_date: str
    total_candidates: int = 0
    skipped_already_sent: int = 0
    skipped_no_recipients: int = 0
    sent_count: int = 0
    failed_count: int = 0
    errors: List[str] = field(default_factory=list)


def format_amount(amount: Decimal) -> str:
    return f"${amount:.2f}"


async def _process_candidate(
    db: Session,
    candidate: AlertCandidate,
    expense_amount: Decimal,
    email_client: EmailClient,
    result: AlertJobResult,
) -> None:
    logs = AlertLogRepository(db)
    branches = BranchRepository(db)
    trigger_local_date = parse_date_string(candidate.trigger_date)

    if logs.is_already_sent(candidate, trigger_local_date):
        result.skipped_already_sent += 1
        alert_email_counter.labels(outcome="skipped_already_sent").inc()
        logger.info("Alert already sent, skipping", extra={"alert_key": candidate.alert_key})
        return

    recipients = branches.get_active_recipients(candidate.branch_id)
    if not recipients:
        result.skipped_no_recipients += 1
        alert_email_counter.labels(outcome="skipped_no_recipients").inc()
        logs.log_result(
            candidate,
            trigger_local_date,
            NO_RECIPIENTS,
            AlertSendStatus.SKIPPED,
            "No active recipients for branch",
        )
        db.commit()
        logger.info("No recipients for branch, skipping", extra={"alert_key": candidate.alert_key})
        return

    branch_name = branches.get_display_name(candidate.branch_id) or f"Branch {candidate.branch_id}"

    for email in recipients:
        payload = AlertEmailPayload(
            to=email,
            branch_name=branch_name,
            expense_type=candidate.expense_type.value,
            period=candidate.period,
            due_date=format_date(candidate.due_date),
            amount=format_amount(expense_amount),
            balance_remaining=format_amount(candidate.balance_remaining),
            alert_type=candidate.rule_type,
            day_offset=candidate.day_offset,
        )
        send_result = await email_client.send_alert_email(payload)

        if send_result.success:
            result.sent_count += 1
            alert_email_counter.labels(outcome="sent").inc()
            logs.log_result(candidate, trigger_local_date, email, AlertSendStatus.SENT)
            logger.info("Alert sent", extra={"alert_key": candidate.alert_key, "sent_to": email})
        else:
            result.failed_count += 1
            alert_email_counter.labels(outcome="failed").inc()
            logs.log_result(candidate, trigger_local_date, email, AlertSendStatus.FAILED, send_result.error)
            logger.error(
                f"Alert delivery failed: {send_result.error}",
                extra={"alert_key": candidate.alert_key, "sent_to": email},
            )
        db.commit()


async def run_alert_evaluator_job(
    db: Session,
    email_client: EmailClient,
    settings: Settings,
    now: Optional[datetime] = None,
) -> AlertJobResult:
    """
    Evaluate today's alerts and deliver them.

    Failures on one candidate are recorded in `errors` and the run moves on
    to the next candidate.
    """
    start_time = time.time()
    offset = settings.business_utc_offset_minutes
    today = today_in_business_tz(now, offset)
    result = AlertJobResult(evaluation_date=format_date(today))

    logger.info("Starting alert evaluation", extra={"evaluation_date": result.evaluation_date})

    rules = AlertRuleRepository(db).list_active()
    expenses = ExpenseRepository(db).list_for_evaluation(today, settings.expense_window_days)
    logger.info(
        f"Loaded {len(rules)} active rules, {len(expenses)} expenses",
        extra={"evaluation_date": result.evaluation_date},
    )

    evaluation = evaluate_alerts(today, expenses, rules, timezone=timezone_label(offset))
    result.total_candidates = len(evaluation.candidates)
    record_candidates(evaluation.candidates)
    amounts = {expense.id: expense.amount for expense in expenses}

    for candidate in evaluation.candidates:
        try:
            await _process_candidate(db, candidate, amounts[candidate.expense_id], email_client, result)
        except Exception as e:
            db.rollback()
            result.errors.append(f"Error processing {candidate.alert_key}: {e}")
            logger.error(
                f"Error processing alert: {e}",
                exc_info=True,
                extra={"alert_key": candidate.alert_key},
            )

    log_job_result(JOB_NAME, result, (time.time() - start_time) * 1000)
    return result


async def run_alert_evaluator_job_with_lock(
    session_factory: sessionmaker,
    email_client: EmailClient,
    settings: Settings,
    now: Optional[datetime] = None,
) -> LockedRun[AlertJobResult]:
    """Run the job under the shared job lock"""

    async def run() -> AlertJobResult:
        with session_factory() as db:
            with alert_job_duration_histogram.time():
                return await run_alert_evaluator_job(db, email_client, settings, now)

    outcome = await with_job_lock(session_factory, JOB_NAME, run, settings.job_lock_duration_seconds)

    if not outcome.executed:
        alert_job_counter.labels(outcome="skipped_locked").inc()
    elif outcome.error is not None:
        alert_job_counter.labels(outcome="failed").inc()
    else:
        alert_job_counter.labels(outcome="completed").inc()

    return outcome

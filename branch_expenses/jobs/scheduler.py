"""APScheduler wiring for recurring jobs"""

import logging
from typing import Dict, List

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from branch_expenses.config import Settings
from branch_expenses.infrastructure.clients.email import EmailClient
from branch_expenses.infrastructure.database.session import get_session_factory
from branch_expenses.jobs.alert_evaluator import JOB_NAME, run_alert_evaluator_job_with_lock

logger = logging.getLogger(__name__)


async def run_daily_alerts(settings: Settings) -> None:
    """Scheduled entry point for the alert evaluator"""
    logger.info("Running daily alert evaluator")

    outcome = await run_alert_evaluator_job_with_lock(get_session_factory(), EmailClient(settings), settings)

    if not outcome.executed:
        logger.info("Alert job skipped - another instance is running")
    elif outcome.error is not None:
        logger.error(f"Alert job failed: {outcome.error}")


def build_scheduler(settings: Settings) -> AsyncIOScheduler:
    """
    Scheduler with the daily alert job.

    Cron fields are UTC: 06:00 UTC is 08:00 at UTC+2.
    """
    scheduler = AsyncIOScheduler(timezone="UTC")
    trigger = CronTrigger(hour=settings.alert_cron_hour, minute=settings.alert_cron_minute, timezone="UTC")
    scheduler.add_job(
        run_daily_alerts,
        trigger,
        args=[settings],
        id=JOB_NAME,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    return scheduler


def start_scheduler(settings: Settings) -> AsyncIOScheduler | None:
    """
    Start the scheduler if ENABLE_SCHEDULER is True.
    Set ENABLE_SCHEDULER=False when an external cron triggers /v1/alerts/run.
    """
    if not settings.enable_scheduler:
        logger.info("Scheduler disabled (ENABLE_SCHEDULER=False). Using external cron.")
        return None

    scheduler = build_scheduler(settings)
    scheduler.start()
    logger.info("Scheduler started", extra={"jobs": describe_jobs(scheduler)})
    return scheduler


def describe_jobs(scheduler: AsyncIOScheduler) -> List[Dict[str, str]]:
    return [{"id": job.id, "trigger": str(job.trigger)} for job in scheduler.get_jobs()]

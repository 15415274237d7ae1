"""Database lease lock preventing duplicate job runs across instances"""

import asyncio
import logging
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from sqlalchemy.orm import sessionmaker

from branch_expenses.infrastructure.database.repositories import JobLockRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

MIN_HEARTBEAT_SECONDS = 1.0


@dataclass
class LockedRun(Generic[T]):
    """Outcome of a lock-protected run"""

    executed: bool
    result: Optional[T] = None
    error: Optional[BaseException] = None


def make_worker_id() -> str:
    return f"worker-{os.getpid()}-{uuid.uuid4().hex[:8]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def _heartbeat(
    session_factory: sessionmaker,
    job_name: str,
    worker_id: str,
    lease_seconds: int,
    interval: float,
) -> None:
    while True:
        await asyncio.sleep(interval)
        with session_factory() as db:
            renewed = JobLockRepository(db).renew(job_name, worker_id, lease_seconds, _utcnow())
        if not renewed:
            logger.error("Failed to renew job lock", extra={"job_name": job_name, "worker_id": worker_id})


async def with_job_lock(
    session_factory: sessionmaker,
    job_name: str,
    fn: Callable[[], Awaitable[T]],
    lease_seconds: int,
) -> LockedRun[T]:
    """
    Run `fn` only if this worker acquires the job lease.

    The lease is renewed every lease/3 seconds while `fn` runs and released
    afterwards. Errors raised by `fn` are returned, not re-raised, so the
    scheduler loop keeps running.
    """
    worker_id = make_worker_id()

    with session_factory() as db:
        acquired = JobLockRepository(db).acquire(job_name, worker_id, lease_seconds, _utcnow())

    if not acquired:
        logger.info("Job lock held elsewhere, skipping run", extra={"job_name": job_name})
        return LockedRun(executed=False)

    interval = max(MIN_HEARTBEAT_SECONDS, lease_seconds / 3)
    heartbeat = asyncio.create_task(_heartbeat(session_factory, job_name, worker_id, lease_seconds, interval))
    logger.info(
        "Acquired job lock",
        extra={"job_name": job_name, "worker_id": worker_id, "lease_seconds": lease_seconds},
    )

    try:
        result = await fn()
        return LockedRun(executed=True, result=result)
    except Exception as e:
        logger.error(f"Job {job_name} failed: {e}", exc_info=True, extra={"job_name": job_name})
        return LockedRun(executed=True, error=e)
    finally:
        heartbeat.cancel()
        try:
            await heartbeat
        except asyncio.CancelledError:
            pass

        with session_factory() as db:
            released = JobLockRepository(db).release(job_name, worker_id)
        if not released:
            logger.warning(
                "Job lock was not released; ownership changed or lease expired",
                extra={"job_name": job_name, "worker_id": worker_id},
            )

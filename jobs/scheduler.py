"""
Persistent one-shot job queue ("run this operation at timestamp T").

Jobs live in the scheduled_jobs table so they survive restarts. Delivery is
at-least-once and at-or-after run_at; handlers must tolerate late or repeated runs.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from database_models import ScheduledJob
from models.lifecycle import DispatchResult
from utils.clock import Clock, resolve_clock

logger = logging.getLogger(__name__)

JOB_PENDING = "pending"
JOB_DONE = "done"
JOB_FAILED = "failed"

JobHandler = Callable[[AsyncSession, Clock, Dict[str, Any]], Awaitable[Any]]

# operation name -> handler; filled by jobs.handlers
JOB_HANDLERS: Dict[str, JobHandler] = {}


def register_job(operation: str):
    """Decorator registering an async handler for a scheduled operation."""
    def decorator(func: JobHandler) -> JobHandler:
        JOB_HANDLERS[operation] = func
        return func
    return decorator


class JobScheduler:
    """Registers deferred operations."""

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None):
        self.db = db
        self.clock = resolve_clock(clock)

    async def schedule_at(self, run_at: int, operation: str, payload: Dict[str, Any]) -> ScheduledJob:
        now = self.clock.now_ms()
        job = ScheduledJob(
            operation=operation,
            payload=payload,
            run_at=run_at,
            status=JOB_PENDING,
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        self.db.add(job)
        await self.db.flush()
        logger.info(f"Scheduled job {job.id} '{operation}' at {run_at}")
        return job


class JobDispatcher:
    """Runs due pending jobs, one SAVEPOINT per job."""

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[Clock] = None,
        handlers: Optional[Dict[str, JobHandler]] = None,
        max_attempts: Optional[int] = None,
    ):
        self.db = db
        self.clock = resolve_clock(clock)
        if handlers is None:
            import jobs.handlers  # noqa: F401  (registers the built-in operations)
            handlers = JOB_HANDLERS
        self.handlers = handlers
        self.max_attempts = max_attempts or settings.job_max_attempts

    async def due_jobs(self, now: int, limit: int) -> List[ScheduledJob]:
        result = await self.db.execute(
            select(ScheduledJob)
            .where(ScheduledJob.status == JOB_PENDING, ScheduledJob.run_at <= now)
            .order_by(ScheduledJob.run_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def run_due(self, limit: Optional[int] = None) -> DispatchResult:
        now = self.clock.now_ms()
        limit = limit or settings.job_dispatch_batch_size
        outcome = DispatchResult()

        for job in await self.due_jobs(now, limit):
            job_id, operation = job.id, job.operation
            handler = self.handlers.get(operation)
            if handler is None:
                logger.error(f"No handler registered for job {job_id} '{operation}'")
                job.status = JOB_FAILED
                job.last_error = "unknown_operation"
                job.updated_at = now
                outcome.failed += 1
                continue

            try:
                async with self.db.begin_nested():
                    await handler(self.db, self.clock, dict(job.payload or {}))
            except Exception as e:
                job.attempts += 1
                job.last_error = str(e)[:500]
                job.updated_at = now
                if job.attempts >= self.max_attempts:
                    job.status = JOB_FAILED
                    outcome.failed += 1
                    logger.error(f"Job {job_id} '{operation}' failed permanently: {e}", exc_info=True)
                else:
                    outcome.retried += 1
                    logger.warning(f"Job {job_id} '{operation}' failed (attempt {job.attempts}): {e}")
                continue

            job.attempts += 1
            job.status = JOB_DONE
            job.updated_at = now
            outcome.ran += 1

        await self.db.flush()
        if outcome.ran or outcome.failed or outcome.retried:
            logger.info(f"Job dispatch: ran={outcome.ran} retried={outcome.retried} failed={outcome.failed}")
        return outcome

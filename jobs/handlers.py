"""
Built-in scheduled operations.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import DEV_SWEEP_BATCH_CAP
from jobs.scheduler import JobScheduler, register_job
from models.lifecycle import SweepResult
from services.expiration_sweeper import ExpirationSweeper
from services.lifecycle_service import TRIAL_CHARGE_OPERATION, LifecycleService
from utils.clock import Clock

logger = logging.getLogger(__name__)

SWEEP_OPERATION = "sweep_expirations"


@register_job(TRIAL_CHARGE_OPERATION)
async def run_trial_charge(db: AsyncSession, clock: Clock, payload: Dict[str, Any]):
    result = await LifecycleService(db, clock).complete_trial_charge(
        payload["user_id"],
        payload.get("plan"),
        int(payload["trial_ends_at"]),
        payload.get("subscription_id"),
    )
    if not result.ok:
        # Stale or duplicate delivery; nothing to retry
        logger.info(f"Trial charge for user {payload['user_id']} skipped: {result.reason}")
    return result


@register_job(SWEEP_OPERATION)
async def run_sweep_continuation(db: AsyncSession, clock: Clock, payload: Dict[str, Any]):
    batch_size = payload.get("batch_size")
    batch_cap = payload.get("batch_cap") or DEV_SWEEP_BATCH_CAP
    result = await ExpirationSweeper(db, clock).sweep(
        batch_size=batch_size, now=payload.get("now"), cursor=payload.get("cursor"), batch_cap=batch_cap
    )
    await enqueue_sweep_continuation(db, clock, result, batch_size, batch_cap)
    return result


async def enqueue_sweep_continuation(
    db: AsyncSession,
    clock: Clock,
    result: SweepResult,
    batch_size: Optional[int],
    batch_cap: int = DEV_SWEEP_BATCH_CAP,
):
    """
    Queue the next page right away when a sweep filled its batch. The page keeps
    the pass's "now" so every page of one pass sees the same cutoff.
    """
    if not result.continued or result.next_cursor is None:
        return None
    return await JobScheduler(db, clock).schedule_at(
        clock.now_ms(),
        SWEEP_OPERATION,
        {"batch_size": batch_size, "batch_cap": batch_cap, "cursor": result.next_cursor, "now": result.now},
    )

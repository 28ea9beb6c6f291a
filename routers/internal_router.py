"""
Internal Router - cron triggers and dev-only tooling for the premium lifecycle.
Not exposed through the public gateway.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Body, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import IS_PRODUCTION, settings
from database import get_db
from jobs.scheduler import JobDispatcher
from models.lifecycle import RemindersRequest, SubscriptionEndRequest, SweepRequest
from services.expiration_sweeper import ExpirationSweeper
from services.lifecycle_service import LifecycleService
from services.reminder_service import ReminderService
from utils.responses import error_response, result_response, success_response

logger = logging.getLogger(__name__)

internal_router = APIRouter(prefix="/internal", tags=["internal"])


def _dev_only():
    if IS_PRODUCTION:
        return error_response("forbidden_in_production")
    return None


@internal_router.post("/sweep")
async def sweep_expirations(
    request: Optional[SweepRequest] = Body(default=None),
    db: AsyncSession = Depends(get_db),
):
    """
    One bounded sweep pass. When the batch fills (`continued`), the caller
    re-invokes with `cursor=next_cursor` and the same `now`. Nothing is queued
    here; queued continuation pages belong to the cron entry point.
    """
    request = request or SweepRequest()
    result = await ExpirationSweeper(db).sweep(
        batch_size=request.batch_size,
        now=request.now,
        cursor=request.cursor,
    )
    return success_response(result.model_dump())


@internal_router.post("/reminders")
async def send_reminders(
    request: Optional[RemindersRequest] = Body(default=None),
    db: AsyncSession = Depends(get_db),
):
    days = request.days if request and request.days else settings.reminder_window_list
    result = await ReminderService(db).send_pre_expiry_reminders(days)
    return success_response(result.model_dump())


@internal_router.post("/jobs/dispatch")
async def dispatch_jobs(db: AsyncSession = Depends(get_db)):
    result = await JobDispatcher(db).run_due()
    return success_response(result.model_dump())


@internal_router.post("/dev/sweep-now")
async def dev_sweep_now(db: AsyncSession = Depends(get_db)):
    blocked = _dev_only()
    if blocked is not None:
        return blocked
    result = await ExpirationSweeper(db).sweep()
    return success_response(result.model_dump())


@internal_router.post("/dev/reminders-now")
async def dev_reminders_now(
    request: Optional[RemindersRequest] = Body(default=None),
    db: AsyncSession = Depends(get_db),
):
    blocked = _dev_only()
    if blocked is not None:
        return blocked
    result = await ReminderService(db).send_pre_expiry_reminders(request.days if request else None)
    return success_response(result.model_dump())


@internal_router.post("/dev/subscription-end-now")
async def dev_subscription_end_now(request: SubscriptionEndRequest, db: AsyncSession = Depends(get_db)):
    blocked = _dev_only()
    if blocked is not None:
        return blocked
    result = await LifecycleService(db).force_subscription_end(request.user_id, request.offset_seconds)
    return result_response(result)

"""
Premium Router - user-facing plan lifecycle endpoints
"""

import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.lifecycle import (
    AutoRenewRequest,
    CancelRequest,
    CompleteTrialRequest,
    UpgradeRequest,
    UserRequest,
)
from services.lifecycle_service import LifecycleService
from utils.responses import result_response, success_response

logger = logging.getLogger(__name__)

premium_router = APIRouter(prefix="/api/premium", tags=["premium"])


@premium_router.post("/upgrade")
async def upgrade_plan(request: UpgradeRequest, db: AsyncSession = Depends(get_db)):
    """
    Upgrade to premium (optionally with the one-time trial) or demote to free.
    """
    result = await LifecycleService(db).upgrade(
        request.user_id,
        request.to_role,
        plan=request.plan,
        trial=request.trial,
        payment_id=request.payment_id,
    )
    return result_response(result)


@premium_router.post("/complete-trial")
async def complete_trial(request: CompleteTrialRequest, db: AsyncSession = Depends(get_db)):
    """Manual trigger for trial -> paid conversion (normally run by the job dispatcher)."""
    result = await LifecycleService(db).complete_trial_charge(
        request.user_id,
        request.plan,
        request.trial_ends_at,
        request.subscription_id,
    )
    return result_response(result)


@premium_router.post("/cancel")
async def cancel_plan(request: CancelRequest, db: AsyncSession = Depends(get_db)):
    """Turn off auto-renew. Paid access runs until the period ends; a pending trial ends now."""
    result = await LifecycleService(db).cancel_auto_renew(request.user_id, request.reason)
    return result_response(result)


@premium_router.post("/auto-renew")
async def set_auto_renew(request: AutoRenewRequest, db: AsyncSession = Depends(get_db)):
    result = await LifecycleService(db).set_auto_renew(request.user_id, request.auto_renew, request.reason)
    return result_response(result)


@premium_router.post("/ensure-consistency")
async def ensure_consistency(request: UserRequest, db: AsyncSession = Depends(get_db)):
    result = await LifecycleService(db).ensure_plan_consistency(request.user_id)
    return result_response(result)


@premium_router.get("/upgrades/{user_id}")
async def list_upgrades(
    user_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    rows = await LifecycleService(db).list_upgrades(user_id, limit)
    return success_response([
        {
            "id": row.id,
            "from_role": row.from_role,
            "to_role": row.to_role,
            "status": row.status,
            "reason": row.reason,
            "plan": row.plan,
            "payment_id": row.payment_id,
            "expires_at": row.expires_at,
            "created_at": row.created_at,
            "meta": row.meta,
        }
        for row in rows
    ])

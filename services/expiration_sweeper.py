"""
Expiration Sweeper - bounded batch pass over lapsed subscriptions.

Per invocation: fetch batch -> mark expired -> downgrade affected users -> report continuation.
Safe to invoke at any frequency; every decision is re-checked against current rows.
"""
import logging
from typing import Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings, IS_PRODUCTION, DEV_SWEEP_BATCH_CAP
from crud.profile import ProfileRepository
from crud.subscription import SubscriptionRepository
from models.lifecycle import SweepResult
from services.notifier import Notifier
from services.plans import PLAN_LIFETIME, ROLE_PREMIUM, STATUS_ACTIVE, STATUS_EXPIRED
from services.profile_projection import cleared_premium_fields
from utils.best_effort import best_effort
from utils.clock import MS_PER_HOUR, Clock, resolve_clock

logger = logging.getLogger(__name__)


def effective_batch_size(batch_size: Optional[int], cap: int = DEV_SWEEP_BATCH_CAP) -> int:
    size = batch_size or settings.sweep_batch_size
    if not IS_PRODUCTION:
        size = min(size, cap)
    return max(1, size)


class ExpirationSweeper:

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None, notifier: Optional[Notifier] = None):
        self.db = db
        self.clock = resolve_clock(clock)
        self.profiles = ProfileRepository(db)
        self.subscriptions = SubscriptionRepository(db)
        self.notifier = notifier or Notifier(db, self.clock)

    async def sweep(
        self,
        batch_size: Optional[int] = None,
        now: Optional[int] = None,
        cursor: Optional[int] = None,
        batch_cap: int = DEV_SWEEP_BATCH_CAP,
    ) -> SweepResult:
        """
        Expire up to `batch_size` lapsed subscriptions and downgrade users left
        with no active period.

        Args:
            batch_size: Row bound for this pass (capped outside production)
            now: Override for "now" in epoch ms
            cursor: Resume strictly after this expires_at
            batch_cap: Upper bound applied outside production

        Returns:
            SweepResult; when `continued` is True the caller should re-invoke
            with `next_cursor`
        """
        if settings.disable_sweep:
            logger.info("Expiration sweep disabled (DISABLE_SWEEP); skipping")
            return SweepResult(disabled=True)

        effective_now = now if now is not None else self.clock.now_ms()
        batch = effective_batch_size(batch_size, cap=batch_cap)

        rows = await self.subscriptions.list_expired(effective_now, cursor, batch)
        if not rows:
            return SweepResult(batch=batch, now=effective_now)

        # A rolled-back savepoint expires the rows it touched; read what we need up front
        continued = len(rows) == batch
        next_cursor = rows[-1].expires_at

        expired_count = 0
        affected_users: Set[str] = set()
        for sub in rows:
            sub_id = sub.id
            # Rows already handled still count toward the page and still get their user re-checked
            affected_users.add(sub.user_id)
            if sub.status != STATUS_ACTIVE:
                continue
            try:
                async with self.db.begin_nested():
                    await self.subscriptions.patch_status(sub, STATUS_EXPIRED, effective_now)
                expired_count += 1
            except Exception as e:
                logger.error(f"Failed to expire subscription {sub_id}: {e}", exc_info=True)

        downgraded_count = 0
        for user_id in sorted(affected_users):
            try:
                async with self.db.begin_nested():
                    if await self._downgrade_if_lapsed(user_id, effective_now):
                        downgraded_count += 1
            except Exception as e:
                logger.error(f"Failed to downgrade user {user_id}: {e}", exc_info=True)

        logger.info(
            f"Sweep: fetched={len(rows)} expired={expired_count} downgraded={downgraded_count} "
            f"continued={continued} next_cursor={next_cursor}"
        )
        return SweepResult(
            expired_count=expired_count,
            downgraded_count=downgraded_count,
            continued=continued,
            next_cursor=next_cursor,
            batch=batch,
            now=effective_now,
        )

    async def _downgrade_if_lapsed(self, user_id: str, now: int) -> bool:
        # Recomputed fresh: another period may still be running
        if await self.subscriptions.has_active(user_id):
            return False

        profile = await self.profiles.get(user_id)
        if profile is None or profile.role != ROLE_PREMIUM:
            return False
        if profile.premium_plan == PLAN_LIFETIME:
            return False

        await self.profiles.patch(profile, cleared_premium_fields())
        await best_effort(
            self.db,
            "plan-expired-notification",
            self.notifier.plan_expired,
            user_id,
            settings.expired_notice_window_hours * MS_PER_HOUR,
            now=now,
        )
        logger.info(f"User {user_id} downgraded to free after expiration")
        return True

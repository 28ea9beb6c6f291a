"""
Pre-expiry reminders: at most one plan-expiring notification per
(user, expiration instant, day window).
"""
import logging
import math
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from crud.profile import ProfileRepository
from crud.subscription import SubscriptionRepository
from database_models import Profile
from models.lifecycle import ReminderResult
from services.notifier import NOTIFY_PLAN_EXPIRING, Notifier
from services.plans import PLAN_LIFETIME
from utils.clock import MS_PER_DAY, Clock, resolve_clock

logger = logging.getLogger(__name__)

DEFAULT_WINDOWS = (7, 3, 1)


def days_left_rounded(expires_at: int, now: int) -> int:
    """Nearest whole day, halves rounded up (tolerates ~12h of schedule jitter)."""
    return int(math.floor((expires_at - now) / MS_PER_DAY + 0.5))


def normalize_windows(days: Optional[Sequence[float]]) -> List[int]:
    source = list(days) if days else list(DEFAULT_WINDOWS)
    return [int(math.floor(d)) for d in source if math.floor(d) >= 0]


class ReminderService:

    def __init__(self, db: AsyncSession, clock: Optional[Clock] = None, notifier: Optional[Notifier] = None):
        self.db = db
        self.clock = resolve_clock(clock)
        self.profiles = ProfileRepository(db)
        self.subscriptions = SubscriptionRepository(db)
        self.notifier = notifier or Notifier(db, self.clock)

    async def send_pre_expiry_reminders(self, windows: Optional[Sequence[float]] = None) -> ReminderResult:
        windows = normalize_windows(windows)
        now = self.clock.now_ms()
        sent = 0

        after_id = None
        while True:
            page = await self.profiles.page_premium(after_id, settings.reminder_page_size)
            if not page:
                break
            after_id = page[-1].id
            for profile in page:
                profile_id = profile.id
                try:
                    async with self.db.begin_nested():
                        if await self._remind(profile, windows, now):
                            sent += 1
                except Exception as e:
                    logger.error(f"Pre-expiry reminder failed for user {profile_id}: {e}", exc_info=True)
            if len(page) < settings.reminder_page_size:
                break

        logger.info(f"Pre-expiry reminders sent: {sent} (windows={windows})")
        return ReminderResult(sent=sent, windows=windows)

    async def _remind(self, profile: Profile, windows: List[int], now: int) -> bool:
        if profile.premium_plan == PLAN_LIFETIME:
            return False

        # Profile cache and ledger can disagree briefly; the nearest future one wins
        candidates = []
        if profile.premium_expires_at:
            candidates.append(int(profile.premium_expires_at))
        for sub in await self.subscriptions.list_active_for_user(profile.id):
            if sub.plan != PLAN_LIFETIME and sub.expires_at:
                candidates.append(int(sub.expires_at))

        future = [ts for ts in candidates if ts > now]
        if not future:
            return False
        expires_at = min(future)

        days = days_left_rounded(expires_at, now)
        if days not in windows:
            return False

        if await self._already_sent(profile.id, expires_at, days):
            logger.debug(f"Reminder for user {profile.id} ({days}d, {expires_at}) already sent")
            return False

        await self.notifier.plan_expiring(profile.id, expires_at, days)
        return True

    async def _already_sent(self, user_id: str, expires_at: int, days: int) -> bool:
        recent = await self.notifier.recent_for_user(user_id, settings.reminder_lookback)
        for notification in recent:
            meta = notification.meta or {}
            if notification.type != NOTIFY_PLAN_EXPIRING:
                continue
            if meta.get("expiresAt") is None or meta.get("days") is None:
                continue
            if int(meta["expiresAt"]) == expires_at and int(meta["days"]) == days:
                return True
        return False

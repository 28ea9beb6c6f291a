"""
Lifecycle Service - premium plan state machine

Entry points called synchronously from user actions:
- upgrade (optionally with a one-time trial)
- complete_trial_charge (trial -> paid conversion, normally fired by a scheduled job)
- set_auto_renew / cancel_auto_renew
- ensure_plan_consistency (per-user self-heal)

Expected failures come back as result models with ok=False and a reason;
best-effort side effects never fail the primary transition.
"""
import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from crud.audit import PaymentRepository, UpgradeRepository
from crud.profile import ProfileRepository
from crud.subscription import SubscriptionRepository
from database_models import Upgrade
from jobs.scheduler import JobScheduler
from models.lifecycle import (
    AutoRenewResult,
    ConsistencyResult,
    SubscriptionEndResult,
    TrialChargeResult,
    UpgradeResult,
)
from services.notifier import Notifier
from services.plans import (
    PLAN_CURRENCY,
    PLAN_LIFETIME,
    PLAN_PRICES,
    ROLE_ADMIN,
    ROLE_FREE,
    ROLE_PREMIUM,
    STATUS_ACTIVE,
    STATUS_CANCELED,
    STATUS_EXPIRED,
    normalize_plan,
    plan_expiry,
)
from services.profile_projection import cleared_premium_fields, premium_fields, trial_pending
from utils.best_effort import best_effort
from utils.clock import MS_PER_DAY, MS_PER_HOUR, Clock, resolve_clock

logger = logging.getLogger(__name__)

TRIAL_CHARGE_OPERATION = "complete_trial_charge"


class LifecycleService:
    """
    Service class for premium lifecycle transitions.
    """

    def __init__(
        self,
        db: AsyncSession,
        clock: Optional[Clock] = None,
        scheduler: Optional[JobScheduler] = None,
        notifier: Optional[Notifier] = None,
    ):
        """
        Initialize the lifecycle service.

        Args:
            db: AsyncSession instance for database operations
            clock: Source of "now"; defaults to the system clock
            scheduler: Deferred-job registrar used for trial conversion
            notifier: Notification sink
        """
        self.db = db
        self.clock = resolve_clock(clock)
        self.profiles = ProfileRepository(db)
        self.subscriptions = SubscriptionRepository(db)
        self.upgrades = UpgradeRepository(db)
        self.payments = PaymentRepository(db)
        self.scheduler = scheduler or JobScheduler(db, self.clock)
        self.notifier = notifier or Notifier(db, self.clock)

    async def upgrade(
        self,
        user_id: str,
        to_role: str,
        plan: Optional[str] = None,
        trial: bool = False,
        payment_id: Optional[str] = None,
    ) -> UpgradeResult:
        """
        Move a user to premium (new ledger row, projection patch, audit row and,
        for trials, a scheduled conversion) or demote them to free.

        A trial is granted at most once per user: free_trial_used is burned at
        grant time, so `trial_applied` can be False even when `trial` was requested.
        """
        profile = await self.profiles.get(user_id)
        if profile is None:
            return UpgradeResult(ok=False, reason="user_not_found")
        if profile.role == ROLE_ADMIN:
            return UpgradeResult(ok=False, reason="admin_account")

        now = self.clock.now_ms()
        from_role = profile.role

        if to_role == ROLE_FREE:
            if profile.role == ROLE_FREE:
                return UpgradeResult(ok=False, reason="already_free", role=ROLE_FREE)
            # Manual demotion: projection only, the ledger is left to the sweeper
            await self.profiles.patch(profile, cleared_premium_fields())
            await best_effort(self.db, "upgrade-audit", self.upgrades.append, {
                "user_id": user_id,
                "from_role": from_role,
                "to_role": ROLE_FREE,
                "status": "downgraded",
                "effective_at": now,
                "created_at": now,
            })
            logger.info(f"User {user_id} demoted {from_role} -> free")
            return UpgradeResult(role=ROLE_FREE, trial_applied=False)

        if to_role != ROLE_PREMIUM:
            return UpgradeResult(ok=False, reason="invalid_role")

        plan = normalize_plan(plan)
        trial_applied = bool(trial and not profile.free_trial_used)
        trial_ends_at = None

        if trial_applied:
            trial_ends_at = now + settings.trial_days * MS_PER_DAY
            expires_at = trial_ends_at
            auto_renew = True
        elif plan != PLAN_LIFETIME:
            expires_at = plan_expiry(plan, now)
            auto_renew = True
        else:
            expires_at = None
            auto_renew = False

        # At most one active period per user
        for prior in await self.subscriptions.list_active_for_user(user_id):
            await self.subscriptions.patch_status(prior, STATUS_CANCELED, now)

        patch = premium_fields(plan, expires_at, auto_renew, trial_ends_at)
        if trial_applied:
            patch["free_trial_used"] = True
        await self.profiles.patch(profile, patch)

        subscription = await self.subscriptions.insert({
            "user_id": user_id,
            "plan": plan,
            "start_at": now,
            "expires_at": expires_at,
            "auto_renew": auto_renew,
            "status": STATUS_ACTIVE,
            "payment_id": payment_id,
            "created_at": now,
            "updated_at": now,
        })

        await best_effort(self.db, "upgrade-audit", self.upgrades.append, {
            "user_id": user_id,
            "from_role": from_role,
            "to_role": ROLE_PREMIUM,
            "status": "upgraded",
            "plan": plan,
            "payment_id": payment_id,
            "effective_at": now,
            "expires_at": expires_at,
            "created_at": now,
            "meta": {"trial": True} if trial_applied else None,
        })

        if trial_applied:
            # The sweeper backstops a conversion job that never fires
            await best_effort(
                self.db,
                "schedule-trial-charge",
                self.scheduler.schedule_at,
                trial_ends_at,
                TRIAL_CHARGE_OPERATION,
                {
                    "user_id": user_id,
                    "plan": plan,
                    "trial_ends_at": trial_ends_at,
                    "subscription_id": subscription.id,
                },
            )

        logger.info(
            f"User {user_id} upgraded {from_role} -> premium (plan={plan}, trial={trial_applied}, expires_at={expires_at})"
        )
        return UpgradeResult(
            role=ROLE_PREMIUM,
            trial_applied=trial_applied,
            subscription_id=subscription.id,
            expires_at=expires_at,
            trial_ends_at=trial_ends_at,
        )

    async def complete_trial_charge(
        self,
        user_id: str,
        plan: str,
        trial_ends_at: int,
        subscription_id: Optional[str] = None,
    ) -> TrialChargeResult:
        """
        Convert a finished trial into a paid period.

        May run late, twice, or against stale state. The profile's current
        trial_ends_at must equal the one passed in, which makes a repeated call
        after a successful conversion fail with trial_mismatch.
        """
        profile = await self.profiles.get(user_id)
        if profile is None:
            return TrialChargeResult(ok=False, reason="user_not_found")
        if profile.role != ROLE_PREMIUM:
            return TrialChargeResult(ok=False, reason="not_premium")
        if profile.premium_auto_renew is False:
            return TrialChargeResult(ok=False, reason="auto_renew_disabled")
        if profile.trial_ends_at != trial_ends_at:
            return TrialChargeResult(ok=False, reason="trial_mismatch")

        now = self.clock.now_ms()
        if now < trial_ends_at:
            return TrialChargeResult(ok=False, reason="trial_not_finished")

        plan = normalize_plan(plan)
        payment = await self.payments.insert({
            "user_id": user_id,
            "amount": PLAN_PRICES[plan],
            "currency": PLAN_CURRENCY,
            "status": "completed",
            "provider": "auto-trial",
            "created_at": now,
        })

        # Period runs from the trial end, not from "now", so late runs don't drift
        expires_at = plan_expiry(plan, trial_ends_at)
        auto_renew = expires_at is not None

        await self.profiles.patch(profile, premium_fields(plan, expires_at, auto_renew, None))

        await best_effort(
            self.db, "expire-trial-row", self._expire_trial_row, user_id, subscription_id, trial_ends_at, now
        )

        subscription = await self.subscriptions.insert({
            "user_id": user_id,
            "plan": plan,
            "start_at": trial_ends_at,
            "expires_at": expires_at,
            "auto_renew": auto_renew,
            "status": STATUS_ACTIVE,
            "payment_id": payment.id,
            "created_at": now,
            "updated_at": now,
        })

        await best_effort(self.db, "trial-charge-audit", self.upgrades.append, {
            "user_id": user_id,
            "from_role": ROLE_PREMIUM,
            "to_role": ROLE_PREMIUM,
            "status": "trial-charged",
            "plan": plan,
            "payment_id": payment.id,
            "expires_at": expires_at,
            "created_at": now,
            "meta": {"plan": plan},
        })
        await best_effort(
            self.db, "plan-renewed-notification", self.notifier.plan_renewed,
            user_id, subscription.id, plan, expires_at,
        )

        logger.info(f"Trial converted for user {user_id}: plan={plan}, expires_at={expires_at}")
        return TrialChargeResult(
            payment_id=payment.id,
            plan=plan,
            expires_at=expires_at,
            subscription_id=subscription.id,
        )

    async def _expire_trial_row(
        self,
        user_id: str,
        subscription_id: Optional[str],
        trial_ends_at: int,
        now: int,
    ) -> None:
        if subscription_id:
            trial_row = await self.subscriptions.get(subscription_id)
        else:
            trial_row = await self.subscriptions.find_active_by_expiry(user_id, trial_ends_at)
        if trial_row is None or trial_row.user_id != user_id or trial_row.status != STATUS_ACTIVE:
            return
        await self.subscriptions.patch_status(trial_row, STATUS_EXPIRED, now)

    async def set_auto_renew(
        self,
        user_id: str,
        auto_renew: bool,
        reason: Optional[str] = None,
    ) -> AutoRenewResult:
        """
        Toggle auto-renew.

        Turning it off while a trial is still pending downgrades to free right
        away. On a paid period it only flips the flag; access lasts until the
        sweeper finds the period past expires_at.
        """
        profile = await self.profiles.get(user_id)
        if profile is None:
            return AutoRenewResult(ok=False, reason="user_not_found")
        if profile.role != ROLE_PREMIUM:
            return AutoRenewResult(ok=False, reason="not_premium", role=profile.role)
        if auto_renew and profile.premium_plan == PLAN_LIFETIME:
            return AutoRenewResult(ok=False, reason="lifetime_plan", role=profile.role)

        now = self.clock.now_ms()
        from_role = profile.role
        downgraded = False

        if not auto_renew and trial_pending(profile, now):
            for sub in await self.subscriptions.list_active_for_user(user_id):
                await self.subscriptions.patch_status(sub, STATUS_CANCELED, now)
            await self.profiles.patch(profile, cleared_premium_fields())
            downgraded = True
            logger.info(f"User {user_id} canceled during trial; downgraded to free")
        else:
            await self.profiles.patch(profile, {"premium_auto_renew": auto_renew})
            logger.info(f"User {user_id} auto-renew set to {auto_renew}")

        await best_effort(self.db, "mirror-auto-renew", self._mirror_auto_renew, user_id, auto_renew, now)
        await best_effort(self.db, "auto-renew-audit", self.upgrades.append, {
            "user_id": user_id,
            "from_role": from_role,
            "to_role": ROLE_FREE if downgraded else from_role,
            "status": "auto-renew-activated" if auto_renew else "auto-renew-canceled",
            "reason": reason,
            "created_at": now,
            "meta": {"autoRenew": auto_renew, "downgraded": downgraded},
        })

        return AutoRenewResult(role=profile.role, auto_renew=auto_renew, downgraded=downgraded)

    async def cancel_auto_renew(self, user_id: str, reason: Optional[str] = None) -> AutoRenewResult:
        return await self.set_auto_renew(user_id, False, reason)

    async def _mirror_auto_renew(self, user_id: str, auto_renew: bool, now: int) -> None:
        latest = await self.subscriptions.latest_for_user(user_id, (STATUS_ACTIVE, STATUS_CANCELED))
        if latest is not None:
            await self.subscriptions.patch(latest, {"auto_renew": auto_renew, "updated_at": now})

    async def ensure_plan_consistency(self, user_id: str) -> ConsistencyResult:
        """
        Per-user self-heal: downgrade a premium profile whose cached expiry has
        passed, expire its lapsed ledger rows and notify once.
        """
        profile = await self.profiles.get(user_id)
        if profile is None:
            return ConsistencyResult(ok=False, reason="user_not_found")
        if profile.role != ROLE_PREMIUM or not profile.premium_plan or profile.premium_plan == PLAN_LIFETIME:
            return ConsistencyResult(changed=False)

        now = self.clock.now_ms()
        expired_at = profile.premium_expires_at
        if expired_at is None or expired_at > now:
            return ConsistencyResult(changed=False)

        await self.profiles.patch(profile, cleared_premium_fields())
        for sub in await self.subscriptions.list_active_for_user(user_id):
            if sub.expires_at is not None and sub.expires_at <= now:
                await self.subscriptions.patch_status(sub, STATUS_EXPIRED, now)

        await best_effort(
            self.db, "plan-expired-notification", self.notifier.plan_expired,
            user_id, settings.expired_notice_window_hours * MS_PER_HOUR, {"expiredAt": expired_at},
        )
        logger.info(f"User {user_id} downgraded by consistency check (expired at {expired_at})")
        return ConsistencyResult(changed=True, to_role=ROLE_FREE)

    async def force_subscription_end(self, user_id: str, offset_seconds: int = 0) -> SubscriptionEndResult:
        """
        Dev tooling: pull the active period's end to now + offset and turn off
        auto-renew so the next sweep picks it up.
        """
        profile = await self.profiles.get(user_id)
        if profile is None:
            return SubscriptionEndResult(ok=False, reason="user_not_found")

        active = await self.subscriptions.list_active_for_user(user_id, limit=1)
        if not active:
            return SubscriptionEndResult(ok=False, reason="no_active_subscription")
        sub = active[0]

        now = self.clock.now_ms()
        expires_at = now + offset_seconds * 1000
        await self.subscriptions.patch(sub, {"expires_at": expires_at, "auto_renew": False, "updated_at": now})
        if expires_at <= now:
            await self.subscriptions.patch_status(sub, STATUS_EXPIRED, now)
        await self.profiles.patch(profile, {
            "premium_plan": sub.plan,
            "premium_expires_at": expires_at,
            "premium_auto_renew": False,
        })
        return SubscriptionEndResult(expires_at=expires_at)

    async def list_upgrades(self, user_id: str, limit: int = 50) -> List[Upgrade]:
        return await self.upgrades.list_for_user(user_id, limit)

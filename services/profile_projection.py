"""
Patch builders for the denormalized premium fields on Profile.

role=premium => premium_expires_at in the future, or lifetime plan, or a pending trial.
role=free    => every premium field is None.
"""
from typing import Optional

from services.plans import ROLE_FREE, ROLE_PREMIUM


def premium_fields(
    plan: str,
    expires_at: Optional[int],
    auto_renew: bool,
    trial_ends_at: Optional[int] = None,
) -> dict:
    return {
        "role": ROLE_PREMIUM,
        "premium_plan": plan,
        "premium_expires_at": expires_at,
        "premium_auto_renew": auto_renew,
        "trial_ends_at": trial_ends_at,
    }


def cleared_premium_fields() -> dict:
    # free_trial_used is sticky and deliberately absent here
    return {
        "role": ROLE_FREE,
        "premium_plan": None,
        "premium_expires_at": None,
        "premium_auto_renew": None,
        "trial_ends_at": None,
    }


def trial_pending(profile, now: int) -> bool:
    """True while an unconverted trial still has time left."""
    return (
        profile.role == ROLE_PREMIUM
        and profile.trial_ends_at is not None
        and profile.trial_ends_at > now
    )

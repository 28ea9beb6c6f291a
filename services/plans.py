"""
Plan catalog and ledger date math.

Period ends use calendar month arithmetic in UTC: advancing Jan 31 by one
month lands on the last day of February, never in March.
"""
import calendar
from datetime import datetime, timezone
from typing import Optional

ROLE_FREE = "free"
ROLE_PREMIUM = "premium"
ROLE_ADMIN = "admin"

PLAN_MONTHLY = "monthly"
PLAN_QUARTERLY = "quarterly"
PLAN_ANNUAL = "annual"
PLAN_LIFETIME = "lifetime"

PLANS = (PLAN_MONTHLY, PLAN_QUARTERLY, PLAN_ANNUAL, PLAN_LIFETIME)

PLAN_MONTHS = {
    PLAN_MONTHLY: 1,
    PLAN_QUARTERLY: 3,
    PLAN_ANNUAL: 12,
    PLAN_LIFETIME: 0,
}

PLAN_PRICES = {
    PLAN_MONTHLY: 9.99,
    PLAN_QUARTERLY: 24.99,
    PLAN_ANNUAL: 89.99,
    PLAN_LIFETIME: 239.99,
}

PLAN_CURRENCY = "USD"

STATUS_ACTIVE = "active"
STATUS_CANCELED = "canceled"
STATUS_EXPIRED = "expired"


def normalize_plan(plan: Optional[str]) -> str:
    """Unknown or missing plans fall back to monthly."""
    if plan in PLANS:
        return plan
    return PLAN_MONTHLY


def add_months(ms: int, months: int) -> int:
    """
    Advance an epoch-ms timestamp by whole calendar months, clamping the day
    of month when the target month is shorter. Time of day is preserved.
    """
    start = datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    end = start.replace(year=year, month=month, day=day)
    # Keep the sub-second part of the original timestamp
    return int(end.timestamp()) * 1000 + ms % 1000


def plan_expiry(plan: str, start_ms: int) -> Optional[int]:
    """End of a paid period starting at `start_ms`; None for lifetime."""
    months = PLAN_MONTHS[normalize_plan(plan)]
    if months <= 0:
        return None
    return add_months(start_ms, months)

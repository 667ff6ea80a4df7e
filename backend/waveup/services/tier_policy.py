"""Tier → quota, label and expiry rules. Pure functions, no I/O."""

from datetime import datetime

from dateutil.relativedelta import relativedelta

from waveup.config import EntitlementConfig
from waveup.constants import TIER_LABELS
from waveup.models.entitlements import PlanId, Tier

_DEFAULT_CONFIG = EntitlementConfig()

# Billing period per plan. Pro is a recurring monthly product.
PLAN_TERMS: dict[PlanId, relativedelta] = {
    PlanId.MONTHLY: relativedelta(months=1),
    PlanId.ANNUAL: relativedelta(years=1),
    PlanId.PRO: relativedelta(months=1),
}


def normalize_tier(value: Tier | str | None) -> Tier:
    """Coerce a stored or user-supplied tier. Anything unrecognised is FREE."""
    if isinstance(value, Tier):
        return value
    try:
        return Tier(str(value or "").strip().lower())
    except ValueError:
        return Tier.FREE


def quota_table(config: EntitlementConfig | None = None) -> dict[Tier, int]:
    cfg = config or _DEFAULT_CONFIG
    return {
        Tier.FREE: cfg.free_daily_quota,
        Tier.MONTHLY: cfg.monthly_daily_quota,
        Tier.ANNUAL: cfg.annual_daily_quota,
        Tier.PRO: cfg.pro_daily_quota,
    }


def daily_quota(tier: Tier | str | None, config: EntitlementConfig | None = None) -> int:
    """Ideas allowed per calendar day. Unknown tiers get the free quota."""
    return quota_table(config)[normalize_tier(tier)]


def is_premium(tier: Tier | str | None) -> bool:
    return normalize_tier(tier) != Tier.FREE


def is_unlimited(tier: Tier | str | None) -> bool:
    return normalize_tier(tier) == Tier.PRO


def tier_label(tier: Tier | str | None) -> str:
    return TIER_LABELS[normalize_tier(tier)]


def compute_expiry(plan_id: PlanId, subscribed_at: datetime) -> datetime:
    """Add one billing period. Month ends clamp (Jan 31 + 1 month = Feb 28/29)."""
    return subscribed_at + PLAN_TERMS[plan_id]

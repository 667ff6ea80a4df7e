"""Entitlement, usage, promo and module-flag models."""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator


class Tier(str, Enum):
    """Subscription tiers, ordered by daily quota."""

    FREE = "free"
    MONTHLY = "monthly"
    ANNUAL = "annual"
    PRO = "pro"


class PlanId(str, Enum):
    """Purchasable plans. Each plan id maps to the tier of the same name."""

    MONTHLY = "monthly"
    ANNUAL = "annual"
    PRO = "pro"

    @property
    def tier(self) -> Tier:
        return Tier(self.value)


class BillingPeriod(str, Enum):
    MONTHLY = "monthly"
    ANNUAL = "annual"


class AppModule(str, Enum):
    """Feature areas that can be disabled individually or by the global lock."""

    AI = "AI"
    LEADERBOARD = "LEADERBOARD"
    ANALYTICS = "ANALYTICS"
    IDEAS = "IDEAS"
    TRENDS = "TRENDS"


class AccessReason(str, Enum):
    """Reason for a generation decision."""

    ALLOWED = "allowed"
    QUOTA_EXCEEDED = "quota_exceeded"
    STORE_UNAVAILABLE = "store_unavailable"


class PromoRejection(str, Enum):
    INVALID = "invalid"
    DISABLED = "disabled"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"


# ---------------------------------------------------------------------------
# Persisted records
# ---------------------------------------------------------------------------


class EntitlementRecord(BaseModel):
    """Persisted subscription state. Replaced wholesale, never patched."""

    model_config = ConfigDict(frozen=True)

    tier: Tier = Tier.FREE
    plan_id: PlanId | None = None
    subscribed_at: datetime | None = None
    expires_at: datetime | None = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "EntitlementRecord":
        is_free = self.tier == Tier.FREE
        if is_free != (self.plan_id is None) or is_free != (self.expires_at is None):
            raise ValueError("free tier must have neither plan_id nor expires_at")
        if self.plan_id is not None and self.plan_id.tier != self.tier:
            raise ValueError(f"plan '{self.plan_id.value}' does not match tier '{self.tier.value}'")
        if self.expires_at is not None:
            if self.subscribed_at is None:
                raise ValueError("expires_at requires subscribed_at")
            if self.expires_at <= self.subscribed_at:
                raise ValueError("expires_at must be after subscribed_at")
        return self


class DailyUsageRecord(BaseModel):
    """Ideas consumed on a single calendar day."""

    date_key: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    count: int = Field(default=0, ge=0)


class AnomalyRecord(BaseModel):
    type: str
    timestamp: datetime
    details: str = ""


class ModuleFlagState(BaseModel):
    """Persisted module gating state."""

    global_lock_active: bool = False
    disabled_modules: set[AppModule] = Field(default_factory=set)
    last_anomaly: AnomalyRecord | None = None


# ---------------------------------------------------------------------------
# Catalogs
# ---------------------------------------------------------------------------


class PromoCode(BaseModel):
    """Statically provisioned discount code."""

    code: str
    discount_percent: int = Field(ge=1, le=100)
    max_uses: int = Field(ge=0)
    current_uses: int = Field(default=0, ge=0)
    expiry_date: date
    is_active: bool = True

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        return value.strip().upper()


class PromoRedemptions(BaseModel):
    """Redemptions recorded for one code on top of its provisioned uses."""

    count: int = Field(default=0, ge=0)


class SubscriptionPlan(BaseModel):
    """Immutable catalog entry for a purchasable plan."""

    model_config = ConfigDict(frozen=True)

    id: PlanId
    name: str
    period: BillingPeriod
    price: Decimal
    original_price: Decimal | None = None
    features: list[str] = Field(default_factory=list)
    description: str = ""
    badge: str | None = None
    secondary_badge: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def discount_percent(self) -> int | None:
        """Savings against original_price, rounded half-up to a whole percent."""
        if not self.original_price:
            return None
        ratio = (self.original_price - self.price) / self.original_price * 100
        return int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ---------------------------------------------------------------------------
# Computed results
# ---------------------------------------------------------------------------


class PromoValidation(BaseModel):
    valid: bool
    discount_percent: int = 0
    message: str
    reason: PromoRejection | None = None


class EntitlementDecision(BaseModel):
    """Returned when the UI asks to generate one more idea."""

    allowed: bool
    reason: AccessReason
    tier: Tier
    daily_quota: int
    used_today: int
    remaining_today: int
    requires_upgrade: bool = False


class EntitlementStatus(BaseModel):
    """Read-only summary of the current plan for display."""

    tier: Tier
    plan_id: PlanId | None = None
    tier_label: str
    is_premium: bool
    daily_quota: int
    used_today: int
    remaining_today: int
    remaining_days: int
    expires_at: datetime | None = None


class PlanQuote(BaseModel):
    """Plan price with an optional promo applied."""

    plan_id: PlanId
    base_price: Decimal
    final_price: Decimal
    promo: PromoValidation | None = None

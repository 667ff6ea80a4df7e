"""Entitlement facade consumed by screens and the idea-generation flow."""

import math
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

import structlog

from waveup.config import EntitlementConfig
from waveup.constants import PLANS_BY_ID
from waveup.errors import ModuleDisabledError, QuotaExceededError, StoreUnavailableError
from waveup.models.entitlements import (
    AccessReason,
    AppModule,
    EntitlementDecision,
    EntitlementRecord,
    EntitlementStatus,
    PlanId,
    PlanQuote,
    SubscriptionPlan,
    Tier,
)
from waveup.services.clock import NowProvider, utcnow
from waveup.services.entitlement_store import EntitlementStore
from waveup.services.feature_gate import FeatureFlagGate
from waveup.services.idea_generator import IdeaGenerator
from waveup.services.promo_service import CENT, PromoService, apply_discount
from waveup.services.tier_policy import daily_quota, is_premium, is_unlimited, normalize_tier, tier_label
from waveup.services.usage_counter import UsageCounter

logger = structlog.get_logger(__name__)

ONE_DAY = timedelta(days=1)

IdeaT = TypeVar("IdeaT")


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value


class EntitlementService:
    """Answers "can I generate one more idea?", "what is my plan?" and
    "is this module enabled?" on top of the store, counter, policy and gate.
    """

    def __init__(
        self,
        entitlements: EntitlementStore,
        usage: UsageCounter,
        gate: FeatureFlagGate,
        promos: PromoService,
        config: EntitlementConfig | None = None,
        now_provider: NowProvider = utcnow,
        plans: dict[PlanId, SubscriptionPlan] = PLANS_BY_ID,
    ) -> None:
        self.entitlements = entitlements
        self.usage = usage
        self.gate = gate
        self.promos = promos
        self.config = config or EntitlementConfig()
        self.now_provider = now_provider
        self.plans = plans

    # ------------------------------------------------------------------
    # Plan
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return _as_utc(self.now_provider())

    async def get_record(self) -> EntitlementRecord:
        return await self.entitlements.get_record()

    def _effective_tier(self, record: EntitlementRecord) -> Tier:
        if record.expires_at is not None and self._now() >= _as_utc(record.expires_at):
            logger.debug("subscription_expired", tier=record.tier.value)
            return Tier.FREE
        return normalize_tier(record.tier)

    async def current_tier(self) -> Tier:
        """Tier used for gating. A lapsed subscription gates as free."""
        return self._effective_tier(await self.get_record())

    async def is_premium(self) -> bool:
        return is_premium(await self.current_tier())

    async def set_tier(self, plan_id: PlanId | str) -> EntitlementRecord:
        """Record a confirmed purchase. Raises StoreUnavailableError if it did not persist."""
        return await self.entitlements.set_tier(plan_id)

    async def remove_premium(self) -> None:
        await self.entitlements.clear()

    async def remaining_days(self) -> int:
        return self._remaining_days(await self.get_record())

    def _remaining_days(self, record: EntitlementRecord) -> int:
        if record.tier == Tier.FREE or record.expires_at is None:
            return 0
        delta = _as_utc(record.expires_at) - self._now()
        return max(0, math.ceil(delta / ONE_DAY))

    # ------------------------------------------------------------------
    # Daily quota
    # ------------------------------------------------------------------

    def daily_quota(self, tier: Tier | str) -> int:
        return daily_quota(tier, self.config)

    async def get_used_today(self) -> int:
        return await self.usage.get_used_today()

    async def can_generate(self) -> bool:
        tier = await self.current_tier()
        return await self.usage.get_used_today() < self.daily_quota(tier)

    async def consume_one(self) -> EntitlementDecision:
        """Consume one generation from today's quota if any is left.

        The quota check and the increment are a single atomic step. A consumed
        unit is never refunded, even if the generation itself later fails.
        """
        tier = await self.current_tier()
        quota = self.daily_quota(tier)

        try:
            used, consumed = await self.usage.try_consume(quota)
        except StoreUnavailableError as exc:
            logger.error("usage_store_unavailable", tier=tier.value, error=exc.message)
            return EntitlementDecision(
                allowed=False,
                reason=AccessReason.STORE_UNAVAILABLE,
                tier=tier,
                daily_quota=quota,
                used_today=0,
                remaining_today=0,
            )

        if not consumed:
            logger.info("quota_exceeded", tier=tier.value, used_today=used, daily_quota=quota)
            return EntitlementDecision(
                allowed=False,
                reason=AccessReason.QUOTA_EXCEEDED,
                tier=tier,
                daily_quota=quota,
                used_today=used,
                remaining_today=0,
                requires_upgrade=not is_unlimited(tier),
            )

        return EntitlementDecision(
            allowed=True,
            reason=AccessReason.ALLOWED,
            tier=tier,
            daily_quota=quota,
            used_today=used,
            remaining_today=max(0, quota - used),
        )

    async def require_generation(self) -> EntitlementDecision:
        """consume_one, raising QuotaExceededError instead of returning a denial."""
        decision = await self.consume_one()
        if not decision.allowed:
            raise QuotaExceededError(decision=decision)
        return decision

    def visible_idea_count(self, tier: Tier | str, total_generated: int) -> int:
        """Ideas to display. Pro shows everything; other tiers are capped at their quota."""
        if total_generated < 0:
            raise ValueError("total_generated must be non-negative")
        if is_unlimited(tier):
            return total_generated
        return min(total_generated, self.daily_quota(tier))

    def visible_ideas(self, tier: Tier | str, ideas: Sequence[IdeaT]) -> list[IdeaT]:
        return list(ideas[: self.visible_idea_count(tier, len(ideas))])

    async def generate_ideas(self, generator: IdeaGenerator, **kwargs: Any) -> list[Any]:
        if not await self.gate.is_module_enabled(AppModule.AI):
            raise ModuleDisabledError("AI module is disabled", module=AppModule.AI.value)
        decision = await self.require_generation()
        ideas = await generator(**kwargs)
        return self.visible_ideas(decision.tier, ideas)

    # ------------------------------------------------------------------
    # Status, modules, pricing
    # ------------------------------------------------------------------

    async def get_status(self) -> EntitlementStatus:
        record = await self.get_record()
        tier = self._effective_tier(record)
        quota = self.daily_quota(tier)
        used = await self.usage.get_used_today()
        return EntitlementStatus(
            tier=tier,
            plan_id=record.plan_id if tier != Tier.FREE else None,
            tier_label=tier_label(tier),
            is_premium=is_premium(tier),
            daily_quota=quota,
            used_today=used,
            remaining_today=max(0, quota - used),
            remaining_days=self._remaining_days(record),
            expires_at=record.expires_at,
        )

    async def is_module_enabled(self, module: AppModule | str) -> bool:
        return await self.gate.is_module_enabled(module)

    def list_plans(self) -> list[SubscriptionPlan]:
        return list(self.plans.values())

    async def quote_plan(self, plan_id: PlanId | str, promo_code: str | None = None) -> PlanQuote:
        plan = self.plans[PlanId(plan_id)]
        if not promo_code:
            return PlanQuote(plan_id=plan.id, base_price=plan.price, final_price=plan.price.quantize(CENT))

        validation = await self.promos.validate(promo_code)
        discount = validation.discount_percent if validation.valid else 0
        return PlanQuote(
            plan_id=plan.id,
            base_price=plan.price,
            final_price=apply_discount(plan.price, discount),
            promo=validation,
        )

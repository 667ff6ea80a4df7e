"""Promo code validation, redemption and discount arithmetic."""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

import structlog

from waveup.constants import PROMO_CODES
from waveup.errors import InvalidPromoCodeError
from waveup.models.entitlements import (
    PromoCode,
    PromoRedemptions,
    PromoRejection,
    PromoValidation,
)
from waveup.services.clock import NowProvider, date_key, utcnow
from waveup.services.record_store import RecordStore

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")

REJECTION_MESSAGES: dict[PromoRejection, str] = {
    PromoRejection.INVALID: "Invalid promo code",
    PromoRejection.DISABLED: "Promo code disabled",
    PromoRejection.EXPIRED: "Promo code expired",
    PromoRejection.EXHAUSTED: "Promo code exhausted",
}


def normalize_code(code: str) -> str:
    return code.strip().upper()


def apply_discount(price: Decimal | float | int | str, discount_percent: int) -> Decimal:
    """Discounted price rounded half-up to the cent."""
    if not 0 <= discount_percent <= 100:
        raise ValueError(f"discount_percent must be between 0 and 100, got {discount_percent}")
    amount = Decimal(str(price))
    discounted = amount - amount * Decimal(discount_percent) / Decimal(100)
    return discounted.quantize(CENT, rounding=ROUND_HALF_UP)


class PromoService:
    """Checks codes against a static allow-list.

    Redemptions are counted separately from the catalog: the effective use
    count of a code is its provisioned `current_uses` plus redemptions
    recorded through `redeem`. `validate` only reads.
    """

    def __init__(
        self,
        records: RecordStore,
        catalog: Iterable[PromoCode] = PROMO_CODES,
        uses_prefix: str = "promo_uses:",
        now_provider: NowProvider = utcnow,
    ) -> None:
        self.records = records
        self.catalog: dict[str, PromoCode] = {promo.code: promo for promo in catalog}
        self.uses_prefix = uses_prefix
        self.now_provider = now_provider

    def _uses_key(self, code: str) -> str:
        return f"{self.uses_prefix}{code}"

    async def _redemptions(self, code: str) -> int:
        record = await self.records.load(self._uses_key(code), PromoRedemptions, PromoRedemptions())
        return record.count

    def _reject(self, reason: PromoRejection) -> PromoValidation:
        return PromoValidation(valid=False, message=REJECTION_MESSAGES[reason], reason=reason)

    async def validate(self, code: str) -> PromoValidation:
        normalized = normalize_code(code)
        promo = self.catalog.get(normalized)
        if promo is None:
            return self._reject(PromoRejection.INVALID)
        if not promo.is_active:
            return self._reject(PromoRejection.DISABLED)
        # ISO dates compare correctly as strings
        if date_key(self.now_provider()) > promo.expiry_date.isoformat():
            return self._reject(PromoRejection.EXPIRED)
        uses = promo.current_uses + await self._redemptions(normalized)
        if uses >= promo.max_uses:
            return self._reject(PromoRejection.EXHAUSTED)
        return PromoValidation(
            valid=True,
            discount_percent=promo.discount_percent,
            message=f"Promo code applied: -{promo.discount_percent}%",
        )

    async def validate_or_raise(self, code: str) -> PromoValidation:
        result = await self.validate(code)
        if not result.valid:
            raise InvalidPromoCodeError(result.message, reason=result.reason.value)
        return result

    async def redeem(self, code: str) -> PromoValidation:
        """Validate and count one use. Raises InvalidPromoCodeError when not redeemable."""
        normalized = normalize_code(code)
        result = await self.validate_or_raise(normalized)
        promo = self.catalog[normalized]

        def mutate(record: PromoRedemptions) -> PromoRedemptions:
            # checked again under the key lock
            if promo.current_uses + record.count >= promo.max_uses:
                reason = PromoRejection.EXHAUSTED
                raise InvalidPromoCodeError(REJECTION_MESSAGES[reason], reason=reason.value)
            return PromoRedemptions(count=record.count + 1)

        record = await self.records.update(
            self._uses_key(normalized), PromoRedemptions, PromoRedemptions, mutate
        )
        logger.info("promo_redeemed", code=normalized, redemptions=record.count)
        return result

    async def redemption_counts(self) -> dict[str, int]:
        """Persisted redemptions per code, for codes redeemed at least once."""
        counts: dict[str, int] = {}
        for key in await self.records.keys(self.uses_prefix):
            code = key.removeprefix(self.uses_prefix)
            record = await self.records.load(key, PromoRedemptions, PromoRedemptions())
            if record.count:
                counts[code] = record.count
        return counts

    @staticmethod
    def apply(price: Decimal | float | int | str, discount_percent: int) -> Decimal:
        return apply_discount(price, discount_percent)

"""Persisted subscription tier, plan id and expiry."""

import structlog

from waveup.errors import StoreUnavailableError
from waveup.models.entitlements import EntitlementRecord, PlanId
from waveup.services.clock import NowProvider, utcnow
from waveup.services.record_store import RecordStore
from waveup.services.tier_policy import compute_expiry

logger = structlog.get_logger(__name__)

FREE_RECORD = EntitlementRecord()


class EntitlementStore:
    """Reads and replaces the single EntitlementRecord.

    Reads never fail: a missing, corrupt or unreachable record is the free
    record. Writes do fail loudly, since a purchase that did not persist
    must not be reported as applied.
    """

    def __init__(
        self,
        records: RecordStore,
        key: str = "premium_status",
        now_provider: NowProvider = utcnow,
    ) -> None:
        self.records = records
        self.key = key
        self.now_provider = now_provider

    async def get_record(self) -> EntitlementRecord:
        return await self.records.load(self.key, EntitlementRecord, FREE_RECORD)

    async def set_tier(self, plan_id: PlanId | str) -> EntitlementRecord:
        plan = PlanId(plan_id)
        subscribed_at = self.now_provider()
        record = EntitlementRecord(
            tier=plan.tier,
            plan_id=plan,
            subscribed_at=subscribed_at,
            expires_at=compute_expiry(plan, subscribed_at),
        )
        try:
            await self.records.save(self.key, record)
        except StoreUnavailableError:
            logger.error("entitlement_store_unavailable", plan_id=plan.value)
            raise
        logger.info(
            "entitlement_tier_set",
            tier=record.tier.value,
            expires_at=record.expires_at.isoformat() if record.expires_at else None,
        )
        return record

    async def clear(self) -> None:
        """Drop back to the free record."""
        try:
            await self.records.delete(self.key)
        except StoreUnavailableError:
            logger.error("entitlement_store_unavailable", action="clear")
            raise
        logger.info("entitlement_cleared")

"""Per-day counter of AI generation requests."""

import structlog

from waveup.models.entitlements import DailyUsageRecord
from waveup.services.clock import NowProvider, date_key, utcnow
from waveup.services.record_store import RecordStore

logger = structlog.get_logger(__name__)


class UsageCounter:
    """Tracks ideas consumed today in a single `{date_key, count}` record.

    A record from an earlier day counts as zero; the next write replaces it.
    """

    def __init__(
        self,
        records: RecordStore,
        key: str = "ideas_used",
        now_provider: NowProvider = utcnow,
    ) -> None:
        self.records = records
        self.key = key
        self.now_provider = now_provider

    def _today(self) -> str:
        return date_key(self.now_provider())

    def _count_for_today(self, record: DailyUsageRecord | None, today: str) -> int:
        if record is None or record.date_key != today:
            return 0
        return record.count

    async def get_used_today(self) -> int:
        today = self._today()
        record = await self.records.load(self.key, DailyUsageRecord, DailyUsageRecord(date_key=today))
        return self._count_for_today(record, today)

    async def record_use(self) -> int:
        """Increment today's count and return the new value."""
        used, _ = await self.try_consume(limit=None)
        return used

    async def try_consume(self, limit: int | None) -> tuple[int, bool]:
        """Increment today's count if it is below limit.

        Returns (count after the call, whether a unit was consumed). The check
        and the write happen under the record's lock, so concurrent callers
        can neither lose increments nor overshoot the limit.
        """
        today = self._today()
        consumed = False

        def mutate(record: DailyUsageRecord) -> DailyUsageRecord | None:
            nonlocal consumed
            current = self._count_for_today(record, today)
            if limit is not None and current >= limit:
                return None
            consumed = True
            return DailyUsageRecord(date_key=today, count=current + 1)

        record = await self.records.update(
            self.key, DailyUsageRecord, lambda: DailyUsageRecord(date_key=today), mutate
        )
        count = self._count_for_today(record, today)
        if consumed:
            logger.debug("usage_recorded", date_key=today, count=count)
        return count, consumed

    async def reset(self) -> None:
        await self.records.delete(self.key)

"""Unit tests for the daily usage counter."""

import asyncio
from datetime import timedelta

import pytest

from waveup.errors import StoreUnavailableError
from waveup.models.entitlements import DailyUsageRecord
from waveup.services.usage_counter import UsageCounter


class TestUsageCounter:
    async def test_no_record_reads_zero(self, records, clock):
        counter = UsageCounter(records, now_provider=clock.now)
        assert await counter.get_used_today() == 0

    async def test_record_use_increments(self, records, clock):
        counter = UsageCounter(records, now_provider=clock.now)

        assert await counter.record_use() == 1
        assert await counter.record_use() == 2
        assert await counter.get_used_today() == 2

    async def test_persists_date_keyed_record(self, records, memory_store, clock):
        counter = UsageCounter(records, key="ideas_used", now_provider=clock.now)
        await counter.record_use()

        stored = DailyUsageRecord.model_validate_json(memory_store.data["ideas_used"])
        assert stored.date_key == "2025-06-15"
        assert stored.count == 1

    async def test_rollover_reads_zero_without_reset(self, records, clock):
        counter = UsageCounter(records, now_provider=clock.now)
        for _ in range(3):
            await counter.record_use()

        clock.advance(timedelta(days=1))

        assert await counter.get_used_today() == 0

    async def test_record_use_after_rollover_starts_fresh(self, records, clock):
        counter = UsageCounter(records, now_provider=clock.now)
        for _ in range(3):
            await counter.record_use()

        clock.advance(timedelta(days=1))

        assert await counter.record_use() == 1

    async def test_try_consume_respects_limit(self, records, clock):
        counter = UsageCounter(records, now_provider=clock.now)

        results = [await counter.try_consume(limit=2) for _ in range(3)]

        assert results == [(1, True), (2, True), (2, False)]

    async def test_concurrent_record_use_never_loses_increments(self, records, clock):
        counter = UsageCounter(records, now_provider=clock.now)

        await asyncio.gather(*(counter.record_use() for _ in range(25)))

        assert await counter.get_used_today() == 25

    async def test_concurrent_try_consume_never_overshoots(self, records, clock):
        counter = UsageCounter(records, now_provider=clock.now)

        results = await asyncio.gather(*(counter.try_consume(limit=3) for _ in range(10)))

        assert sum(1 for _, consumed in results if consumed) == 3
        assert await counter.get_used_today() == 3

    async def test_reset_clears_today(self, records, clock):
        counter = UsageCounter(records, now_provider=clock.now)
        await counter.record_use()

        await counter.reset()

        assert await counter.get_used_today() == 0

    async def test_corrupt_record_reads_zero(self, records, memory_store, clock):
        memory_store.data["ideas_used"] = "{not json"
        counter = UsageCounter(records, now_provider=clock.now)

        assert await counter.get_used_today() == 0
        assert await counter.record_use() == 1

    async def test_unavailable_store_reads_zero(self, failing_records, clock):
        counter = UsageCounter(failing_records, now_provider=clock.now)
        assert await counter.get_used_today() == 0

    async def test_unavailable_store_write_raises(self, failing_records, clock):
        counter = UsageCounter(failing_records, now_provider=clock.now)
        with pytest.raises(StoreUnavailableError):
            await counter.record_use()

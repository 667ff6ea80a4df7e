"""Unit tests for typed record persistence."""

import asyncio

import pytest

from waveup.errors import CorruptRecordError, StoreUnavailableError
from waveup.models.entitlements import DailyUsageRecord, PromoRedemptions
from waveup.services.kv_store import InMemoryKeyValueStore
from waveup.services.record_store import RecordStore


class TestLoad:
    async def test_absent_returns_default(self, records):
        default = DailyUsageRecord(date_key="2025-06-15")
        assert await records.load("missing", DailyUsageRecord, default) is default

    async def test_round_trip(self, records):
        await records.save("k", DailyUsageRecord(date_key="2025-06-15", count=2))
        loaded = await records.load("k", DailyUsageRecord, DailyUsageRecord(date_key="2000-01-01"))
        assert loaded.count == 2

    async def test_corrupt_json_returns_default(self, records, memory_store):
        memory_store.data["k"] = "[1, 2"
        default = PromoRedemptions()
        assert await records.load("k", PromoRedemptions, default) is default

    async def test_schema_violation_returns_default(self, records, memory_store):
        memory_store.data["k"] = '{"date_key": "yesterday", "count": -4}'
        assert await records.read("k", DailyUsageRecord) is None

    async def test_unavailable_store_returns_default(self, failing_records):
        default = PromoRedemptions(count=7)
        assert await failing_records.load("k", PromoRedemptions, default) is default

    async def test_timeout_returns_default(self, slow_records):
        default = PromoRedemptions()
        assert await slow_records.load("k", PromoRedemptions, default) is default


class TestStrictOperations:
    async def test_read_raises_when_unavailable(self, failing_records):
        with pytest.raises(StoreUnavailableError):
            await failing_records.read("k", PromoRedemptions)

    async def test_save_times_out(self, slow_records):
        with pytest.raises(StoreUnavailableError, match="timed out"):
            await slow_records.save("k", PromoRedemptions())

    def test_parse_raises_corrupt_record(self, records):
        with pytest.raises(CorruptRecordError) as exc_info:
            records.parse("k", "nope", PromoRedemptions)
        assert exc_info.value.key == "k"

    async def test_keys_by_prefix(self, records):
        await records.save("promo_uses:A", PromoRedemptions(count=1))
        await records.save("promo_uses:B", PromoRedemptions(count=1))
        await records.save("ideas_used", DailyUsageRecord(date_key="2025-06-15"))

        assert await records.keys("promo_uses:") == ["promo_uses:A", "promo_uses:B"]


class TestUpdate:
    async def test_update_applies_mutation(self, records):
        result = await records.update(
            "k", PromoRedemptions, PromoRedemptions, lambda r: PromoRedemptions(count=r.count + 1)
        )
        assert result.count == 1

    async def test_concurrent_updates_are_serialized(self, records):
        async def bump():
            await records.update(
                "k", PromoRedemptions, PromoRedemptions, lambda r: PromoRedemptions(count=r.count + 1)
            )

        await asyncio.gather(*(bump() for _ in range(20)))

        assert (await records.read("k", PromoRedemptions)).count == 20

    async def test_update_does_not_write_when_read_fails(self, failing_records):
        with pytest.raises(StoreUnavailableError):
            await failing_records.update("k", PromoRedemptions, PromoRedemptions, lambda r: r)


class SlowWriteStore(InMemoryKeyValueStore):
    """Reads are instant; writes land only after `delay` seconds."""

    def __init__(self, initial: dict[str, str] | None = None, delay: float = 0.2) -> None:
        super().__init__(initial)
        self.delay = delay

    async def set(self, key: str, value: str) -> None:
        await asyncio.sleep(self.delay)
        await super().set(key, value)


class TestTimedOutWrites:
    async def test_timed_out_save_is_rolled_back(self):
        store = SlowWriteStore()
        records = RecordStore(store, timeout_seconds=0.05)

        with pytest.raises(StoreUnavailableError, match="timed out"):
            await records.save("k", PromoRedemptions(count=1))

        async with records.lock("k"):
            pass
        assert store.data == {}

    async def test_timed_out_update_restores_previous_value(self):
        previous = PromoRedemptions(count=4).model_dump_json()
        store = SlowWriteStore({"k": previous})
        records = RecordStore(store, timeout_seconds=0.05)

        with pytest.raises(StoreUnavailableError):
            await records.update(
                "k", PromoRedemptions, PromoRedemptions, lambda r: PromoRedemptions(count=r.count + 1)
            )

        async with records.lock("k"):
            pass
        assert store.data == {"k": previous}

    async def test_read_waits_for_in_flight_write(self):
        store = SlowWriteStore(delay=0.1)
        records = RecordStore(store, timeout_seconds=1.0)

        write = asyncio.create_task(records.save("k", PromoRedemptions(count=2)))
        await asyncio.sleep(0.02)

        assert (await records.read("k", PromoRedemptions)).count == 2
        await write

    async def test_update_without_change_skips_write(self, records, memory_store):
        result = await records.update("k", PromoRedemptions, PromoRedemptions, lambda r: None)

        assert result == PromoRedemptions()
        assert memory_store.data == {}

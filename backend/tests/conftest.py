"""
Shared test fixtures for the WaveUp entitlements test suite.
"""

import asyncio
import time
from datetime import UTC, datetime, timedelta

import pytest
import structlog

from waveup.config import Settings, get_settings
from waveup.context import EntitlementContext, build_context
from waveup.services.kv_store import InMemoryKeyValueStore, JsonFileKeyValueStore
from waveup.services.record_store import RecordStore


class MutableClock:
    """Deterministic clock helper for tests."""

    def __init__(self, now: datetime):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, delta: timedelta) -> None:
        self._now += delta

    def set(self, now: datetime) -> None:
        self._now = now


class FailingStore:
    """Store whose every call raises, as when the device storage is unavailable."""

    async def get(self, key: str) -> str | None:
        raise OSError("storage unavailable")

    async def set(self, key: str, value: str) -> None:
        raise OSError("storage unavailable")

    async def remove(self, key: str) -> None:
        raise OSError("storage unavailable")

    async def list_keys(self, prefix: str = "") -> list[str]:
        raise OSError("storage unavailable")


class SlowStore(InMemoryKeyValueStore):
    """In-memory store that takes longer than any test timeout."""

    def __init__(self, delay: float = 1.0) -> None:
        super().__init__()
        self.delay = delay

    async def get(self, key: str) -> str | None:
        await asyncio.sleep(self.delay)
        return await super().get(key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.sleep(self.delay)
        await super().set(key, value)


class SlowWriteFileStore(JsonFileKeyValueStore):
    """File store whose disk writes block the worker thread for `delay` seconds."""

    def __init__(self, path, delay: float = 0.2) -> None:
        super().__init__(path)
        self.delay = delay

    def _write_all(self, data: dict[str, str]) -> None:
        time.sleep(self.delay)
        super()._write_all(data)


@pytest.fixture(autouse=True)
def _set_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set environment variables for tests so Settings is deterministic."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-fake-key-for-testing")
    monkeypatch.setenv("STORE__BACKEND", "memory")
    # Disable LangSmith tracing in tests
    monkeypatch.setenv("LANGCHAIN_TRACING_V2", "false")
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _configure_structlog_for_tests():
    """Configure structlog for tests using a simple, deterministic setup."""
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(0),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )


@pytest.fixture
def clock() -> MutableClock:
    """Clock pinned inside the validity window of the seed promo codes."""
    return MutableClock(datetime(2025, 6, 15, 12, 0, tzinfo=UTC))


@pytest.fixture
def memory_store() -> InMemoryKeyValueStore:
    return InMemoryKeyValueStore()


@pytest.fixture
def records(memory_store: InMemoryKeyValueStore) -> RecordStore:
    return RecordStore(memory_store, timeout_seconds=0.5)


@pytest.fixture
def failing_records() -> RecordStore:
    return RecordStore(FailingStore(), timeout_seconds=0.5)


@pytest.fixture
def slow_records() -> RecordStore:
    return RecordStore(SlowStore(delay=0.5), timeout_seconds=0.05)


@pytest.fixture
def context(memory_store: InMemoryKeyValueStore, clock: MutableClock) -> EntitlementContext:
    return build_context(memory_store, Settings(), now_provider=clock.now)

"""Typed record persistence on top of a KeyValueStore.

Adds three things the raw store does not give:
  - a bounded timeout on every store call (StoreUnavailableError on expiry)
  - parse failures treated as an absent record (CorruptRecordError, logged)
  - per-key asyncio locks so read-modify-write updates are atomic

Writes run as shielded tasks holding the key lock. A write the caller
stopped waiting for is undone once it lands, so a StoreUnavailableError
from save, delete or update always means the record is unchanged.
"""

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from waveup.errors import CorruptRecordError, StoreUnavailableError
from waveup.services.kv_store import KeyValueStore

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)
T = TypeVar("T")

Transaction = Callable[[asyncio.Event], Awaitable[T]]


class RecordStore:
    def __init__(self, store: KeyValueStore, timeout_seconds: float = 2.0) -> None:
        self.store = store
        self.timeout_seconds = timeout_seconds
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def lock(self, key: str) -> asyncio.Lock:
        return self._locks[key]

    @staticmethod
    async def _raw(operation: str, key: str, awaitable: Awaitable[T]) -> T:
        try:
            return await awaitable
        except Exception as exc:
            raise StoreUnavailableError(f"store {operation} failed for '{key}': {exc}") from exc

    async def _call(self, operation: str, key: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(self._raw(operation, key, awaitable), timeout=self.timeout_seconds)
        except TimeoutError as exc:
            raise StoreUnavailableError(f"store {operation} timed out for '{key}'") from exc

    async def _locked(self, key: str, transaction: Transaction[T], abandoned: asyncio.Event) -> T:
        async with self.lock(key):
            return await transaction(abandoned)

    async def _write(self, operation: str, key: str, transaction: Transaction[T]) -> T:
        """Run a write transaction under the key lock with one overall timeout."""
        abandoned = asyncio.Event()
        task = asyncio.ensure_future(self._locked(key, transaction, abandoned))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=self.timeout_seconds)
        except TimeoutError as exc:
            abandoned.set()
            task.add_done_callback(_log_abandoned_write)
            raise StoreUnavailableError(f"store {operation} timed out for '{key}'") from exc
        except asyncio.CancelledError:
            abandoned.set()
            task.add_done_callback(_log_abandoned_write)
            raise

    async def _restore(self, key: str, previous: str | None) -> None:
        if previous is None:
            await self._raw("remove", key, self.store.remove(key))
        else:
            await self._raw("set", key, self.store.set(key, previous))
        logger.warning("record_write_rolled_back", key=key)

    @staticmethod
    def parse(key: str, raw: str, model: type[RecordT]) -> RecordT:
        try:
            return model.model_validate_json(raw)
        except ValidationError as exc:
            raise CorruptRecordError(f"record '{key}' failed validation", key=key) from exc

    def _parse_or_none(self, key: str, raw: str | None, model: type[RecordT]) -> RecordT | None:
        if raw is None:
            return None
        try:
            return self.parse(key, raw, model)
        except CorruptRecordError as exc:
            logger.warning("record_corrupt", key=key, error=str(exc.__cause__ or exc))
            return None

    async def _get_locked(self, key: str) -> str | None:
        async with self.lock(key):
            return await self.store.get(key)

    async def read(self, key: str, model: type[RecordT]) -> RecordT | None:
        """Read a record. Raises StoreUnavailableError; corrupt records read as None.

        Waits for any in-flight write to the key, so a write that is later
        rolled back is never observed.
        """
        raw = await self._call("get", key, self._get_locked(key))
        return self._parse_or_none(key, raw, model)

    async def load(self, key: str, model: type[RecordT], default: RecordT) -> RecordT:
        """Read a record, falling back to default when absent, corrupt or unreachable."""
        try:
            record = await self.read(key, model)
        except StoreUnavailableError as exc:
            logger.warning("record_store_unavailable", key=key, error=exc.message)
            return default
        return default if record is None else record

    async def save(self, key: str, record: BaseModel) -> None:
        value = record.model_dump_json()

        async def transaction(abandoned: asyncio.Event) -> None:
            previous = await self._raw("get", key, self.store.get(key))
            if abandoned.is_set():
                return
            await self._raw("set", key, self.store.set(key, value))
            if abandoned.is_set():
                await self._restore(key, previous)

        await self._write("set", key, transaction)

    async def delete(self, key: str) -> None:
        async def transaction(abandoned: asyncio.Event) -> None:
            previous = await self._raw("get", key, self.store.get(key))
            if previous is None or abandoned.is_set():
                return
            await self._raw("remove", key, self.store.remove(key))
            if abandoned.is_set():
                await self._restore(key, previous)

        await self._write("remove", key, transaction)

    async def keys(self, prefix: str) -> list[str]:
        return await self._call("list_keys", prefix, self.store.list_keys(prefix))

    async def update(
        self,
        key: str,
        model: type[RecordT],
        default: Callable[[], RecordT],
        mutate: Callable[[RecordT], RecordT | None],
    ) -> RecordT:
        """Atomically read, transform and write a record.

        mutate may return None to leave the record untouched; the current
        record (or default) is returned then. The read is strict: if the store
        cannot be reached nothing is written, so a transient outage never
        overwrites a real record with defaults.
        """

        async def transaction(abandoned: asyncio.Event) -> RecordT:
            previous = await self._raw("get", key, self.store.get(key))
            current = self._parse_or_none(key, previous, model)
            if current is None:
                current = default()
            updated = mutate(current)
            if updated is None or abandoned.is_set():
                return current
            await self._raw("set", key, self.store.set(key, updated.model_dump_json()))
            if abandoned.is_set():
                await self._restore(key, previous)
            return updated

        return await self._write("update", key, transaction)


def _log_abandoned_write(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("record_abandoned_write_failed", error=str(exc))

"""Key-value store contract and backends.

Every persisted record is a JSON string under a fixed key. The on-device
backend is a single JSON file; the Supabase backend keeps the same
key/value shape in a table so a creator's state follows them across devices.
"""

import asyncio
import json
import os
import tempfile
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

import structlog
from supabase import acreate_client
from supabase._async.client import AsyncClient as AsyncSupabaseClient

from waveup.config import Settings

logger = structlog.get_logger(__name__)


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so value matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class KeyValueStore(Protocol):
    """Storage contract for serialized records."""

    async def get(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent."""

    async def set(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""

    async def remove(self, key: str) -> None:
        """Delete key. Removing an absent key is a no-op."""

    async def list_keys(self, prefix: str = "") -> list[str]:
        """Return all keys starting with prefix, sorted."""


class InMemoryKeyValueStore:
    """In-memory store used for tests and local fallback."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value

    async def remove(self, key: str) -> None:
        self.data.pop(key, None)

    async def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self.data if k.startswith(prefix))


class JsonFileKeyValueStore:
    """Single-file JSON store.

    Each mutation reads, changes and rewrites the file in one worker thread
    through a unique temp file and os.replace. The mutation is shielded, so
    the file lock is held until the thread finishes even if the caller is
    cancelled.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        raw = self.path.read_text(encoding="utf-8")
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("kv_file_unreadable", path=str(self.path))
            return {}
        if not isinstance(data, dict):
            logger.warning("kv_file_unexpected_shape", path=str(self.path))
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write_all(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(data, tmp, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def _apply(self, change: Callable[[dict[str, str]], bool]) -> None:
        data = self._read_all()
        if change(data):
            self._write_all(data)

    async def _mutate(self, change: Callable[[dict[str, str]], bool]) -> None:
        async with self._lock:
            await asyncio.to_thread(self._apply, change)

    async def get(self, key: str) -> str | None:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
        return data.get(key)

    async def set(self, key: str, value: str) -> None:
        def change(data: dict[str, str]) -> bool:
            data[key] = value
            return True

        await asyncio.shield(self._mutate(change))

    async def remove(self, key: str) -> None:
        def change(data: dict[str, str]) -> bool:
            return data.pop(key, None) is not None

        await asyncio.shield(self._mutate(change))

    async def list_keys(self, prefix: str = "") -> list[str]:
        async with self._lock:
            data = await asyncio.to_thread(self._read_all)
        return sorted(k for k in data if k.startswith(prefix))


class SupabaseKeyValueStore:
    """Supabase-backed store. Expects a table with `key` (unique) and `value` text columns."""

    def __init__(self, client: AsyncSupabaseClient, table: str):
        self.client = client
        self.table = table

    async def get(self, key: str) -> str | None:
        response = (
            await self.client.table(self.table)
            .select("value")
            .eq("key", key)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        if not rows:
            return None
        return rows[0]["value"]

    async def set(self, key: str, value: str) -> None:
        await self.client.table(self.table).upsert(
            {"key": key, "value": value, "updated_at": datetime.now(UTC).isoformat()},
            on_conflict="key",
        ).execute()

    async def remove(self, key: str) -> None:
        await self.client.table(self.table).delete().eq("key", key).execute()

    async def list_keys(self, prefix: str = "") -> list[str]:
        response = (
            await self.client.table(self.table)
            .select("key")
            .like("key", f"{escape_like(prefix)}%")
            .execute()
        )
        # PostgREST also reads `*` as a wildcard
        return sorted(row["key"] for row in response.data or [] if row["key"].startswith(prefix))


async def create_store(settings: Settings) -> KeyValueStore:
    """Build the configured store backend.

    Falls back to the file store when Supabase is selected but not configured.
    """
    backend = settings.store.backend
    if backend == "memory":
        return InMemoryKeyValueStore()

    if backend == "supabase":
        if settings.supabase_url and settings.supabase_secret_key:
            client = await acreate_client(settings.supabase_url, settings.supabase_secret_key)
            logger.info("kv_store_supabase", table=settings.store.supabase_table)
            return SupabaseKeyValueStore(client, settings.store.supabase_table)
        logger.warning("kv_store_supabase_not_configured", fallback="file")

    logger.info("kv_store_file", path=settings.store.file_path)
    return JsonFileKeyValueStore(settings.store.file_path)

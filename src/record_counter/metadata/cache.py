from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from record_counter.models.domain import StoredQuery


@dataclass
class CacheEntry:
    queries: dict[str, list[StoredQuery]]
    loaded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class StoredQueryCache:
    """TTL-based in-memory cache for stored queries grouped by collection."""

    def __init__(self, ttl_seconds: int = 3600) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._cache: dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> dict[str, list[StoredQuery]] | None:
        async with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return None
            if (datetime.now(timezone.utc) - entry.loaded_at) >= self._ttl:
                del self._cache[key]
                return None
            return entry.queries

    async def set(
        self,
        key: str,
        queries: dict[str, list[StoredQuery]],
        loaded_at: datetime | None = None,
    ) -> None:
        async with self._lock:
            entry = CacheEntry(queries=queries)
            if loaded_at is not None:
                entry.loaded_at = loaded_at
            self._cache[key] = entry

    async def invalidate(self, key: str | None = None) -> None:
        async with self._lock:
            if key:
                self._cache.pop(key, None)
            else:
                self._cache.clear()

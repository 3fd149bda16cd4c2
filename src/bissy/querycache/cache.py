"""Query result caches -- the latest CSV artifact per query.

Provides:
- QueryCache: protocol with get / set / delete
- InMemoryQueryCache: process-local dict guarded by a reader-writer lock, no expiry
- RedisQueryCache: ``querycache:<id>`` keys expiring after the query lifetime
"""

from __future__ import annotations

from typing import Protocol

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from src.bissy.core.locks import ReadWriteLock
from src.bissy.querycache.duration import MILLISECOND
from src.bissy.querycache.schemas import Query

logger = structlog.get_logger(__name__)


class QueryCache(Protocol):
    async def get(self, query: Query) -> str | None:
        """Cached artifact, or None when absent (errors read as absent)."""
        ...

    async def set(self, query: Query, result: str) -> None: ...

    async def delete(self, query: Query) -> None: ...


class InMemoryQueryCache:
    """Single-process cache. Entries live until overwritten or deleted."""

    def __init__(self) -> None:
        self._entries: dict[str, str] = {}
        self._lock = ReadWriteLock()

    async def get(self, query: Query) -> str | None:
        with self._lock.read():
            return self._entries.get(query.id)

    async def set(self, query: Query, result: str) -> None:
        with self._lock.write():
            self._entries[query.id] = result

    async def delete(self, query: Query) -> None:
        with self._lock.write():
            self._entries.pop(query.id, None)

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._entries)


class RedisQueryCache:
    """Redis-backed cache.

    Each artifact expires after the query's lifetime at write time, so an
    expired key is indistinguishable from one never written. A zero
    lifetime stores without expiry.
    """

    KEY_PREFIX = "querycache:"

    def __init__(self, client: aioredis.Redis) -> None:
        self._client = client

    def _key(self, query: Query) -> str:
        return f"{self.KEY_PREFIX}{query.id}"

    async def get(self, query: Query) -> str | None:
        try:
            value = await self._client.get(self._key(query))
        except RedisError:
            logger.warning("querycache.cache_get_failed", query_id=query.id, exc_info=True)
            return None
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    async def set(self, query: Query, result: str) -> None:
        if query.lifetime > 0:
            ttl_ms = max(1, query.lifetime // MILLISECOND)
            await self._client.set(self._key(query), result, px=ttl_ms)
        else:
            await self._client.set(self._key(query), result)

    async def delete(self, query: Query) -> None:
        await self._client.delete(self._key(query))

"""
Key-value stores with per-key expiry.

The processed-mark store only needs get/put/remove with a TTL. Redis backs
it in production; the in-memory store serves local runs without Redis and
tests.
"""

import time
from collections.abc import Callable
from typing import Protocol

from app.infrastructure.observability.logging import get_logger
from app.services.redis_client import FastRedisClient

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    async def remove(self, key: str) -> None: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class InMemoryTTLStore:
    """Dict-backed store; expired keys are dropped on read and by sweep()."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, tuple[str, float]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = (value, self._clock() + ttl_seconds)

    async def remove(self, key: str) -> None:
        self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop every expired key; returns how many were removed."""
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisKeyValueStore:
    """Adapter exposing FastRedisClient through the KeyValueStore interface."""

    def __init__(self, client: FastRedisClient):
        self.client = client

    async def get(self, key: str) -> str | None:
        return await self.client.get(key)

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.client.set_with_ttl(key, value, ttl_seconds)

    async def remove(self, key: str) -> None:
        await self.client.delete(key)

    async def ping(self) -> bool:
        return await self.client.ping()

    async def close(self) -> None:
        await self.client.close()


def build_store(redis_url: str | None) -> KeyValueStore:
    """Pick Redis when a URL is configured, in-memory marks otherwise."""
    if redis_url:
        return RedisKeyValueStore(FastRedisClient(redis_url))

    logger.warning(
        "No Redis configured, processed marks are kept in memory and lost on restart"
    )
    return InMemoryTTLStore()

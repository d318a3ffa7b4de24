import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable

import redis.asyncio as redis
from redis.exceptions import RedisError

from netdisk.config import Settings
from netdisk.errors import StoreFailure
from netdisk.models import utc_now

logger = logging.getLogger("netdisk.kv")


class KeyValueStore(ABC):
    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the stored value, or None when the key is absent or expired."""

    @abstractmethod
    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Store value under key, expiring after ttl_seconds when given."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove key; removing an absent key is not an error."""

    async def close(self) -> None:
        return None


class MemoryKeyValueStore(KeyValueStore):
    """Single-process store. Expired entries are dropped when next touched."""

    def __init__(self, clock: Callable[[], datetime] = utc_now):
        self._clock = clock
        self._entries: dict[str, tuple[str, datetime | None]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        expires_at = self._clock() + timedelta(seconds=ttl_seconds) if ttl_seconds else None
        self._entries[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class RedisKeyValueStore(KeyValueStore):
    def __init__(self, client: redis.Redis, key_prefix: str = ""):
        self.redis = client
        self.key_prefix = key_prefix

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    async def get(self, key: str) -> str | None:
        try:
            data = await self.redis.get(self._make_key(key))
        except RedisError as exc:
            logger.error("Error getting key %s: %s", key, exc)
            raise StoreFailure() from exc
        if data is None:
            return None
        return data.decode("utf-8") if isinstance(data, bytes) else data

    async def put(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        try:
            await self.redis.set(self._make_key(key), value, ex=ttl_seconds)
        except RedisError as exc:
            logger.error("Error setting key %s: %s", key, exc)
            raise StoreFailure() from exc

    async def delete(self, key: str) -> None:
        try:
            await self.redis.delete(self._make_key(key))
        except RedisError as exc:
            logger.error("Error deleting key %s: %s", key, exc)
            raise StoreFailure() from exc

    async def close(self) -> None:
        await self.redis.aclose()


def build_kv_store(settings: Settings) -> KeyValueStore:
    if settings.kv_backend == "memory":
        return MemoryKeyValueStore()
    if settings.kv_backend == "redis":
        client = redis.Redis.from_url(
            settings.redis_url,
            socket_timeout=settings.store_timeout_seconds,
            socket_connect_timeout=settings.store_timeout_seconds,
        )
        return RedisKeyValueStore(client, key_prefix=settings.redis_key_prefix)
    raise ValueError(f"unknown kv_backend: {settings.kv_backend}")

import asyncio
from datetime import datetime, timedelta, timezone

from netdisk.errors import StoreFailure
from netdisk.kv import MemoryKeyValueStore
from netdisk.models import utc_now
from netdisk.storage import LocalBlobStore


class FakeClock:
    def __init__(self, start: datetime = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FlakyKeyValueStore(MemoryKeyValueStore):
    """Raises StoreFailure for keys under any prefix listed in failing_prefixes."""

    def __init__(self, clock=utc_now):
        super().__init__(clock=clock)
        self.failing_prefixes: set[str] = set()

    def _check(self, key: str) -> None:
        if any(key.startswith(prefix) for prefix in self.failing_prefixes):
            raise StoreFailure()

    async def get(self, key):
        self._check(key)
        return await super().get(key)

    async def put(self, key, value, ttl_seconds=None):
        self._check(key)
        await super().put(key, value, ttl_seconds)


class SlowReadKeyValueStore(MemoryKeyValueStore):
    """Yields to the event loop after every read so read-modify-write cycles interleave."""

    async def get(self, key):
        value = await super().get(key)
        await asyncio.sleep(0)
        return value


async def chunks_of(*parts: bytes):
    for part in parts:
        yield part


async def read_all(body) -> bytes:
    return b"".join([chunk async for chunk in body])


class FailingBlobStore(LocalBlobStore):
    """Raises StoreFailure from put and delete while failing is set."""

    def __init__(self, root_dir: str):
        super().__init__(root_dir)
        self.failing = False

    async def put(self, key, chunks, max_size_bytes=None):
        if self.failing:
            raise StoreFailure()
        return await super().put(key, chunks, max_size_bytes)

    async def delete(self, key):
        if self.failing:
            raise StoreFailure()
        await super().delete(key)

"""
The store has no atomic append or conditional write, so ledger mutations are
read-modify-write of one document per user and concurrent writers can lose an
update. LedgerLocks only serializes writers within this process.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, nullcontext

from pydantic import ValidationError

from netdisk.errors import NotFound, StoreFailure
from netdisk.kv import KeyValueStore
from netdisk.models import FileRecord, FileRecordList

logger = logging.getLogger("netdisk.ledger")


class LedgerLocks:
    """Per-username asyncio locks, discarded once nobody holds or waits on them."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, username: str):
        lock = self._locks.setdefault(username, asyncio.Lock())
        self._waiters[username] = self._waiters.get(username, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[username] -= 1
            if not self._waiters[username]:
                del self._waiters[username]
                del self._locks[username]


class FileLedger:
    def __init__(self, store: KeyValueStore, locks: LedgerLocks | None = None):
        self.store = store
        self.locks = locks

    @staticmethod
    def _key(username: str) -> str:
        return f"files:{username}"

    def _serialized(self, username: str):
        return self.locks.hold(username) if self.locks is not None else nullcontext()

    async def _read(self, username: str) -> list[FileRecord]:
        raw = await self.store.get(self._key(username))
        if raw is None:
            return []
        try:
            return FileRecordList.validate_json(raw)
        except ValidationError as exc:
            logger.error("Corrupt file ledger for %s: %s", username, exc)
            raise StoreFailure() from exc

    async def _write(self, username: str, records: list[FileRecord]) -> None:
        document = FileRecordList.dump_json(records, by_alias=True).decode("utf-8")
        await self.store.put(self._key(username), document)

    async def list_files(self, username: str) -> list[FileRecord]:
        return await self._read(username)

    async def get_file(self, username: str, file_id: str) -> FileRecord:
        for record in await self._read(username):
            if record.id == file_id:
                return record
        raise NotFound("file not found")

    async def append_file(self, username: str, record: FileRecord) -> None:
        async with self._serialized(username):
            records = await self._read(username)
            if any(existing.id == record.id for existing in records):
                # ids are generated per upload; a clash means the ledger is already inconsistent
                logger.error("File id %s already present in ledger of %s", record.id, username)
                raise StoreFailure("duplicate file id")
            records.append(record)
            await self._write(username, records)

    async def remove_file(self, username: str, file_id: str) -> bool:
        async with self._serialized(username):
            records = await self._read(username)
            remaining = [record for record in records if record.id != file_id]
            if len(remaining) == len(records):
                return False
            await self._write(username, remaining)
            return True

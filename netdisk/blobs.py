import logging
from datetime import datetime
from typing import AsyncIterator, Callable
from uuid import uuid4

from netdisk.errors import NotFound, StoreFailure
from netdisk.ledger import FileLedger
from netdisk.models import FileRecord, utc_now
from netdisk.shares import ShareLedger
from netdisk.storage import BlobStore

logger = logging.getLogger("netdisk.blobs")


def new_file_id() -> str:
    return uuid4().hex


class BlobGateway:
    def __init__(
        self,
        blobs: BlobStore,
        ledger: FileLedger,
        shares: ShareLedger,
        *,
        max_upload_size_bytes: int | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.blobs = blobs
        self.ledger = ledger
        self.shares = shares
        self.max_upload_size_bytes = max_upload_size_bytes
        self.clock = clock

    async def upload(self, username: str, file_name: str, chunks: AsyncIterator[bytes]) -> FileRecord:
        file_id = new_file_id()
        size = await self.blobs.put(file_id, chunks, max_size_bytes=self.max_upload_size_bytes)

        now = self.clock()
        record = FileRecord(id=file_id, name=file_name, size=size, uploaded_at=now, updated_at=now)
        try:
            await self.ledger.append_file(username, record)
        except StoreFailure:
            logger.error("Orphaned blob %s: ledger append for %s failed", file_id, username)
            raise

        logger.info("Stored file %s (%s, %d bytes) for %s", file_id, file_name, size, username)
        return record

    async def _open(self, record: FileRecord) -> AsyncIterator[bytes]:
        body = await self.blobs.get(record.id)
        if body is None:
            logger.warning("Ledger entry %s has no blob", record.id)
            raise NotFound("file not found")
        return body

    async def download(self, file_id: str, username: str) -> tuple[FileRecord, AsyncIterator[bytes]]:
        record = await self.ledger.get_file(username, file_id)
        return record, await self._open(record)

    async def download_shared(self, token: str) -> tuple[FileRecord, AsyncIterator[bytes]]:
        grant = await self.shares.resolve_share(token)
        # the grant can outlive the file
        record = await self.ledger.get_file(grant.file_owner, grant.file_id)
        return record, await self._open(record)

    async def delete(self, file_id: str, username: str) -> None:
        await self.ledger.get_file(username, file_id)
        # blob first: a failure after this leaves a dangling entry, never an unreachable blob
        await self.blobs.delete(file_id)

        try:
            removed = await self.ledger.remove_file(username, file_id)
        except StoreFailure:
            logger.error("Dangling ledger entry %s for %s: blob deleted, ledger removal failed", file_id, username)
            raise
        if not removed:
            # a concurrent delete got there first
            raise NotFound("file not found")
        logger.info("Deleted file %s for %s", file_id, username)

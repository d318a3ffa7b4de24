import logging
import re
from abc import ABC, abstractmethod
from contextlib import suppress
from pathlib import Path
from typing import AsyncIterator
from uuid import uuid4

import aiofiles
import aiofiles.os

from netdisk.errors import PayloadTooLarge, StoreFailure

logger = logging.getLogger("netdisk.storage")

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9._-]*$")


class BlobStore(ABC):
    @abstractmethod
    async def put(
        self, key: str, chunks: AsyncIterator[bytes], max_size_bytes: int | None = None
    ) -> int:
        """Write the chunks under key and return the number of bytes stored."""

    @abstractmethod
    async def get(self, key: str) -> AsyncIterator[bytes] | None:
        """Return an iterator over the blob body, or None when key is absent."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove the blob; an absent key is not an error."""

    def init(self) -> None:
        return None

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...


class LocalBlobStore(BlobStore):
    """One file per blob under root_dir. Writes land in .partial/ and are renamed into place."""

    def __init__(self, root_dir: str, chunk_size: int = 64 * 1024):
        self.root = Path(root_dir)
        self.partial_dir = self.root / ".partial"
        self.chunk_size = chunk_size

    def init(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.partial_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"invalid blob key: {key!r}")
        return self.root / key

    async def put(
        self, key: str, chunks: AsyncIterator[bytes], max_size_bytes: int | None = None
    ) -> int:
        target = self._path(key)
        partial = self.partial_dir / f"{key}.{uuid4().hex}"

        total = 0
        try:
            async with aiofiles.open(partial, "wb") as f:
                async for chunk in chunks:
                    total += len(chunk)
                    if max_size_bytes is not None and total > max_size_bytes:
                        raise PayloadTooLarge()
                    await f.write(chunk)
            await aiofiles.os.rename(partial, target)
        except OSError as exc:
            logger.error("Error writing blob %s: %s", key, exc)
            raise StoreFailure() from exc
        finally:
            with suppress(FileNotFoundError):
                await aiofiles.os.remove(partial)
        return total

    async def get(self, key: str) -> AsyncIterator[bytes] | None:
        path = self._path(key)
        # an open handle keeps streaming even if the blob is deleted meanwhile
        try:
            f = await aiofiles.open(path, "rb")
        except (FileNotFoundError, IsADirectoryError):
            return None
        except OSError as exc:
            logger.error("Error reading blob %s: %s", key, exc)
            raise StoreFailure() from exc
        return self._iter_file(key, f)

    async def _iter_file(self, key: str, f) -> AsyncIterator[bytes]:
        try:
            while chunk := await f.read(self.chunk_size):
                yield chunk
        except OSError as exc:
            logger.error("Error streaming blob %s: %s", key, exc)
            raise StoreFailure() from exc
        finally:
            await f.close()

    async def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.error("Error deleting blob %s: %s", key, exc)
            raise StoreFailure() from exc

    async def exists(self, key: str) -> bool:
        try:
            return await aiofiles.os.path.isfile(self._path(key))
        except OSError as exc:
            raise StoreFailure() from exc

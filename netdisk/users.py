import logging
from datetime import datetime
from typing import Callable
from uuid import uuid4

from pydantic import ValidationError

from netdisk.errors import StoreFailure
from netdisk.kv import KeyValueStore
from netdisk.models import Identity, utc_now

logger = logging.getLogger("netdisk.users")


class UserDirectory:
    """Maps a username, used verbatim, to an identity created on first login."""

    def __init__(self, store: KeyValueStore, clock: Callable[[], datetime] = utc_now):
        self.store = store
        self.clock = clock

    @staticmethod
    def _key(username: str) -> str:
        return f"user:{username}"

    async def get_identity(self, username: str) -> Identity | None:
        raw = await self.store.get(self._key(username))
        if raw is None:
            return None
        try:
            return Identity.model_validate_json(raw)
        except ValidationError as exc:
            logger.error("Corrupt identity record for %s: %s", username, exc)
            raise StoreFailure() from exc

    async def ensure_identity(self, username: str) -> Identity:
        identity = await self.get_identity(username)
        if identity is not None:
            return identity

        identity = Identity(id=uuid4().hex, username=username, created_at=self.clock())
        await self.store.put(self._key(username), identity.to_json())
        logger.info("Created identity %s for %s", identity.id, username)
        return identity

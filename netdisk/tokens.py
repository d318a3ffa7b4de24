import logging
import secrets
from datetime import datetime, timedelta
from typing import Callable

from pydantic import ValidationError

from netdisk.errors import NotFound, Unauthenticated
from netdisk.kv import KeyValueStore
from netdisk.models import SessionBinding, ShareGrant, utc_now

logger = logging.getLogger("netdisk.tokens")

TOKEN_BYTES = 32
SESSION_PREFIX = "token"
SHARE_PREFIX = "share"
BEARER_PREFIX = "Bearer "


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def parse_bearer(authorization: str | None) -> str:
    """Extract the token from an ``Authorization: Bearer <token>`` header value."""
    if not authorization or not authorization.startswith(BEARER_PREFIX):
        raise Unauthenticated()
    token = authorization[len(BEARER_PREFIX):].strip()
    if not token:
        raise Unauthenticated()
    return token


class TokenService:
    def __init__(
        self,
        store: KeyValueStore,
        *,
        session_ttl_seconds: int,
        share_ttl_seconds: int,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.session_ttl_seconds = session_ttl_seconds
        self.share_ttl_seconds = share_ttl_seconds
        self.clock = clock

    def share_expiry(self, shared_at: datetime) -> datetime:
        return shared_at + timedelta(seconds=self.share_ttl_seconds)

    async def issue_session_token(self, username: str) -> str:
        token = generate_token()
        binding = SessionBinding(
            username=username,
            expires_at=self.clock() + timedelta(seconds=self.session_ttl_seconds),
        )
        await self.store.put(f"{SESSION_PREFIX}:{token}", binding.to_json(), self.session_ttl_seconds)
        return token

    async def resolve_session_token(self, token: str) -> SessionBinding:
        raw = await self.store.get(f"{SESSION_PREFIX}:{token}")
        if raw is None:
            raise Unauthenticated()
        try:
            binding = SessionBinding.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding malformed session record for token %s...", token[:8])
            raise Unauthenticated()
        if binding.expires_at <= self.clock():
            raise Unauthenticated()
        return binding

    async def issue_share_token(self, grant: ShareGrant) -> str:
        token = generate_token()
        await self.store.put(f"{SHARE_PREFIX}:{token}", grant.to_json(), self.share_ttl_seconds)
        return token

    async def resolve_share_token(self, token: str) -> ShareGrant:
        raw = await self.store.get(f"{SHARE_PREFIX}:{token}")
        if raw is None:
            raise NotFound("share not found")
        try:
            grant = ShareGrant.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding malformed share record for token %s...", token[:8])
            raise NotFound("share not found")
        if grant.expires_at <= self.clock():
            raise NotFound("share not found")
        return grant

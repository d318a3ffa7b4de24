import logging
from urllib.parse import urlsplit, urlunsplit

from netdisk.ledger import FileLedger
from netdisk.models import ShareGrant
from netdisk.tokens import TokenService

logger = logging.getLogger("netdisk.shares")

SHARE_CREATE_SEGMENT = "/api/share/"
PUBLIC_SHARE_SEGMENT = "/share/"


def build_share_url(request_url: str, token: str) -> str:
    """Swap the share-creation path of request_url for the public share path of token."""
    parts = urlsplit(request_url)
    path = parts.path
    if SHARE_CREATE_SEGMENT in path:
        prefix = path[: path.rindex(SHARE_CREATE_SEGMENT)]
    else:
        prefix = ""
    return urlunsplit((parts.scheme, parts.netloc, f"{prefix}{PUBLIC_SHARE_SEGMENT}{token}", "", ""))


class ShareLedger:
    def __init__(self, ledger: FileLedger, tokens: TokenService):
        self.ledger = ledger
        self.tokens = tokens

    async def create_share(self, username: str, file_id: str, request_url: str) -> str:
        record = await self.ledger.get_file(username, file_id)

        shared_at = self.tokens.clock()
        grant = ShareGrant(
            file_id=record.id,
            file_owner=username,
            file_name=record.name,
            shared_at=shared_at,
            expires_at=self.tokens.share_expiry(shared_at),
        )
        token = await self.tokens.issue_share_token(grant)
        logger.info("Shared file %s of %s until %s", file_id, username, grant.expires_at.isoformat())
        return build_share_url(request_url, token)

    async def resolve_share(self, token: str) -> ShareGrant:
        return await self.tokens.resolve_share_token(token)

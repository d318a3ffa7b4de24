import pytest

from helpers import FakeClock, FlakyKeyValueStore
from netdisk.ledger import FileLedger, LedgerLocks
from netdisk.shares import ShareLedger
from netdisk.storage import LocalBlobStore
from netdisk.tokens import TokenService


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def kv(clock):
    return FlakyKeyValueStore(clock=clock)


@pytest.fixture
def tokens(kv, clock):
    return TokenService(kv, session_ttl_seconds=86400, share_ttl_seconds=7 * 86400, clock=clock)


@pytest.fixture
def ledger(kv):
    return FileLedger(kv, LedgerLocks())


@pytest.fixture
def shares(ledger, tokens):
    return ShareLedger(ledger, tokens)


@pytest.fixture
def blob_store(tmp_path):
    store = LocalBlobStore(str(tmp_path / "blobs"), chunk_size=4)
    store.init()
    return store

"""
Signing test fixtures.

FakePairScoreRepository keeps records in memory, enforces the
(pool_id, nonce) uniqueness the database provides, and yields to the
event loop on every call so concurrent signers really interleave.
"""
import asyncio

import asyncpg
import pytest

from viral_score.scoring import derive_pair
from viral_score.signing import MessageSigner, NonceAllocator, ScoreSigner

TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
FIXED_TIMESTAMP = 1748779200


class FakePairScoreRepository:

    def __init__(self, persisted_max: dict[str, int] | None = None):
        self.records = []
        self._taken: set[tuple[str, int]] = set()
        self._persisted_max = dict(persisted_max or {})
        self.max_nonce_calls = 0

    async def create(self, record):
        await asyncio.sleep(0)
        key = (record.pool_id, record.nonce)
        if key in self._taken:
            raise asyncpg.UniqueViolationError("duplicate key value violates unique constraint")
        self._taken.add(key)
        self.records.append(record)
        return record

    async def max_nonce(self, pool_id):
        self.max_nonce_calls += 1
        await asyncio.sleep(0)
        nonces = [n for (p, n) in self._taken if p == pool_id]
        if pool_id in self._persisted_max:
            nonces.append(self._persisted_max[pool_id])
        return max(nonces) if nonces else None

    def steal(self, pool_id, nonce):
        """Simulate another writer persisting a nonce."""
        self._taken.add((pool_id, nonce))


@pytest.fixture
def repo():
    return FakePairScoreRepository()


@pytest.fixture
def message_signer():
    return MessageSigner(TEST_PRIVATE_KEY)


@pytest.fixture
def unconfigured_signer():
    return MessageSigner(None)


@pytest.fixture
def score_signer(message_signer, repo):
    return ScoreSigner(message_signer, repo, NonceAllocator(repo), clock=lambda: FIXED_TIMESTAMP)


@pytest.fixture
def pair():
    return derive_pair("PEPE", 8000, "DOGE", 4000)

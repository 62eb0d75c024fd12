"""
Tests for the message signer, nonce allocation and pair score signing.

These tests verify:
- EIP-191 signatures recover to the signer address
- An unconfigured signer refuses to sign instead of crashing callers
- Nonces are strictly increasing and gap-free, including under concurrency
- Restarts resume after the highest persisted nonce
"""
import asyncio

import asyncpg
import pytest
from eth_utils import keccak

from viral_score.errors import ConfigurationError, InvariantViolationError
from viral_score.signing import MessageSigner, NonceAllocator, ScoreSigner, pair_message_hash

from .conftest import FIXED_TIMESTAMP, TEST_ADDRESS, FakePairScoreRepository


# =============================================================================
# MessageSigner
# =============================================================================


class TestMessageSigner:

    def test_address_from_key(self, message_signer):
        assert message_signer.is_ready
        assert message_signer.address == TEST_ADDRESS

    def test_signature_recovers(self, message_signer):
        digest = keccak(text="hello")
        signature = message_signer.sign_hash(digest)
        assert MessageSigner.recover(digest, signature) == TEST_ADDRESS
        assert MessageSigner.verify(digest, signature, TEST_ADDRESS.lower())

    def test_verify_rejects_other_message(self, message_signer):
        signature = message_signer.sign_hash(keccak(text="a"))
        assert not MessageSigner.verify(keccak(text="b"), signature, TEST_ADDRESS)

    def test_verify_garbage_signature(self):
        assert not MessageSigner.verify(keccak(text="a"), "0x1234", TEST_ADDRESS)

    def test_verify_non_hex_signature(self):
        assert not MessageSigner.verify(keccak(text="a"), "0xnothex", TEST_ADDRESS)

    def test_unconfigured_signer(self, unconfigured_signer):
        assert not unconfigured_signer.is_ready
        assert unconfigured_signer.address is None
        with pytest.raises(ConfigurationError):
            unconfigured_signer.sign_hash(keccak(text="x"))

    def test_sign_epoch(self, message_signer):
        signed = message_signer.sign_epoch(480000, [])
        assert signed.epoch == 480000
        assert signed.signature.startswith("0x")
        assert len(signed.signature) == 2 + 65 * 2


# =============================================================================
# NonceAllocator
# =============================================================================


class TestNonceAllocator:

    @pytest.mark.asyncio
    async def test_starts_at_one(self, repo):
        allocator = NonceAllocator(repo)

        async def persist(nonce):
            return nonce

        assert await allocator.issue("0xaa", persist) == 1

    @pytest.mark.asyncio
    async def test_warm_cache_skips_storage(self, repo):
        allocator = NonceAllocator(repo)

        async def persist(nonce):
            return nonce

        assert [await allocator.issue("0xaa", persist) for _ in range(3)] == [1, 2, 3]
        assert repo.max_nonce_calls == 1

    @pytest.mark.asyncio
    async def test_failed_persist_does_not_consume_nonce(self, repo):
        allocator = NonceAllocator(repo)

        async def broken(nonce):
            raise RuntimeError("disk full")

        async def ok(nonce):
            return nonce

        with pytest.raises(RuntimeError):
            await allocator.issue("0xaa", broken)
        assert await allocator.issue("0xaa", ok) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, repo):
        allocator = NonceAllocator(repo, max_attempts=2)

        async def always_taken(nonce):
            repo.steal("0xaa", nonce)
            raise asyncpg.UniqueViolationError("dup")

        with pytest.raises(InvariantViolationError):
            await allocator.issue("0xaa", always_taken)

    @pytest.mark.asyncio
    async def test_pool_locks_released_when_idle(self, repo):
        allocator = NonceAllocator(repo)

        async def persist(nonce):
            await asyncio.sleep(0)
            return nonce

        nonces = await asyncio.gather(*(allocator.issue("0xaa", persist) for _ in range(5)))

        assert sorted(nonces) == [1, 2, 3, 4, 5]
        assert allocator._locks == {}
        assert allocator._waiters == {}


# =============================================================================
# ScoreSigner
# =============================================================================


class TestScoreSigner:

    @pytest.mark.asyncio
    async def test_sign_pair_score(self, score_signer, repo, pair):
        signed = await score_signer.sign_pair_score(pair)

        assert signed.pool_id == pair.pool_id
        assert signed.score == 6000
        assert signed.timestamp == FIXED_TIMESTAMP
        assert signed.nonce == 1
        assert (signed.symbol_x, signed.symbol_y) == ("DOGE", "PEPE")
        assert score_signer.verify_pair_signature(signed)

        message_hash = pair_message_hash(pair.pool_id, 6000, FIXED_TIMESTAMP, 1)
        assert MessageSigner.recover(message_hash, signed.signature) == TEST_ADDRESS

        assert len(repo.records) == 1
        assert repo.records[0].nonce == 1
        assert repo.records[0].signature == signed.signature

    @pytest.mark.asyncio
    async def test_concurrent_signs_are_gap_free(self, score_signer, repo, pair):
        results = await asyncio.gather(*(score_signer.sign_pair_score(pair) for _ in range(25)))

        nonces = sorted(s.nonce for s in results)
        assert nonces == list(range(1, 26))
        assert sorted(r.nonce for r in repo.records) == nonces

    @pytest.mark.asyncio
    async def test_concurrent_signs_across_pools(self, score_signer):
        from viral_score.scoring import derive_pair

        a = derive_pair("PEPE", 8000, "DOGE", 4000)
        b = derive_pair("WIF", 100, "BONK", 300)
        results = await asyncio.gather(
            *(score_signer.sign_pair_score(p) for p in [a, b, a, b, a])
        )
        by_pool = {}
        for signed in results:
            by_pool.setdefault(signed.pool_id, []).append(signed.nonce)
        assert sorted(by_pool[a.pool_id]) == [1, 2, 3]
        assert sorted(by_pool[b.pool_id]) == [1, 2]

    @pytest.mark.asyncio
    async def test_resumes_after_persisted_nonce(self, message_signer, pair):
        repo = FakePairScoreRepository(persisted_max={pair.pool_id: 41})
        signer = ScoreSigner(message_signer, repo, clock=lambda: FIXED_TIMESTAMP)

        signed = await signer.sign_pair_score(pair)
        assert signed.nonce == 42

    @pytest.mark.asyncio
    async def test_resyncs_when_another_writer_took_the_nonce(self, score_signer, repo, pair):
        first = await score_signer.sign_pair_score(pair)
        repo.steal(pair.pool_id, 2)

        second = await score_signer.sign_pair_score(pair)
        assert first.nonce == 1
        assert second.nonce == 3

    @pytest.mark.asyncio
    async def test_unconfigured_signer_consumes_no_nonce(self, unconfigured_signer, repo, pair):
        signer = ScoreSigner(unconfigured_signer, repo)
        with pytest.raises(ConfigurationError):
            await signer.sign_pair_score(pair)
        assert repo.records == []
        assert repo.max_nonce_calls == 0

    def test_to_dict_keys(self, message_signer, repo):
        from viral_score.signing import SignedScore

        signed = SignedScore(
            pool_id="0x01", score=1, timestamp=2, nonce=3, signature="0x",
            symbol_x="A", symbol_y="B", score_x=1, score_y=1,
        )
        assert set(signed.to_dict()) == {
            "poolId", "score", "timestamp", "nonce", "signature",
            "tokenX", "tokenY", "tokenXScore", "tokenYScore",
        }

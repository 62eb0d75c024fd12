"""
Score signing.

MessageSigner wraps the single long-lived signing key. Without a key
the signer reports not ready and every signing call raises
ConfigurationError; callers turn that into "submission skipped".

NonceAllocator issues per-pool nonces that are strictly increasing with
no gaps:
- a per-pool lock serializes issuance inside this process
- the last issued nonce is cached; on a miss it resumes after the highest
  persisted nonce
- the cache advances only after the signed record is stored, and a
  unique (pool_id, nonce) violation from another writer forces a resync
"""
from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, AsyncIterator, Awaitable, Callable, Optional, Sequence, TypeVar

import asyncpg
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys.exceptions import BadSignature
from eth_utils import decode_hex, encode_hex, to_checksum_address

from viral_score.chain.models import ViralPair
from viral_score.errors import ConfigurationError, InvariantViolationError
from viral_score.scoring.models import PairScore
from viral_score.signing.messages import epoch_message_hash, pair_message_hash
from viral_score.storage.models import PairScoreRecord

if TYPE_CHECKING:
    from viral_score.storage.repositories import PairScoreRepository

logger = logging.getLogger(__name__)

T = TypeVar("T")

SIGNATURE_LENGTH = 65


@dataclass(frozen=True)
class SignedScore:
    """A pair score attested by the oracle key."""
    pool_id: str
    score: int
    timestamp: int
    nonce: int
    signature: str
    symbol_x: str
    symbol_y: str
    score_x: int
    score_y: int

    def to_dict(self) -> dict:
        return {
            "poolId": self.pool_id,
            "score": self.score,
            "timestamp": self.timestamp,
            "nonce": self.nonce,
            "signature": self.signature,
            "tokenX": self.symbol_x,
            "tokenY": self.symbol_y,
            "tokenXScore": self.score_x,
            "tokenYScore": self.score_y,
        }


@dataclass(frozen=True)
class SignedEpoch:
    """Epoch attestation ready for submitEpoch."""
    epoch: int
    pairs: tuple[ViralPair, ...]
    message_hash: str
    signature: str


class MessageSigner:
    """
    EIP-191 signer over 32-byte message hashes.

    Usage:
        signer = MessageSigner(os.environ.get("SIGNER_PRIVATE_KEY"))
        if signer.is_ready:
            signature = signer.sign_hash(message_hash)
    """

    def __init__(self, private_key: Optional[str] = None) -> None:
        self._account = Account.from_key(private_key) if private_key else None
        if self._account is not None:
            logger.info(f"Signer initialized with address: {self._account.address}")
        else:
            logger.warning("No signer key configured - signing and epoch submission disabled")

    @property
    def is_ready(self) -> bool:
        return self._account is not None

    @property
    def address(self) -> Optional[str]:
        return self._account.address if self._account is not None else None

    def _require_account(self):
        if self._account is None:
            raise ConfigurationError("Signer not configured (SIGNER_PRIVATE_KEY missing)")
        return self._account

    def sign_hash(self, message_hash: bytes) -> str:
        """Sign a 32-byte hash with the personal-message prefix."""
        account = self._require_account()
        signed = account.sign_message(encode_defunct(primitive=message_hash))
        return encode_hex(bytes(signed.signature))

    def sign_epoch(self, epoch: int, pairs: Sequence[ViralPair]) -> SignedEpoch:
        message_hash = epoch_message_hash(epoch, pairs)
        return SignedEpoch(
            epoch=epoch,
            pairs=tuple(pairs),
            message_hash=encode_hex(message_hash),
            signature=self.sign_hash(message_hash),
        )

    @staticmethod
    def recover(message_hash: bytes, signature: str) -> str:
        return Account.recover_message(encode_defunct(primitive=message_hash), signature=signature)

    @staticmethod
    def verify(message_hash: bytes, signature: str, expected_address: str) -> bool:
        """True if `signature` over `message_hash` recovers to `expected_address`."""
        try:
            if len(decode_hex(signature)) != SIGNATURE_LENGTH:
                return False
            recovered = MessageSigner.recover(message_hash, signature)
        except (ValueError, BadSignature) as e:
            logger.debug(f"Signature recovery failed: {e}")
            return False
        return recovered == to_checksum_address(expected_address)


class NonceAllocator:
    """Strictly increasing, gap-free nonces per pool."""

    def __init__(self, repository: "PairScoreRepository", max_attempts: int = 5) -> None:
        self._repo = repository
        self._max_attempts = max_attempts
        self._last_issued: dict[str, int] = {}
        # Per-pool locks exist only while a pool has an issue() in flight
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    def cached(self, pool_id: str) -> Optional[int]:
        return self._last_issued.get(pool_id.lower())

    @asynccontextmanager
    async def _pool_lock(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                del self._locks[key]

    async def _next_nonce(self, key: str) -> int:
        cached = self._last_issued.get(key)
        if cached is not None:
            return cached + 1
        persisted = await self._repo.max_nonce(key)
        return (persisted or 0) + 1

    async def issue(self, pool_id: str, persist: Callable[[int], Awaitable[T]]) -> T:
        """
        Run `persist(nonce)` with the pool's next nonce.

        The nonce only counts as issued once persist succeeds. If storage
        rejects it as a duplicate the cache is dropped and the next nonce
        is re-read from storage.
        """
        key = pool_id.lower()
        async with self._pool_lock(key):
            for attempt in range(1, self._max_attempts + 1):
                nonce = await self._next_nonce(key)
                try:
                    result = await persist(nonce)
                except asyncpg.UniqueViolationError:
                    logger.warning(
                        f"Nonce {nonce} for pool {key[:10]}... already stored "
                        f"(attempt {attempt}/{self._max_attempts}), resyncing"
                    )
                    self._last_issued.pop(key, None)
                    continue
                self._last_issued[key] = nonce
                return result

        raise InvariantViolationError(
            f"Could not allocate a nonce for pool {pool_id} after {self._max_attempts} attempts"
        )


class ScoreSigner:
    """
    Signs pair scores and records them.

    Usage:
        signer = ScoreSigner(MessageSigner(key), PairScoreRepository(db))
        signed = await signer.sign_pair_score(pair)
    """

    def __init__(
        self,
        message_signer: MessageSigner,
        repository: "PairScoreRepository",
        nonces: Optional[NonceAllocator] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._signer = message_signer
        self._repo = repository
        self._nonces = nonces or NonceAllocator(repository)
        self._clock = clock

    @property
    def is_ready(self) -> bool:
        return self._signer.is_ready

    @property
    def address(self) -> Optional[str]:
        return self._signer.address

    async def sign_pair_score(self, pair: PairScore) -> SignedScore:
        """
        Sign a pair score with the pool's next nonce and store the audit record.

        Raises:
            ConfigurationError: If no signing key is configured
        """
        if not self._signer.is_ready:
            raise ConfigurationError("Cannot sign pair score: signer not configured")
        timestamp = int(self._clock())

        async def _sign_and_store(nonce: int) -> SignedScore:
            message_hash = pair_message_hash(pair.pool_id, pair.pair_score, timestamp, nonce)
            signature = self._signer.sign_hash(message_hash)
            await self._repo.create(
                PairScoreRecord(
                    pool_id=pair.pool_id,
                    token_x_symbol=pair.symbol_x,
                    token_y_symbol=pair.symbol_y,
                    token_x_score=pair.score_x,
                    token_y_score=pair.score_y,
                    pair_score=pair.pair_score,
                    timestamp=timestamp,
                    nonce=nonce,
                    signature=signature,
                )
            )
            return SignedScore(
                pool_id=pair.pool_id,
                score=pair.pair_score,
                timestamp=timestamp,
                nonce=nonce,
                signature=signature,
                symbol_x=pair.symbol_x,
                symbol_y=pair.symbol_y,
                score_x=pair.score_x,
                score_y=pair.score_y,
            )

        signed = await self._nonces.issue(pair.pool_id, _sign_and_store)
        logger.info(
            f"Signed pair score for {pair.symbol_x}/{pair.symbol_y}: "
            f"X={pair.score_x}, Y={pair.score_y}, pair={pair.pair_score}, nonce={signed.nonce}"
        )
        return signed

    def verify_pair_signature(self, signed: SignedScore, expected_address: Optional[str] = None) -> bool:
        """Recompute the pair hash and check who signed it."""
        address = expected_address or self._signer.address
        if address is None:
            return False
        message_hash = pair_message_hash(signed.pool_id, signed.score, signed.timestamp, signed.nonce)
        return MessageSigner.verify(message_hash, signed.signature, address)

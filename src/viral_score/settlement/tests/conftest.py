"""
Settlement test fixtures.

The reporter, snapshot repository and liquidity client are mocks; the
signer is real so signatures can be checked.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from viral_score.chain.models import SubmissionReceipt
from viral_score.ingestion import PoolInfo, TokenPools
from viral_score.scoring import TokenScore, TokenScoreStore
from viral_score.settlement import EpochCoordinator, epoch_for
from viral_score.signing import MessageSigner
from viral_score.storage.models import TokenScoreSnapshot

TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
QUOTE = "0x653e645e3d81a72e71328bc01a04002945e3ef7a"

# 2025-06-01 12:20 UTC, twenty minutes into epoch 485772
NOW = datetime(2025, 6, 1, 12, 20, 0, tzinfo=timezone.utc)
CURRENT_EPOCH = epoch_for(NOW)


def token(symbol, address_byte, bin_steps, name=None):
    return TokenPools(
        token_address="0x" + address_byte * 20,
        symbol=symbol,
        name=name or symbol.title(),
        quote_token_address=QUOTE,
        pools=tuple(
            PoolInfo(bin_step=b, tvl_usd=1000.0 - i, pair_address="0x" + "00" * 20)
            for i, b in enumerate(bin_steps)
        ),
    )


def snapshot(symbol, score, hour):
    return TokenScoreSnapshot(token_symbol=symbol, snapshot_hour=hour, score=score)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    store = TokenScoreStore()
    store.update_cycle({
        "PEPE": TokenScore.of("PEPE", 8000),
        "DOGE": TokenScore.of("DOGE", 6000),
        "WIF": TokenScore.of("WIF", 4000),
        "BONK": TokenScore.of("BONK", 2000),
        "M": TokenScore.of("M", 9999),
    })
    return store


@pytest.fixture
def tokens():
    return [
        token("PEPE", "aa", [25, 100, 10, 50]),
        token("DOGE", "bb", [20, 40, 80]),
        token("WIF", "cc", [15, 30]),
        token("BONK", "dd", [5]),
    ]


@pytest.fixture
def reporter():
    reporter = AsyncMock()
    reporter.current_epoch = AsyncMock(return_value=CURRENT_EPOCH)
    reporter.last_submitted_epoch = AsyncMock(return_value=CURRENT_EPOCH - 1)
    reporter.active_viral_pairs_count = AsyncMock(return_value=6)
    reporter.check_signer = AsyncMock(return_value=True)
    reporter.submit_epoch = AsyncMock(
        side_effect=lambda epoch, pairs, signature: SubmissionReceipt(
            epoch=epoch, tx_hash="0x" + "12" * 32, pairs_count=len(pairs), block_number=1
        )
    )
    return reporter


@pytest.fixture
def snapshots():
    repo = MagicMock()
    repo.get_for_hour = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def liquidity(tokens):
    client = MagicMock()
    client.get_token_pools = AsyncMock(return_value=tokens)
    return client


@pytest.fixture
def signer():
    return MessageSigner(TEST_PRIVATE_KEY)


@pytest.fixture
def coordinator(reporter, signer, snapshots, liquidity, store):
    return EpochCoordinator(reporter, signer, snapshots, liquidity, store, clock=lambda: NOW)

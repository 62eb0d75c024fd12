"""
Integration test fixtures.

Wires a complete ViralScoreService from real components: engine, score
store, signer, Merkle builder and epoch coordinator. Only storage (in
memory), the chain and the liquidity indexer are replaced.
"""
import pytest

from viral_score.core import ViralScoreService
from viral_score.merkle import MerkleCheckpointBuilder
from viral_score.scoring import ScoreEngine, TokenScoreStore
from viral_score.settlement import EpochCoordinator
from viral_score.signing import MessageSigner, ScoreSigner

from ..conftest import (
    NOW,
    TEST_PRIVATE_KEY,
    MemoryCheckpointRepository,
    MemoryPairScoreRepository,
    MemoryRollupRepository,
    MemorySnapshotRepository,
)

pytestmark = pytest.mark.integration


@pytest.fixture
def message_signer():
    return MessageSigner(TEST_PRIVATE_KEY)


@pytest.fixture
def pair_score_repo():
    return MemoryPairScoreRepository()


@pytest.fixture
def checkpoint_repo():
    return MemoryCheckpointRepository()


@pytest.fixture
def snapshot_repo():
    return MemorySnapshotRepository()


@pytest.fixture
def rollup_repo():
    return MemoryRollupRepository()


@pytest.fixture
def store():
    return TokenScoreStore()


@pytest.fixture
def coordinator(mock_reporter, message_signer, snapshot_repo, mock_liquidity, store):
    return EpochCoordinator(
        reporter=mock_reporter,
        signer=message_signer,
        snapshots=snapshot_repo,
        liquidity=mock_liquidity,
        store=store,
        clock=lambda: NOW,
    )


@pytest.fixture
def oracle(
    store,
    mock_metric_source,
    message_signer,
    pair_score_repo,
    checkpoint_repo,
    coordinator,
    snapshot_repo,
    rollup_repo,
):
    return ViralScoreService(
        engine=ScoreEngine(),
        store=store,
        metric_source=mock_metric_source,
        signer=ScoreSigner(message_signer, pair_score_repo),
        checkpoints=MerkleCheckpointBuilder(checkpoint_repo),
        coordinator=coordinator,
        snapshots=snapshot_repo,
        rollups=rollup_repo,
        clock=lambda: NOW,
    )

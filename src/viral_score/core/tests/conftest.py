"""
Core layer test fixtures.

The engine and score store are real; every other collaborator of the
service is a mock.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from viral_score.core import ViralScoreService
from viral_score.scoring import AggregatedMetrics, ScoreEngine, TokenScoreStore
from viral_score.settlement import SubmissionOutcome, SubmissionStatus

NOW = datetime(2025, 6, 1, 12, 20, 0, tzinfo=timezone.utc)


def metrics(symbol, posts=10, views=1000, likes=50, age_hours=1.0):
    return AggregatedMetrics(
        symbol=symbol,
        post_count=posts,
        view_count=views,
        like_count=likes,
        unique_user_count=posts,
        latest_post_time=NOW - timedelta(hours=age_hours),
    )


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def engine():
    return ScoreEngine()


@pytest.fixture
def store():
    return TokenScoreStore()


@pytest.fixture
def metric_source():
    source = MagicMock()
    source.collect = AsyncMock(return_value=[
        metrics("PEPE", posts=40, views=20000, likes=900),
        metrics("DOGE", posts=20, views=8000, likes=300),
        metrics("WIF", posts=5, views=500, likes=10),
    ])
    return source


@pytest.fixture
def score_signer():
    signer = MagicMock()
    signer.is_ready = True
    signer.address = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
    signer.sign_pair_score = AsyncMock(side_effect=lambda pair: {"pool": pair.pool_id})
    return signer


@pytest.fixture
def checkpoints():
    builder = MagicMock()
    builder.build = AsyncMock(return_value=MagicMock(epoch=1, leaf_count=3))
    builder.get_proof = AsyncMock(return_value=None)
    builder.verify_proof = MagicMock(return_value=True)
    builder.latest = AsyncMock(return_value=None)
    return builder


@pytest.fixture
def coordinator():
    coordinator = MagicMock()
    coordinator.submit = AsyncMock(
        return_value=SubmissionOutcome(status=SubmissionStatus.SUBMITTED, epoch=485772, tx_hash="0xabc")
    )
    coordinator.reconcile = AsyncMock(
        return_value=SubmissionOutcome(status=SubmissionStatus.ALREADY_SUBMITTED, epoch=485772)
    )
    coordinator.status = AsyncMock()
    return coordinator


@pytest.fixture
def snapshots():
    repo = MagicMock()
    repo.upsert_many = AsyncMock(side_effect=lambda rows: len(rows))
    repo.get_between = AsyncMock(return_value=[])
    return repo


@pytest.fixture
def rollups():
    repo = MagicMock()
    repo.upsert = AsyncMock(side_effect=lambda rollup: rollup)
    return repo


@pytest.fixture
def service(engine, store, metric_source, score_signer, checkpoints, coordinator, snapshots, rollups):
    return ViralScoreService(
        engine=engine,
        store=store,
        metric_source=metric_source,
        signer=score_signer,
        checkpoints=checkpoints,
        coordinator=coordinator,
        snapshots=snapshots,
        rollups=rollups,
        cache_limit=2,
        checkpoint_top_tokens=20,
        clock=lambda: NOW,
    )

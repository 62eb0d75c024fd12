"""
Shared test fixtures for integration tests.

This file provides fixtures that span multiple components, unlike the
component-specific fixtures in src/viral_score/{component}/tests/conftest.py.
Storage is replaced by in-memory repositories that enforce the same
uniqueness rules as the PostgreSQL schema; chain and liquidity are mocks.
"""
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest

from viral_score.chain.models import SubmissionReceipt
from viral_score.ingestion import PoolInfo, TokenPools
from viral_score.scoring import AggregatedMetrics

TEST_PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
TEST_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
QUOTE = "0x653e645e3d81a72e71328bc01a04002945e3ef7a"

# 2025-06-01 12:20 UTC, inside epoch 485772
NOW = datetime(2025, 6, 1, 12, 20, 0, tzinfo=timezone.utc)


# =============================================================================
# In-memory repositories
# =============================================================================


class MemoryPairScoreRepository:
    """Unique (pool_id, nonce), like the pair_scores table."""

    def __init__(self):
        self.records = []

    async def create(self, record):
        await asyncio.sleep(0)
        if any(r.pool_id == record.pool_id and r.nonce == record.nonce for r in self.records):
            raise asyncpg.UniqueViolationError("duplicate key value violates unique constraint")
        self.records.append(record)
        return record

    async def max_nonce(self, pool_id):
        nonces = [r.nonce for r in self.records if r.pool_id == pool_id]
        return max(nonces) if nonces else None


class MemoryCheckpointRepository:
    """Unique epoch; create() returns None when the epoch is taken."""

    def __init__(self):
        self.records = {}

    async def latest_epoch(self):
        return max(self.records) if self.records else None

    async def create(self, checkpoint):
        await asyncio.sleep(0)
        if checkpoint.epoch in self.records:
            return None
        stored = checkpoint.model_copy(update={"created_at": datetime.now(timezone.utc)})
        self.records[checkpoint.epoch] = stored
        return stored

    async def get_by_epoch(self, epoch):
        return self.records.get(epoch)

    async def get_latest(self):
        return self.records[max(self.records)] if self.records else None

    async def list_recent(self, limit=10):
        return [self.records[e] for e in sorted(self.records, reverse=True)][:limit]


class MemorySnapshotRepository:
    """Upserts keyed by (token_symbol, snapshot_hour)."""

    def __init__(self):
        self.rows = {}

    async def upsert_many(self, snapshots):
        for s in snapshots:
            self.rows[(s.token_symbol, s.snapshot_hour)] = s
        return len(snapshots)

    async def get_for_hour(self, snapshot_hour):
        rows = [s for (_, hour), s in self.rows.items() if hour == snapshot_hour]
        return sorted(rows, key=lambda s: s.score, reverse=True)

    async def get_between(self, start, end):
        return [s for (_, hour), s in self.rows.items() if start <= hour < end]


class MemoryRollupRepository:

    def __init__(self):
        self.rows = {}

    async def upsert(self, rollup):
        self.rows[(rollup.token_symbol, rollup.snapshot_date)] = rollup
        return rollup


# =============================================================================
# Builders
# =============================================================================


def make_metrics(symbol, posts, views, likes, age_hours=1.0):
    return AggregatedMetrics(
        symbol=symbol,
        post_count=posts,
        view_count=views,
        like_count=likes,
        unique_user_count=posts,
        latest_post_time=NOW - timedelta(hours=age_hours),
    )


def make_token(symbol, address_byte, bin_steps):
    return TokenPools(
        token_address="0x" + address_byte * 20,
        symbol=symbol,
        name=symbol.title(),
        quote_token_address=QUOTE,
        pools=tuple(
            PoolInfo(bin_step=b, tvl_usd=1000.0 - i, pair_address="0x" + "00" * 20)
            for i, b in enumerate(bin_steps)
        ),
    )


# =============================================================================
# External collaborator fixtures
# =============================================================================


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def collected_metrics():
    """Four tokens with clearly separated engagement, plus a blacklisted one."""
    return [
        make_metrics("PEPE", posts=8, views=4000, likes=300),
        make_metrics("DOGE", posts=6, views=2500, likes=150),
        make_metrics("WIF", posts=4, views=1200, likes=60),
        make_metrics("BONK", posts=2, views=300, likes=10),
        make_metrics("M", posts=10, views=9000, likes=900),
    ]


@pytest.fixture
def mock_metric_source(collected_metrics):
    source = MagicMock()
    source.collect = AsyncMock(return_value=collected_metrics)
    return source


@pytest.fixture
def mock_liquidity():
    client = MagicMock()
    client.get_token_pools = AsyncMock(return_value=[
        make_token("PEPE", "aa", [25, 100, 10, 50]),
        make_token("DOGE", "bb", [20, 40, 80]),
        make_token("WIF", "cc", [15, 30]),
        make_token("BONK", "dd", [5]),
        make_token("M", "ee", [1]),
    ])
    return client


@pytest.fixture
def mock_reporter():
    """Contract at epoch 485772 with 485771 already settled."""
    reporter = MagicMock()
    reporter.current_epoch = AsyncMock(return_value=485772)
    reporter.last_submitted_epoch = AsyncMock(return_value=485771)
    reporter.active_viral_pairs_count = AsyncMock(return_value=0)
    reporter.check_signer = AsyncMock(return_value=True)
    reporter.submit_epoch = AsyncMock(
        side_effect=lambda epoch, pairs, signature: SubmissionReceipt(
            epoch=epoch, tx_hash="0x" + "ab" * 32, pairs_count=len(pairs), block_number=7
        )
    )
    return reporter

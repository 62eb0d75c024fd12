"""
Merkle layer test fixtures.

FakeCheckpointRepository keeps checkpoints in memory but enforces the
unique epoch rule the same way the database does, and yields to the
event loop between read and write so concurrent builders interleave.
"""
import asyncio
from datetime import datetime, timezone

import pytest

from viral_score.merkle import MerkleCheckpointBuilder
from viral_score.scoring import pool_id


class FakeCheckpointRepository:
    """In-memory stand-in for CheckpointRepository."""

    def __init__(self):
        self.records = {}
        self.create_calls = 0

    async def latest_epoch(self):
        await asyncio.sleep(0)
        return max(self.records) if self.records else None

    async def create(self, checkpoint):
        await asyncio.sleep(0)
        self.create_calls += 1
        if checkpoint.epoch in self.records:
            return None
        stored = checkpoint.model_copy(
            update={"id": len(self.records) + 1, "created_at": datetime.now(timezone.utc)}
        )
        self.records[checkpoint.epoch] = stored
        return stored

    async def get_by_epoch(self, epoch):
        return self.records.get(epoch)

    async def get_latest(self):
        return self.records[max(self.records)] if self.records else None

    async def list_recent(self, limit=10):
        return [self.records[e] for e in sorted(self.records, reverse=True)][:limit]


@pytest.fixture
def checkpoint_repo():
    return FakeCheckpointRepository()


@pytest.fixture
def builder(checkpoint_repo):
    return MerkleCheckpointBuilder(checkpoint_repo)


@pytest.fixture
def pair_scores():
    """pool_id -> score for a handful of pairs."""
    return {
        pool_id("PEPE", "DOGE"): 6000,
        pool_id("PEPE", "WIF"): 4500,
        pool_id("DOGE", "WIF"): 3000,
        pool_id("CAT", "DOGE"): 120,
        pool_id("CAT", "PEPE"): 9999,
    }

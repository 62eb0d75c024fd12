"""
Merkle checkpoint repository.

epoch is unique. create() uses ON CONFLICT DO NOTHING so a lost race
shows up as a None return instead of an exception.
"""
from __future__ import annotations

from typing import Optional

from viral_score.storage.models import MerkleCheckpointRecord
from viral_score.storage.repositories.base import BaseRepository


class CheckpointRepository(BaseRepository[MerkleCheckpointRecord]):
    """Persisted Merkle roots and their leaf sets."""

    table_name = "merkle_checkpoints"
    model_class = MerkleCheckpointRecord

    async def latest_epoch(self) -> Optional[int]:
        """Highest persisted checkpoint epoch, None if there are none."""
        return await self._max("epoch")

    async def create(self, checkpoint: MerkleCheckpointRecord) -> Optional[MerkleCheckpointRecord]:
        """
        Persist a checkpoint under its epoch.

        Returns:
            The stored record, or None if the epoch was already taken
        """
        query = """
            INSERT INTO merkle_checkpoints (epoch, root, pool_count, tree_data)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (epoch) DO NOTHING
            RETURNING *
        """
        row = await self.db.fetchrow(
            query,
            checkpoint.epoch,
            checkpoint.root,
            checkpoint.pool_count,
            checkpoint.tree_data,
        )
        return self._to_model(row)

    async def get_by_epoch(self, epoch: int) -> Optional[MerkleCheckpointRecord]:
        query = "SELECT * FROM merkle_checkpoints WHERE epoch = $1"
        return await self._fetch_one(query, epoch)

    async def get_latest(self) -> Optional[MerkleCheckpointRecord]:
        query = "SELECT * FROM merkle_checkpoints ORDER BY epoch DESC LIMIT 1"
        return await self._fetch_one(query)

    async def list_recent(self, limit: int = 10) -> list[MerkleCheckpointRecord]:
        query = "SELECT * FROM merkle_checkpoints ORDER BY epoch DESC LIMIT $1"
        return await self._fetch_all(query, limit)

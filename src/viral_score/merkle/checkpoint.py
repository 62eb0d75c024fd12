"""
Merkle checkpoint builder.

Batches pair scores into a StandardMerkleTree, persists root and leaves
under the next internal checkpoint epoch, and serves proofs by
rebuilding trees from the persisted leaves.

Epoch assignment reads the last persisted epoch and writes epoch + 1.
Within one process builds are serialized by a lock; across processes
the unique epoch column decides, and a lost race is retried with a
fresh read.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Mapping, Optional

from viral_score.errors import EmptyBatchError, InvariantViolationError
from viral_score.merkle.tree import MerkleLeaf, MerkleProof, StandardMerkleTree, verify_proof
from viral_score.storage.models import MerkleCheckpointRecord

if TYPE_CHECKING:
    from viral_score.storage.repositories import CheckpointRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CheckpointResult:
    """Outcome of a successful build."""
    root: str
    epoch: int
    leaf_count: int
    created_at: Optional[datetime] = None


def serialize_leaves(tree: StandardMerkleTree) -> str:
    return json.dumps(
        {
            "leaves": [
                {"poolId": leaf.pool_id, "score": str(leaf.score), "epoch": str(leaf.epoch)}
                for leaf in tree.leaves
            ],
            "root": tree.root,
        }
    )


def tree_from_record(record: MerkleCheckpointRecord) -> StandardMerkleTree:
    """Rebuild a checkpoint's tree from its stored leaves."""
    leaves = [
        MerkleLeaf(pool_id=leaf.pool_id, score=int(leaf.score), epoch=int(leaf.epoch))
        for leaf in record.leaf_data()
    ]
    tree = StandardMerkleTree(leaves)
    if tree.root.lower() != record.root.lower():
        raise InvariantViolationError(
            f"Checkpoint {record.epoch} leaves rebuild to {tree.root}, stored root is {record.root}"
        )
    return tree


class MerkleCheckpointBuilder:
    """
    Builds, persists and proves Merkle checkpoints.

    Usage:
        builder = MerkleCheckpointBuilder(CheckpointRepository(db))
        result = await builder.build({pool_id: 6000, ...})
        proof = await builder.get_proof(pool_id)
        assert builder.verify_proof(proof)
    """

    def __init__(
        self,
        repository: "CheckpointRepository",
        max_epoch_attempts: int = 5,
    ) -> None:
        self._repo = repository
        self._max_epoch_attempts = max_epoch_attempts
        self._build_lock = asyncio.Lock()
        # Most recent tree, so proofs for the latest epoch skip the rebuild
        self._cached_epoch: Optional[int] = None
        self._cached_tree: Optional[StandardMerkleTree] = None

    async def next_epoch(self) -> int:
        last = await self._repo.latest_epoch()
        return (last or 0) + 1

    async def build(self, pair_scores: Mapping[str, int]) -> CheckpointResult:
        """
        Commit the given pool_id -> score mapping as a new checkpoint.

        Raises:
            EmptyBatchError: If pair_scores is empty
            InvariantViolationError: If no epoch could be claimed
        """
        if not pair_scores:
            raise EmptyBatchError("Cannot build merkle checkpoint with no scores")

        async with self._build_lock:
            for attempt in range(1, self._max_epoch_attempts + 1):
                epoch = await self.next_epoch()
                tree = StandardMerkleTree(
                    MerkleLeaf(pool_id=pid, score=int(score), epoch=epoch)
                    for pid, score in pair_scores.items()
                )
                stored = await self._repo.create(
                    MerkleCheckpointRecord(
                        epoch=epoch,
                        root=tree.root,
                        pool_count=len(tree),
                        tree_data=serialize_leaves(tree),
                    )
                )
                if stored is None:
                    logger.warning(
                        f"Checkpoint epoch {epoch} already taken (attempt {attempt}/"
                        f"{self._max_epoch_attempts}), re-reading last epoch"
                    )
                    continue

                self._cached_epoch, self._cached_tree = epoch, tree
                logger.info(
                    f"Built checkpoint: epoch={epoch}, pools={len(tree)}, root={tree.root[:18]}..."
                )
                return CheckpointResult(
                    root=tree.root,
                    epoch=epoch,
                    leaf_count=len(tree),
                    created_at=stored.created_at,
                )

        raise InvariantViolationError(
            f"Could not claim a checkpoint epoch after {self._max_epoch_attempts} attempts"
        )

    async def _load_tree(self, epoch: Optional[int]) -> Optional[tuple[int, StandardMerkleTree]]:
        if epoch is not None and epoch == self._cached_epoch and self._cached_tree is not None:
            return epoch, self._cached_tree

        record = (
            await self._repo.get_by_epoch(epoch)
            if epoch is not None
            else await self._repo.get_latest()
        )
        if record is None:
            return None
        if record.epoch == self._cached_epoch and self._cached_tree is not None:
            return record.epoch, self._cached_tree
        return record.epoch, tree_from_record(record)

    async def get_proof(self, pool_id: str, epoch: Optional[int] = None) -> Optional[MerkleProof]:
        """
        Proof for a pool in the given checkpoint (latest if epoch is None).

        Returns None when the epoch or the pool is unknown.
        """
        loaded = await self._load_tree(epoch)
        if loaded is None:
            logger.info(f"No checkpoint found (epoch={epoch})")
            return None

        found_epoch, tree = loaded
        proof = tree.get_proof(pool_id)
        if proof is None:
            logger.info(f"Pool {pool_id} not in checkpoint {found_epoch}")
        return proof

    @staticmethod
    def verify_proof(proof: MerkleProof) -> bool:
        return verify_proof(proof)

    async def latest(self) -> Optional[MerkleCheckpointRecord]:
        return await self._repo.get_latest()

    async def list_checkpoints(self, limit: int = 10) -> list[MerkleCheckpointRecord]:
        return await self._repo.list_recent(min(limit, 50))

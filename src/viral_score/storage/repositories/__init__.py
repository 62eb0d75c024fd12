"""
Repository exports.
"""
from viral_score.storage.repositories.checkpoint_repo import CheckpointRepository
from viral_score.storage.repositories.pair_score_repo import PairScoreRepository
from viral_score.storage.repositories.post_repo import SocialPostRepository
from viral_score.storage.repositories.snapshot_repo import (
    DailyRollupRepository,
    SnapshotRepository,
)

__all__ = [
    # Signing
    "PairScoreRepository",
    # Checkpoints
    "CheckpointRepository",
    # Snapshots
    "SnapshotRepository",
    "DailyRollupRepository",
    # Collection
    "SocialPostRepository",
]

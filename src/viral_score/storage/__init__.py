"""
Storage Layer - Async PostgreSQL database and repositories.

Built on asyncpg. Every uniqueness rule the oracle relies on is a
database constraint (see schema.py).

Public API:
    Database, DatabaseConfig - Connection pool management
    apply_schema - Idempotent DDL

    Models:
        SocialPostRecord
        PairScoreRecord
        MerkleCheckpointRecord, CheckpointLeafData
        TokenScoreSnapshot, TokenScoreDaily

    Repositories:
        SocialPostRepository
        PairScoreRepository
        CheckpointRepository
        SnapshotRepository, DailyRollupRepository
"""
from viral_score.storage.database import Database, DatabaseConfig
from viral_score.storage.models import (
    CheckpointLeafData,
    MerkleCheckpointRecord,
    PairScoreRecord,
    SocialPostRecord,
    TokenScoreDaily,
    TokenScoreSnapshot,
)
from viral_score.storage.repositories import (
    CheckpointRepository,
    DailyRollupRepository,
    PairScoreRepository,
    SnapshotRepository,
    SocialPostRepository,
)
from viral_score.storage.schema import apply_schema

__all__ = [
    # Database
    "Database",
    "DatabaseConfig",
    "apply_schema",
    # Models
    "CheckpointLeafData",
    "MerkleCheckpointRecord",
    "PairScoreRecord",
    "SocialPostRecord",
    "TokenScoreDaily",
    "TokenScoreSnapshot",
    # Repositories
    "CheckpointRepository",
    "DailyRollupRepository",
    "PairScoreRepository",
    "SnapshotRepository",
    "SocialPostRepository",
]

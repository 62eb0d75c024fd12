"""
Pydantic models matching the PostgreSQL schema in schema.py.

Field names match column names so repositories can build models
directly from asyncpg records.
"""
from __future__ import annotations

import json
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# COLLECTED POSTS
# =============================================================================


class SocialPostRecord(BaseModel):
    """One collected social post and the token symbols it mentions."""

    id: Optional[int] = None
    post_id: int
    user_id: int
    user_name: Optional[str] = None
    user_is_pre_ordered: bool = False
    content_type: str = "POST"
    view_count: int = 0
    like_count: int = 0
    repost_count: int = 0
    reply_count: int = 0
    bonding_curve_progress: float = 0.0
    price_fluctuation_range: float = 0.0
    has_image: bool = False
    token_symbols: str = "[]"  # JSON array
    post_created_at: datetime
    processed_at: Optional[datetime] = None

    @property
    def symbols(self) -> list[str]:
        return json.loads(self.token_symbols or "[]")


# =============================================================================
# SIGNED SCORES
# =============================================================================


class PairScoreRecord(BaseModel):
    """Signed pair score, kept as an audit record."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    pool_id: str
    token_x_symbol: str
    token_y_symbol: str
    token_x_score: int
    token_y_score: int
    pair_score: int
    timestamp: int
    nonce: int
    signature: str
    created_at: Optional[datetime] = None


# =============================================================================
# MERKLE CHECKPOINTS
# =============================================================================


class CheckpointLeafData(BaseModel):
    """Serialized leaf as stored in tree_data."""

    pool_id: str = Field(alias="poolId")
    score: str
    epoch: str

    model_config = ConfigDict(populate_by_name=True)


class MerkleCheckpointRecord(BaseModel):
    """Persisted checkpoint: root plus every leaf needed to rebuild it."""

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    epoch: int
    root: str
    pool_count: int
    tree_data: str
    created_at: Optional[datetime] = None

    def leaf_data(self) -> list[CheckpointLeafData]:
        data = json.loads(self.tree_data)
        return [CheckpointLeafData(**leaf) for leaf in data.get("leaves", [])]


# =============================================================================
# SCORE SNAPSHOTS
# =============================================================================


class TokenScoreSnapshot(BaseModel):
    """Score and raw metrics of one token at an hour boundary."""

    id: Optional[int] = None
    token_symbol: str
    snapshot_hour: datetime
    score: int
    raw_posts: int = 0
    raw_views: int = 0
    raw_likes: int = 0
    raw_reposts: int = 0
    raw_replies: int = 0
    raw_unique_users: int = 0
    avg_bonding_curve: float = 0.0
    graduated_ratio: float = 0.0
    image_ratio: float = 0.0
    created_at: Optional[datetime] = None


class TokenScoreDaily(BaseModel):
    """Daily rollup of a token's hourly snapshots."""

    id: Optional[int] = None
    token_symbol: str
    snapshot_date: date
    avg_score: int
    max_score: int
    min_score: int
    total_posts: int = 0
    total_views: int = 0
    total_likes: int = 0
    total_reposts: int = 0
    created_at: Optional[datetime] = None

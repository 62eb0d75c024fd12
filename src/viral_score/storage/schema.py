"""
PostgreSQL schema for the oracle's durable records.

Uniqueness constraints here are the final arbiter for concurrent
writers: (pool_id, nonce) for signed scores, epoch for checkpoints,
(token_symbol, snapshot_hour) and (token_symbol, snapshot_date) for
snapshots, post_id for collected posts.
"""
from __future__ import annotations

import logging

from viral_score.storage.database import Database

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS social_posts (
    id SERIAL PRIMARY KEY,
    post_id BIGINT NOT NULL UNIQUE,
    user_id BIGINT NOT NULL,
    user_name VARCHAR(64),
    user_is_pre_ordered BOOLEAN NOT NULL DEFAULT FALSE,
    content_type VARCHAR(16) NOT NULL DEFAULT 'POST',
    view_count INTEGER NOT NULL DEFAULT 0,
    like_count INTEGER NOT NULL DEFAULT 0,
    repost_count INTEGER NOT NULL DEFAULT 0,
    reply_count INTEGER NOT NULL DEFAULT 0,
    bonding_curve_progress REAL NOT NULL DEFAULT 0,
    price_fluctuation_range REAL NOT NULL DEFAULT 0,
    has_image BOOLEAN NOT NULL DEFAULT FALSE,
    token_symbols TEXT NOT NULL DEFAULT '[]',
    post_created_at TIMESTAMPTZ NOT NULL,
    processed_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS social_posts_created_at_idx ON social_posts (post_created_at);

CREATE TABLE IF NOT EXISTS pair_scores (
    id SERIAL PRIMARY KEY,
    pool_id VARCHAR(66) NOT NULL,
    token_x_symbol VARCHAR(32) NOT NULL,
    token_y_symbol VARCHAR(32) NOT NULL,
    token_x_score INTEGER NOT NULL,
    token_y_score INTEGER NOT NULL,
    pair_score INTEGER NOT NULL,
    timestamp BIGINT NOT NULL,
    nonce BIGINT NOT NULL,
    signature TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT pair_scores_pool_nonce_key UNIQUE (pool_id, nonce)
);
CREATE INDEX IF NOT EXISTS pair_scores_pool_timestamp_idx ON pair_scores (pool_id, timestamp);

CREATE TABLE IF NOT EXISTS merkle_checkpoints (
    id SERIAL PRIMARY KEY,
    epoch INTEGER NOT NULL UNIQUE,
    root VARCHAR(66) NOT NULL,
    pool_count INTEGER NOT NULL,
    tree_data TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS merkle_root_idx ON merkle_checkpoints (root);

CREATE TABLE IF NOT EXISTS token_score_snapshots (
    id SERIAL PRIMARY KEY,
    token_symbol VARCHAR(32) NOT NULL,
    snapshot_hour TIMESTAMPTZ NOT NULL,
    score INTEGER NOT NULL,
    raw_posts INTEGER NOT NULL DEFAULT 0,
    raw_views INTEGER NOT NULL DEFAULT 0,
    raw_likes INTEGER NOT NULL DEFAULT 0,
    raw_reposts INTEGER NOT NULL DEFAULT 0,
    raw_replies INTEGER NOT NULL DEFAULT 0,
    raw_unique_users INTEGER NOT NULL DEFAULT 0,
    avg_bonding_curve REAL NOT NULL DEFAULT 0,
    graduated_ratio REAL NOT NULL DEFAULT 0,
    image_ratio REAL NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT token_score_snapshots_symbol_hour_key UNIQUE (token_symbol, snapshot_hour)
);
CREATE INDEX IF NOT EXISTS token_score_snapshots_hour_idx ON token_score_snapshots (snapshot_hour);

CREATE TABLE IF NOT EXISTS token_score_daily (
    id SERIAL PRIMARY KEY,
    token_symbol VARCHAR(32) NOT NULL,
    snapshot_date DATE NOT NULL,
    avg_score INTEGER NOT NULL,
    max_score INTEGER NOT NULL,
    min_score INTEGER NOT NULL,
    total_posts INTEGER NOT NULL DEFAULT 0,
    total_views INTEGER NOT NULL DEFAULT 0,
    total_likes INTEGER NOT NULL DEFAULT 0,
    total_reposts INTEGER NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    CONSTRAINT token_score_daily_symbol_date_key UNIQUE (token_symbol, snapshot_date)
);
"""

TABLES = (
    "social_posts",
    "pair_scores",
    "merkle_checkpoints",
    "token_score_snapshots",
    "token_score_daily",
)


async def apply_schema(db: Database) -> None:
    """Create all tables and indexes if they do not exist."""
    async with db.transaction() as conn:
        await conn.execute(SCHEMA_SQL)
    logger.info(f"Schema applied ({len(TABLES)} tables)")

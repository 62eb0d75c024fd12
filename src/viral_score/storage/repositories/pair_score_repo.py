"""
Signed pair score repository.

(pool_id, nonce) is unique: a second record for the same nonce is
rejected by the database with asyncpg.UniqueViolationError, which the
nonce allocator treats as "nonce already taken".
"""
from __future__ import annotations

from typing import Optional

from viral_score.storage.models import PairScoreRecord
from viral_score.storage.repositories.base import BaseRepository


class PairScoreRepository(BaseRepository[PairScoreRecord]):
    """Audit log of every signed pair score."""

    table_name = "pair_scores"
    model_class = PairScoreRecord

    async def create(self, record: PairScoreRecord) -> PairScoreRecord:
        """
        Insert a signed score.

        Raises:
            asyncpg.UniqueViolationError: If (pool_id, nonce) already exists
        """
        query = """
            INSERT INTO pair_scores
            (pool_id, token_x_symbol, token_y_symbol, token_x_score, token_y_score,
             pair_score, timestamp, nonce, signature)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            RETURNING *
        """
        row = await self.db.fetchrow(
            query,
            record.pool_id,
            record.token_x_symbol,
            record.token_y_symbol,
            record.token_x_score,
            record.token_y_score,
            record.pair_score,
            record.timestamp,
            record.nonce,
            record.signature,
        )
        return self._to_model(row) if row else record

    async def max_nonce(self, pool_id: str) -> Optional[int]:
        """Highest persisted nonce for a pool, None if never signed."""
        return await self._max("nonce", "pool_id = $1", pool_id)

    async def latest_for_pool(self, pool_id: str) -> Optional[PairScoreRecord]:
        query = """
            SELECT * FROM pair_scores
            WHERE pool_id = $1
            ORDER BY nonce DESC
            LIMIT 1
        """
        return await self._fetch_one(query, pool_id)

    async def list_for_pool(self, pool_id: str, limit: int = 50) -> list[PairScoreRecord]:
        query = """
            SELECT * FROM pair_scores
            WHERE pool_id = $1
            ORDER BY nonce DESC
            LIMIT $2
        """
        return await self._fetch_all(query, pool_id, limit)

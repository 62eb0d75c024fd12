"""
Hourly and daily score snapshot repositories.

Hourly rows are unique per (token_symbol, snapshot_hour) and daily rows
per (token_symbol, snapshot_date); re-running a snapshot job overwrites
the row for that key.
"""
from __future__ import annotations

from datetime import date, datetime
from typing import Sequence

from viral_score.storage.models import TokenScoreDaily, TokenScoreSnapshot
from viral_score.storage.repositories.base import BaseRepository


class SnapshotRepository(BaseRepository[TokenScoreSnapshot]):
    """Hourly token score snapshots."""

    table_name = "token_score_snapshots"
    model_class = TokenScoreSnapshot

    async def upsert_many(self, snapshots: Sequence[TokenScoreSnapshot]) -> int:
        """Insert or overwrite snapshots by (token_symbol, snapshot_hour)."""
        if not snapshots:
            return 0
        query = """
            INSERT INTO token_score_snapshots
            (token_symbol, snapshot_hour, score, raw_posts, raw_views, raw_likes,
             raw_reposts, raw_replies, raw_unique_users, avg_bonding_curve,
             graduated_ratio, image_ratio)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            ON CONFLICT (token_symbol, snapshot_hour) DO UPDATE SET
                score = EXCLUDED.score,
                raw_posts = EXCLUDED.raw_posts,
                raw_views = EXCLUDED.raw_views,
                raw_likes = EXCLUDED.raw_likes,
                raw_reposts = EXCLUDED.raw_reposts,
                raw_replies = EXCLUDED.raw_replies,
                raw_unique_users = EXCLUDED.raw_unique_users,
                avg_bonding_curve = EXCLUDED.avg_bonding_curve,
                graduated_ratio = EXCLUDED.graduated_ratio,
                image_ratio = EXCLUDED.image_ratio
        """
        await self.db.executemany(
            query,
            [
                (
                    s.token_symbol,
                    s.snapshot_hour,
                    s.score,
                    s.raw_posts,
                    s.raw_views,
                    s.raw_likes,
                    s.raw_reposts,
                    s.raw_replies,
                    s.raw_unique_users,
                    s.avg_bonding_curve,
                    s.graduated_ratio,
                    s.image_ratio,
                )
                for s in snapshots
            ],
        )
        return len(snapshots)

    async def get_for_hour(self, snapshot_hour: datetime) -> list[TokenScoreSnapshot]:
        query = """
            SELECT * FROM token_score_snapshots
            WHERE snapshot_hour = $1
            ORDER BY score DESC
        """
        return await self._fetch_all(query, snapshot_hour)

    async def get_between(self, start: datetime, end: datetime) -> list[TokenScoreSnapshot]:
        """Snapshots with start <= snapshot_hour < end."""
        query = """
            SELECT * FROM token_score_snapshots
            WHERE snapshot_hour >= $1 AND snapshot_hour < $2
            ORDER BY snapshot_hour
        """
        return await self._fetch_all(query, start, end)


class DailyRollupRepository(BaseRepository[TokenScoreDaily]):
    """Daily per-token rollups."""

    table_name = "token_score_daily"
    model_class = TokenScoreDaily

    async def upsert(self, rollup: TokenScoreDaily) -> TokenScoreDaily:
        query = """
            INSERT INTO token_score_daily
            (token_symbol, snapshot_date, avg_score, max_score, min_score,
             total_posts, total_views, total_likes, total_reposts)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
            ON CONFLICT (token_symbol, snapshot_date) DO UPDATE SET
                avg_score = EXCLUDED.avg_score,
                max_score = EXCLUDED.max_score,
                min_score = EXCLUDED.min_score,
                total_posts = EXCLUDED.total_posts,
                total_views = EXCLUDED.total_views,
                total_likes = EXCLUDED.total_likes,
                total_reposts = EXCLUDED.total_reposts
            RETURNING *
        """
        row = await self.db.fetchrow(
            query,
            rollup.token_symbol,
            rollup.snapshot_date,
            rollup.avg_score,
            rollup.max_score,
            rollup.min_score,
            rollup.total_posts,
            rollup.total_views,
            rollup.total_likes,
            rollup.total_reposts,
        )
        return self._to_model(row) if row else rollup

    async def get_for_date(self, snapshot_date: date) -> list[TokenScoreDaily]:
        query = """
            SELECT * FROM token_score_daily
            WHERE snapshot_date = $1
            ORDER BY avg_score DESC
        """
        return await self._fetch_all(query, snapshot_date)

"""
Collected social post repository.

post_id is unique, so re-collecting a post only refreshes its
engagement counters. This is what makes the collection task safe to
run back to back.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from viral_score.storage.models import SocialPostRecord
from viral_score.storage.repositories.base import BaseRepository


class SocialPostRepository(BaseRepository[SocialPostRecord]):
    """Posts feeding metric aggregation."""

    table_name = "social_posts"
    model_class = SocialPostRecord

    async def upsert_many(self, posts: Sequence[SocialPostRecord]) -> int:
        """Insert new posts and refresh counters of known ones."""
        if not posts:
            return 0
        query = """
            INSERT INTO social_posts
            (post_id, user_id, user_name, user_is_pre_ordered, content_type,
             view_count, like_count, repost_count, reply_count,
             bonding_curve_progress, price_fluctuation_range, has_image,
             token_symbols, post_created_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14)
            ON CONFLICT (post_id) DO UPDATE SET
                view_count = EXCLUDED.view_count,
                like_count = EXCLUDED.like_count,
                repost_count = EXCLUDED.repost_count,
                reply_count = EXCLUDED.reply_count,
                bonding_curve_progress = EXCLUDED.bonding_curve_progress,
                price_fluctuation_range = EXCLUDED.price_fluctuation_range,
                processed_at = NOW()
        """
        await self.db.executemany(
            query,
            [
                (
                    p.post_id,
                    p.user_id,
                    p.user_name,
                    p.user_is_pre_ordered,
                    p.content_type,
                    p.view_count,
                    p.like_count,
                    p.repost_count,
                    p.reply_count,
                    p.bonding_curve_progress,
                    p.price_fluctuation_range,
                    p.has_image,
                    p.token_symbols,
                    p.post_created_at,
                )
                for p in posts
            ],
        )
        return len(posts)

    async def latest_post_id(self) -> Optional[int]:
        """Highest collected post id, the resume cursor for the feed."""
        return await self._max("post_id")

    async def fetch_since(self, since: datetime) -> list[SocialPostRecord]:
        """Posts created at or after `since`."""
        query = """
            SELECT * FROM social_posts
            WHERE post_created_at >= $1
            ORDER BY post_created_at DESC
        """
        return await self._fetch_all(query, since)

"""
Social posts and metric aggregation.

A post mentions tokens three ways:
- @mention body items (most reliable)
- #hashtag body items and the post's hashtag list
- $TICKER patterns in the text: a letter followed by up to 9 letters or
  digits, so "$88" or "$1061M" are not tickers

parse_posts() drops feed items with negative counters or no id, so one bad
item never fails a collection cycle. aggregate_posts() folds posts into
one AggregatedMetrics per token. Bonding-curve progress arrives in
percent; a post is "graduated" when its token's curve is at 100.
"""
from __future__ import annotations

import json
import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Protocol

from viral_score.errors import ExternalUnavailableError, ValidationError
from viral_score.scoring.models import AggregatedMetrics
from viral_score.storage.models import SocialPostRecord

logger = logging.getLogger(__name__)

TICKER_PATTERN = re.compile(r"\$([A-Za-z][A-Za-z0-9]{0,9})\b")
GRADUATED_PROGRESS = 100.0
COUNTER_FIELDS = ("view_count", "like_count", "repost_count", "reply_count")


@dataclass(frozen=True)
class BodyItem:
    """Structured fragment of a post body."""
    type: str
    value: str


@dataclass(frozen=True)
class SocialPost:
    """
    One post from the social feed.

    Attributes:
        post_id: Monotonically increasing feed id
        user_id: Author id, used for unique-user counts
        created_at: Post creation time (UTC)
        text: Raw text content, scanned for $TICKER patterns
        body: Structured body items (mentions, hashtags, text)
        hashtags: Hashtags attached to the post
        bonding_curve_progress: Author token's curve progress, percent 0-100
        price_fluctuation_range: Author token's price move, percent
    """
    post_id: int
    user_id: int
    created_at: datetime
    text: str = ""
    body: tuple[BodyItem, ...] = ()
    hashtags: tuple[str, ...] = ()
    view_count: int = 0
    like_count: int = 0
    repost_count: int = 0
    reply_count: int = 0
    bonding_curve_progress: float = 0.0
    price_fluctuation_range: float = 0.0
    has_image: bool = False
    user_is_pre_ordered: bool = False
    user_name: Optional[str] = None
    content_type: str = "POST"
    tokens: tuple[str, ...] = field(default=())

    def __post_init__(self):
        for name in COUNTER_FIELDS:
            value = getattr(self, name)
            if value < 0:
                raise ValidationError(f"Post {self.post_id}: {name} must be non-negative, got {value}")
        if not self.tokens:
            object.__setattr__(self, "tokens", tuple(extract_tokens(self)))

    @classmethod
    def from_api(cls, data: dict) -> "SocialPost":
        """Parse one item of the feed's JSON response."""
        user = data.get("user") or {}
        created_raw = data.get("createdAt")
        created_at = (
            datetime.fromisoformat(created_raw.replace("Z", "+00:00"))
            if created_raw
            else datetime.now(timezone.utc)
        )
        return cls(
            post_id=int(data["id"]),
            user_id=int(user.get("id", 0)),
            created_at=created_at,
            text=data.get("value") or "",
            body=tuple(
                BodyItem(type=item.get("type", "text"), value=item.get("value") or "")
                for item in data.get("body") or []
            ),
            hashtags=tuple(data.get("hashTags") or []),
            view_count=int(data.get("viewCount") or 0),
            like_count=int(data.get("likeCount") or 0),
            repost_count=int(data.get("repostCount") or 0),
            reply_count=int(data.get("replyCount") or 0),
            bonding_curve_progress=float(data.get("bondingCurveProgress") or 0),
            price_fluctuation_range=float(data.get("priceFluctuationRange") or 0),
            has_image=bool(data.get("imageSrc")),
            user_is_pre_ordered=bool(user.get("isPreOrdered", False)),
            user_name=user.get("userName"),
            content_type=data.get("contentType") or "POST",
        )

    @classmethod
    def from_record(cls, record: SocialPostRecord) -> "SocialPost":
        return cls(
            post_id=record.post_id,
            user_id=record.user_id,
            created_at=record.post_created_at,
            view_count=record.view_count,
            like_count=record.like_count,
            repost_count=record.repost_count,
            reply_count=record.reply_count,
            bonding_curve_progress=record.bonding_curve_progress,
            price_fluctuation_range=record.price_fluctuation_range,
            has_image=record.has_image,
            user_is_pre_ordered=record.user_is_pre_ordered,
            user_name=record.user_name,
            content_type=record.content_type,
            tokens=tuple(s.upper() for s in record.symbols),
        )

    def to_record(self) -> SocialPostRecord:
        return SocialPostRecord(
            post_id=self.post_id,
            user_id=self.user_id,
            user_name=self.user_name,
            user_is_pre_ordered=self.user_is_pre_ordered,
            content_type=self.content_type,
            view_count=self.view_count,
            like_count=self.like_count,
            repost_count=self.repost_count,
            reply_count=self.reply_count,
            bonding_curve_progress=self.bonding_curve_progress,
            price_fluctuation_range=self.price_fluctuation_range,
            has_image=self.has_image,
            token_symbols=json.dumps(list(self.tokens)),
            post_created_at=self.created_at,
        )


def parse_posts(items: Iterable[dict]) -> list[SocialPost]:
    """Parse feed items, dropping malformed ones (negative counters, missing id)."""
    posts = []
    for item in items:
        try:
            posts.append(SocialPost.from_api(item))
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping malformed post {item.get('id')}: {e}")
    return posts


def extract_tokens(post: SocialPost) -> list[str]:
    """Upper-cased, de-duplicated token symbols: mentions, then tickers, then hashtags."""
    mentions = [item.value.upper() for item in post.body if item.type == "mention" and item.value]
    hashtags = [item.value.upper() for item in post.body if item.type == "hashtag" and item.value]
    hashtags.extend(tag.upper() for tag in post.hashtags if tag)
    tickers = [m.group(1).upper() for m in TICKER_PATTERN.finditer(post.text)]
    return list(dict.fromkeys(mentions + tickers + hashtags))


class _TokenAccumulator:
    __slots__ = (
        "posts", "views", "likes", "reposts", "replies", "users", "latest",
        "progress", "graduated", "images", "fluctuation", "pre_ordered",
    )

    def __init__(self) -> None:
        self.posts = 0
        self.views = 0
        self.likes = 0
        self.reposts = 0
        self.replies = 0
        self.users: set[int] = set()
        self.latest: Optional[datetime] = None
        self.progress = 0.0
        self.graduated = 0
        self.images = 0
        self.fluctuation = 0.0
        self.pre_ordered = 0

    def add(self, post: SocialPost) -> None:
        self.posts += 1
        self.views += post.view_count
        self.likes += post.like_count
        self.reposts += post.repost_count
        self.replies += post.reply_count
        self.users.add(post.user_id)
        if self.latest is None or post.created_at > self.latest:
            self.latest = post.created_at
        self.progress += post.bonding_curve_progress
        if post.bonding_curve_progress == GRADUATED_PROGRESS:
            self.graduated += 1
        if post.has_image:
            self.images += 1
        self.fluctuation += abs(post.price_fluctuation_range)
        if post.user_is_pre_ordered:
            self.pre_ordered += 1

    def to_metrics(self, symbol: str) -> AggregatedMetrics:
        n = self.posts
        return AggregatedMetrics(
            symbol=symbol,
            post_count=n,
            view_count=self.views,
            like_count=self.likes,
            repost_count=self.reposts,
            reply_count=self.replies,
            unique_user_count=len(self.users),
            latest_post_time=self.latest,
            avg_bonding_curve_progress=min(1.0, max(0.0, self.progress / n / 100)) if n else 0.0,
            graduated_post_ratio=self.graduated / n if n else 0.0,
            image_post_ratio=self.images / n if n else 0.0,
            avg_price_fluctuation=self.fluctuation / n if n else 0.0,
            pre_ordered_user_ratio=self.pre_ordered / n if n else 0.0,
        )


def aggregate_posts(posts: Iterable[SocialPost]) -> list[AggregatedMetrics]:
    """One AggregatedMetrics per mentioned token, in first-seen order."""
    by_token: defaultdict[str, _TokenAccumulator] = defaultdict(_TokenAccumulator)
    post_count = 0
    for post in posts:
        post_count += 1
        for token in post.tokens:
            by_token[token].add(post)

    logger.debug(f"Aggregated {post_count} posts into {len(by_token)} tokens")
    metrics = []
    for symbol, acc in by_token.items():
        try:
            metrics.append(acc.to_metrics(symbol))
        except ValidationError as e:
            logger.warning(f"Skipping token {symbol}: {e}")
    return metrics


# =============================================================================
# Sources
# =============================================================================


class PostFeed(Protocol):
    """External social feed, paginated by increasing post id."""

    async def fetch_since(self, last_post_id: Optional[int]) -> list[SocialPost]:
        ...


class MetricSource(Protocol):
    """Supplies per-token metrics for one collection cycle."""

    async def collect(self) -> list[AggregatedMetrics]:
        ...


class PostStoreMetricSource:
    """
    Metrics aggregated from stored posts over a sliding window.

    When a feed is attached, each collect() first pulls posts newer than
    the highest stored post id and upserts them. Upserts are keyed by
    post id, so running collect() back to back is harmless.

    Usage:
        source = PostStoreMetricSource(SocialPostRepository(db), feed=my_feed)
        metrics = await source.collect()
    """

    def __init__(
        self,
        repository,
        feed: Optional[PostFeed] = None,
        window_days: int = 7,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._repo = repository
        self._feed = feed
        self._window = timedelta(days=window_days)
        self._clock = clock

    async def pull_new_posts(self) -> int:
        """Store posts the feed has beyond our cursor. Returns how many."""
        if self._feed is None:
            return 0
        last_id = await self._repo.latest_post_id()
        posts = await self._feed.fetch_since(last_id)
        if not posts:
            return 0
        stored = await self._repo.upsert_many([p.to_record() for p in posts])
        logger.info(f"Collected {stored} new posts (cursor was {last_id})")
        return stored

    async def collect(self) -> list[AggregatedMetrics]:
        try:
            await self.pull_new_posts()
        except ExternalUnavailableError as e:
            logger.warning(f"Post feed unavailable, aggregating stored posts only: {e}")

        since = self._clock() - self._window
        records = await self._repo.fetch_since(since)
        posts = []
        for record in records:
            try:
                posts.append(SocialPost.from_record(record))
            except ValidationError as e:
                logger.warning(f"Skipping stored post {record.post_id}: {e}")
        metrics = aggregate_posts(posts)
        logger.info(f"Aggregated {len(records)} stored posts into {len(metrics)} tokens")
        return metrics

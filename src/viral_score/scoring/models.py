"""
Data models for the scoring layer.

These models represent:
- Per-token aggregated engagement metrics (one collection cycle)
- Token scores and their tiers
- Pair scores keyed by pool id
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from viral_score.errors import ValidationError

MAX_SCORE = 10000
MIN_SCORE = 0

_COUNT_FIELDS = (
    "post_count",
    "view_count",
    "like_count",
    "repost_count",
    "reply_count",
    "unique_user_count",
)

_RATIO_FIELDS = (
    "avg_bonding_curve_progress",
    "graduated_post_ratio",
    "image_post_ratio",
    "pre_ordered_user_ratio",
)


class ScoreTier(str, Enum):
    """Human-readable bucket derived from a score."""
    LEGENDARY = "LEGENDARY"
    VIRAL = "VIRAL"
    HOT = "HOT"
    WARM = "WARM"
    ACTIVE = "ACTIVE"
    COLD = "COLD"


# Descending thresholds; first match wins, COLD otherwise
TIER_THRESHOLDS: tuple[tuple[int, ScoreTier], ...] = (
    (8000, ScoreTier.LEGENDARY),
    (6000, ScoreTier.VIRAL),
    (4000, ScoreTier.HOT),
    (2000, ScoreTier.WARM),
    (500, ScoreTier.ACTIVE),
)


def tier_for(score: int) -> ScoreTier:
    """Map a basis-point score to its tier."""
    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return ScoreTier.COLD


@dataclass(frozen=True)
class AggregatedMetrics:
    """
    Engagement metrics for one token over one collection window.

    Attributes:
        symbol: Token symbol (upper-cased)
        post_count .. unique_user_count: Non-negative engagement counters
        latest_post_time: Time of the most recent post (None if no posts)
        avg_bonding_curve_progress: Mean bonding-curve progress in [0, 1]
        graduated_post_ratio: Share of posts whose token has graduated
        image_post_ratio: Share of posts carrying an image
        avg_price_fluctuation: Mean absolute price change, in percent
        pre_ordered_user_ratio: Share of posts from pre-ordered users
    """
    symbol: str
    post_count: int = 0
    view_count: int = 0
    like_count: int = 0
    repost_count: int = 0
    reply_count: int = 0
    unique_user_count: int = 0
    latest_post_time: Optional[datetime] = None
    avg_bonding_curve_progress: float = 0.0
    graduated_post_ratio: float = 0.0
    image_post_ratio: float = 0.0
    avg_price_fluctuation: float = 0.0
    pre_ordered_user_ratio: float = 0.0

    def __post_init__(self):
        if not self.symbol:
            raise ValidationError("Metrics symbol must not be empty")
        for name in _COUNT_FIELDS:
            value = getattr(self, name)
            if value < 0:
                raise ValidationError(
                    f"{self.symbol}: {name} must be non-negative, got {value}"
                )
        for name in _RATIO_FIELDS:
            value = getattr(self, name)
            if not (0.0 <= value <= 1.0):
                raise ValidationError(
                    f"{self.symbol}: {name} must be between 0 and 1, got {value}"
                )
        if self.avg_price_fluctuation < 0:
            raise ValidationError(
                f"{self.symbol}: avg_price_fluctuation must be non-negative, "
                f"got {self.avg_price_fluctuation}"
            )

    @property
    def engagement_count(self) -> int:
        """Likes + reposts + replies."""
        return self.like_count + self.repost_count + self.reply_count


@dataclass(frozen=True)
class TokenScore:
    """Latest score for one token."""
    symbol: str
    value: int
    tier: ScoreTier
    calculated_at: Optional[datetime] = None

    @classmethod
    def of(cls, symbol: str, value: int, calculated_at: Optional[datetime] = None) -> "TokenScore":
        return cls(symbol=symbol, value=value, tier=tier_for(value), calculated_at=calculated_at)


@dataclass(frozen=True)
class PairScore:
    """
    Symmetric score for an unordered token pair.

    symbol_x/symbol_y are sorted, and score_x/score_y follow that order.
    """
    pool_id: str
    symbol_x: str
    symbol_y: str
    score_x: int
    score_y: int
    pair_score: int

    @property
    def tier(self) -> ScoreTier:
        return tier_for(self.pair_score)


@dataclass(frozen=True)
class ScoreBreakdown:
    """Every intermediate value of a score calculation."""
    symbol: str
    raw: float
    decay: float
    penalty: float
    adjusted: float
    multiplier: float
    factors: tuple[str, ...]
    enhanced: float
    final: int

    @property
    def tier(self) -> ScoreTier:
        return tier_for(self.final)

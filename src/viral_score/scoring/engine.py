"""
Viral score engine.

Pure function from AggregatedMetrics to a basis-point score (0-10000):

1. raw      = weighted sum of engagement counters
2. decayed  = raw * 2^(-age/24h), 0 once the latest post is older than 7 days
3. adjusted = decayed * (1 - anti-gaming penalty), penalty capped at 50%
4. enhanced = adjusted * bonus multiplier (graduated, image, volatility)
5. final    = round(enhanced / (enhanced + 10000) * 10000)

The saturating curve in step 5 bounds the output no matter how large the
raw engagement gets.
"""
from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Iterable, Optional

from pydantic import BaseModel, ConfigDict

from viral_score.scoring.models import (
    MAX_SCORE,
    MIN_SCORE,
    AggregatedMetrics,
    ScoreBreakdown,
    ScoreTier,
    TokenScore,
    tier_for,
)

logger = logging.getLogger(__name__)


class ScoreWeights(BaseModel):
    """Points awarded per unit of each engagement counter."""

    model_config = ConfigDict(frozen=True)

    posts: float = 100
    views: float = 1
    likes: float = 20
    reposts: float = 50
    replies: float = 30
    unique_users: float = 200


class ScoreMultipliers(BaseModel):
    """Upper bounds for the bonus multipliers."""

    model_config = ConfigDict(frozen=True)

    graduated_bonus: float = 1.5
    image_bonus: float = 1.2
    volatility_bonus: float = 1.1
    # Carried for completeness; measured effect was neutral so it is not applied
    pre_ordered_user_weight: float = 1.0


SCORE_NORMALIZER = 10000.0

# Time decay
HALF_LIFE_HOURS = 24.0
MAX_AGE_HOURS = 168.0

# Bonus thresholds
GRADUATED_THRESHOLD = 0.3
GRADUATED_SATURATION = 0.5
IMAGE_THRESHOLD = 0.5
VOLATILITY_THRESHOLD = 1.0  # percent
VOLATILITY_SATURATION = 5.0  # percent

# Anti-gaming
LOW_ENGAGEMENT_MIN_VIEWS = 1000
LOW_ENGAGEMENT_RATE = 0.001
LOW_ENGAGEMENT_PENALTY = 0.3
DOMINANCE_MIN_POSTS = 10
DOMINANCE_MAX_USERS = 3
DOMINANCE_PENALTY = 0.2
SPAM_MIN_POSTS = 50
SPAM_PENALTY = 0.1
MAX_PENALTY = 0.5

# Protocol share
MAX_SHARE_REDUCTION_BPS = 5000


def round_half_up(value: float) -> int:
    """Round to nearest integer, halves away from zero for non-negative input."""
    return int(math.floor(value + 0.5))


def time_decay(latest_post_time: Optional[datetime], now: Optional[datetime] = None) -> float:
    """
    Exponential decay factor for the age of the most recent post.

    1.0 at age 0, 0.5 at 24h, 0.0 beyond 168h. Future timestamps count as age 0.
    """
    if latest_post_time is None:
        return 0.0
    now = now or datetime.now(timezone.utc)
    age_hours = max(0.0, (now - latest_post_time).total_seconds() / 3600)
    if age_hours > MAX_AGE_HOURS:
        return 0.0
    return math.pow(2.0, -age_hours / HALF_LIFE_HOURS)


def anti_gaming_penalty(metrics: AggregatedMetrics) -> float:
    """
    Additive penalty for suspicious engagement patterns, capped at 0.5.

    Thresholds are strict: posts=10 does not trigger the dominance check.
    """
    penalty = 0.0

    if metrics.view_count > LOW_ENGAGEMENT_MIN_VIEWS:
        rate = metrics.engagement_count / metrics.view_count
        if rate < LOW_ENGAGEMENT_RATE:
            penalty += LOW_ENGAGEMENT_PENALTY

    if metrics.post_count > DOMINANCE_MIN_POSTS and metrics.unique_user_count < DOMINANCE_MAX_USERS:
        penalty += DOMINANCE_PENALTY

    if metrics.post_count > SPAM_MIN_POSTS:
        penalty += SPAM_PENALTY

    return min(penalty, MAX_PENALTY)


def normalize(enhanced: float) -> int:
    """Saturating map from [0, inf) onto [0, 10000]."""
    if enhanced <= 0:
        return MIN_SCORE
    normalized = enhanced / (enhanced + SCORE_NORMALIZER) * MAX_SCORE
    return round_half_up(min(float(MAX_SCORE), max(float(MIN_SCORE), normalized)))


class ScoreEngine:
    """
    Calculates viral scores from aggregated metrics.

    Weights and multipliers are fixed at construction.

    Usage:
        engine = ScoreEngine()
        score = engine.calculate(metrics)
        tier = engine.tier_for(score)
    """

    def __init__(
        self,
        weights: Optional[ScoreWeights] = None,
        multipliers: Optional[ScoreMultipliers] = None,
    ) -> None:
        self.weights = weights or ScoreWeights()
        self.multipliers = multipliers or ScoreMultipliers()

    def raw_score(self, metrics: AggregatedMetrics) -> float:
        w = self.weights
        return (
            metrics.post_count * w.posts
            + metrics.view_count * w.views
            + metrics.like_count * w.likes
            + metrics.repost_count * w.reposts
            + metrics.reply_count * w.replies
            + metrics.unique_user_count * w.unique_users
        )

    def bonus_multiplier(self, metrics: AggregatedMetrics) -> tuple[float, tuple[str, ...]]:
        """
        Multiplicative bonus and the list of factors that contributed.

        Each bonus scales linearly with its ratio up to a saturation point.
        """
        multiplier = 1.0
        factors: list[str] = []
        m = self.multipliers

        if metrics.graduated_post_ratio >= GRADUATED_THRESHOLD:
            scale = min(metrics.graduated_post_ratio / GRADUATED_SATURATION, 1.0)
            bonus = 1 + (m.graduated_bonus - 1) * scale
            multiplier *= bonus
            factors.append(f"graduated:{bonus * 100 - 100:.0f}%")

        if metrics.image_post_ratio >= IMAGE_THRESHOLD:
            bonus = 1 + (m.image_bonus - 1) * min(metrics.image_post_ratio, 1.0)
            multiplier *= bonus
            factors.append(f"image:{bonus * 100 - 100:.0f}%")

        if metrics.avg_price_fluctuation >= VOLATILITY_THRESHOLD:
            scale = min(metrics.avg_price_fluctuation / VOLATILITY_SATURATION, 1.0)
            bonus = 1 + (m.volatility_bonus - 1) * scale
            multiplier *= bonus
            factors.append(f"volatility:{bonus * 100 - 100:.0f}%")

        return multiplier, tuple(factors)

    def breakdown(self, metrics: AggregatedMetrics, now: Optional[datetime] = None) -> ScoreBreakdown:
        """Run the full pipeline and keep every intermediate value."""
        if metrics.post_count == 0:
            return ScoreBreakdown(
                symbol=metrics.symbol,
                raw=0.0,
                decay=0.0,
                penalty=0.0,
                adjusted=0.0,
                multiplier=1.0,
                factors=(),
                enhanced=0.0,
                final=MIN_SCORE,
            )

        raw = self.raw_score(metrics)
        decay = time_decay(metrics.latest_post_time, now)
        penalty = anti_gaming_penalty(metrics)
        adjusted = raw * decay * (1 - penalty)
        multiplier, factors = self.bonus_multiplier(metrics)
        enhanced = adjusted * multiplier
        final = normalize(enhanced)

        return ScoreBreakdown(
            symbol=metrics.symbol,
            raw=raw,
            decay=decay,
            penalty=penalty,
            adjusted=adjusted,
            multiplier=multiplier,
            factors=factors,
            enhanced=enhanced,
            final=final,
        )

    def calculate(self, metrics: AggregatedMetrics, now: Optional[datetime] = None) -> int:
        """Score one token. Returns basis points in [0, 10000]."""
        result = self.breakdown(metrics, now)

        if result.penalty > 0:
            logger.debug(f"Applied {result.penalty * 100:.0f}% penalty to {metrics.symbol}")
        if result.factors:
            logger.debug(f"{metrics.symbol} bonuses: {', '.join(result.factors)}")
        logger.debug(
            f"{metrics.symbol}: raw={result.raw:.0f}, decay={result.decay:.2f}, "
            f"mult={result.multiplier:.2f}, final={result.final}"
        )
        return result.final

    def calculate_batch(
        self,
        metrics: Iterable[AggregatedMetrics],
        now: Optional[datetime] = None,
    ) -> dict[str, TokenScore]:
        """Score many tokens at the same instant, keyed by symbol."""
        now = now or datetime.now(timezone.utc)
        scores: dict[str, TokenScore] = {}
        for m in metrics:
            scores[m.symbol] = TokenScore.of(m.symbol, self.calculate(m, now), calculated_at=now)
        return scores

    @staticmethod
    def tier_for(score: int) -> ScoreTier:
        return tier_for(score)

    @staticmethod
    def protocol_share_reduction(score: int, base_protocol_share: int) -> int:
        """
        Protocol share after the viral discount.

        Reduction scales linearly up to 50% at a score of 10000.
        """
        reduction_bps = (score * MAX_SHARE_REDUCTION_BPS) // MAX_SCORE
        adjusted = (base_protocol_share * (10000 - reduction_bps)) // 10000
        return max(0, adjusted)

"""
Scoring Layer - viral scores, tiers and pair derivation.

This module provides:
    - ScoreEngine: metrics -> basis-point score (decay, penalties, bonuses)
    - ScoreWeights / ScoreMultipliers: engine configuration
    - AggregatedMetrics: per-token engagement input
    - TokenScore / PairScore / ScoreTier: score results
    - TokenScoreStore: in-memory cache of the latest scores
    - pool_id / derive_pair / all_pairs: pair derivation
"""

from .engine import ScoreEngine, ScoreMultipliers, ScoreWeights, time_decay
from .models import (
    MAX_SCORE,
    AggregatedMetrics,
    PairScore,
    ScoreBreakdown,
    ScoreTier,
    TokenScore,
    tier_for,
)
from .pairs import all_pairs, derive_pair, lookup_pair, pair_score, pool_id
from .store import DEFAULT_BLACKLIST, TokenScoreStore

__all__ = [
    # Engine
    "ScoreEngine",
    "ScoreWeights",
    "ScoreMultipliers",
    "time_decay",
    # Models
    "MAX_SCORE",
    "AggregatedMetrics",
    "PairScore",
    "ScoreBreakdown",
    "ScoreTier",
    "TokenScore",
    "tier_for",
    # Pairs
    "all_pairs",
    "derive_pair",
    "lookup_pair",
    "pair_score",
    "pool_id",
    # Store
    "DEFAULT_BLACKLIST",
    "TokenScoreStore",
]

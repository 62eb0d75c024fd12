"""
Settlement Layer - ranking tokens and submitting epochs.

This module provides:
    - EpochCoordinator: idempotent, confirmable epoch submission
    - build_rankings / build_viral_pairs: liquidity-aware top-3 selection
    - Matcher strategies for pairing pool tokens with scores
"""

from .coordinator import (
    DataSource,
    EpochCoordinator,
    EpochScores,
    EpochStatus,
    SubmissionOutcome,
    SubmissionStatus,
    epoch_for,
    epoch_start,
)
from .ranking import (
    DEFAULT_MATCHERS,
    ExactNameMatcher,
    ExactSymbolMatcher,
    MatchResult,
    PartialNameMatcher,
    TokenRanking,
    build_rankings,
    build_viral_pairs,
    match_token,
    unmatched_top_tokens,
)

__all__ = [
    "DEFAULT_MATCHERS",
    "DataSource",
    "EpochCoordinator",
    "EpochScores",
    "EpochStatus",
    "ExactNameMatcher",
    "ExactSymbolMatcher",
    "MatchResult",
    "PartialNameMatcher",
    "SubmissionOutcome",
    "SubmissionStatus",
    "TokenRanking",
    "build_rankings",
    "build_viral_pairs",
    "epoch_for",
    "epoch_start",
    "match_token",
    "unmatched_top_tokens",
]

"""
Token ranking for epoch submission.

Scores are keyed by upper-cased token symbol; liquidity data is keyed by
token address with a symbol and display name. Matching a pool token to a
score tries an ordered list of matcher strategies, first hit wins:

1. exact symbol
2. exact display name
3. substring containment between display name and score key, either way

A token ranks only if it matched with a positive score and has at least
one quote-token pool. The top three ranked tokens contribute 3, 2 and 1
pools respectively, taking their highest-TVL pools first.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol, Sequence

from viral_score.chain.models import ViralPair
from viral_score.ingestion.liquidity import TokenPools

logger = logging.getLogger(__name__)

PAIRS_PER_RANK = (3, 2, 1)
UNMATCHED_CHECK_LIMIT = 10


@dataclass(frozen=True)
class MatchResult:
    """A score found for a pool token, tagged with the strategy that found it."""
    score: int
    strategy: str
    key: str


class TokenMatcher(Protocol):
    name: str

    def match(self, token: TokenPools, scores: Mapping[str, int]) -> Optional[MatchResult]:
        ...


class ExactSymbolMatcher:
    name = "symbol"

    def match(self, token: TokenPools, scores: Mapping[str, int]) -> Optional[MatchResult]:
        key = token.symbol.upper()
        score = scores.get(key, 0)
        return MatchResult(score, self.name, key) if score > 0 else None


class ExactNameMatcher:
    name = "name"

    def match(self, token: TokenPools, scores: Mapping[str, int]) -> Optional[MatchResult]:
        key = token.name.upper()
        score = scores.get(key, 0)
        return MatchResult(score, self.name, key) if score > 0 else None


class PartialNameMatcher:
    """Score key contained in the display name, or the other way round."""

    name = "name-partial"

    def match(self, token: TokenPools, scores: Mapping[str, int]) -> Optional[MatchResult]:
        name = token.name.upper()
        if not name:
            return None
        for key, score in scores.items():
            if score <= 0:
                continue
            upper_key = key.upper()
            if upper_key in name or name in upper_key:
                return MatchResult(score, self.name, key)
        return None


DEFAULT_MATCHERS: tuple[TokenMatcher, ...] = (
    ExactSymbolMatcher(),
    ExactNameMatcher(),
    PartialNameMatcher(),
)


def match_token(
    token: TokenPools,
    scores: Mapping[str, int],
    matchers: Sequence[TokenMatcher] = DEFAULT_MATCHERS,
) -> Optional[MatchResult]:
    for matcher in matchers:
        result = matcher.match(token, scores)
        if result is not None:
            return result
    return None


@dataclass(frozen=True)
class TokenRanking:
    """A scored token with its pool bin steps, highest TVL first."""
    token_address: str
    quote_token_address: str
    symbol: str
    score: int
    bin_steps: tuple[int, ...]
    matched_by: str


def unmatched_top_tokens(
    scores: Mapping[str, int],
    tokens: Sequence[TokenPools],
    limit: int = UNMATCHED_CHECK_LIMIT,
) -> list[str]:
    """Top-scoring symbols that no pool token carries as symbol or name."""
    identifiers = set()
    for token in tokens:
        identifiers.add(token.symbol.upper())
        identifiers.add(token.name.upper())

    top = sorted(scores.items(), key=lambda item: item[1], reverse=True)[:limit]
    return [symbol for symbol, score in top if score > 0 and symbol.upper() not in identifiers]


def build_rankings(
    scores: Mapping[str, int],
    tokens: Sequence[TokenPools],
    matchers: Sequence[TokenMatcher] = DEFAULT_MATCHERS,
) -> list[TokenRanking]:
    """Rank pool tokens by matched score, descending; ties keep liquidity order."""
    missing = unmatched_top_tokens(scores, tokens)
    if missing:
        logger.warning(
            f"Top tokens without quote-token pools: {', '.join(f'{s}({scores[s]})' for s in missing)}"
        )

    rankings = []
    for token in tokens:
        if not token.pools:
            continue
        result = match_token(token, scores, matchers)
        if result is None:
            continue
        rankings.append(
            TokenRanking(
                token_address=token.token_address,
                quote_token_address=token.quote_token_address,
                symbol=token.symbol,
                score=result.score,
                bin_steps=tuple(p.bin_step for p in token.pools),
                matched_by=f"{result.strategy}:{result.key}",
            )
        )
        logger.debug(
            f"{token.symbol} ({token.name}): score={result.score} [{result.strategy}:{result.key}], "
            f"TVL=${token.total_tvl_usd:.2f}"
        )

    rankings.sort(key=lambda r: r.score, reverse=True)
    logger.info(f"Built {len(rankings)} token rankings from {len(tokens)} pool tokens")
    return rankings


def build_viral_pairs(rankings: Sequence[TokenRanking]) -> list[ViralPair]:
    """Pairs for the top three rankings: 3 pools for rank 1, 2 for rank 2, 1 for rank 3."""
    pairs = []
    for index, (ranking, quota) in enumerate(zip(rankings, PAIRS_PER_RANK)):
        rank = index + 1
        for bin_step in ranking.bin_steps[:quota]:
            pairs.append(
                ViralPair(
                    token_x=ranking.token_address,
                    token_y=ranking.quote_token_address,
                    bin_step=bin_step,
                    rank=rank,
                )
            )
    return pairs

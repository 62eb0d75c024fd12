"""
Pair derivation.

A pool id is keccak256(abi.encodePacked(string, string)) over the two
upper-cased symbols in sorted order, so (A, B) and (B, A) share one id.
The pair score is the rounded average of both token scores.
"""
from __future__ import annotations

from itertools import combinations
from typing import Mapping

from eth_abi.packed import encode_packed
from eth_utils import encode_hex, keccak

from viral_score.errors import InvariantViolationError, NotFoundError
from viral_score.scoring.models import MAX_SCORE, MIN_SCORE, PairScore


def sort_symbols(symbol_a: str, symbol_b: str) -> tuple[str, str]:
    """Upper-case and order two symbols lexicographically."""
    a, b = sorted((symbol_a.upper(), symbol_b.upper()))
    return a, b


def pool_id_bytes(symbol_a: str, symbol_b: str) -> bytes:
    x, y = sort_symbols(symbol_a, symbol_b)
    digest = keccak(encode_packed(["string", "string"], [x, y]))
    if len(digest) != 32:
        raise InvariantViolationError(f"Pool id for {x}/{y} is {len(digest)} bytes")
    return digest


def pool_id(symbol_a: str, symbol_b: str) -> str:
    """0x-prefixed 32-byte pool id for an unordered symbol pair."""
    return encode_hex(pool_id_bytes(symbol_a, symbol_b))


def pair_score(score_a: int, score_b: int) -> int:
    """round((a + b) / 2) with halves rounded up, clamped to [0, 10000]."""
    avg = (score_a + score_b + 1) // 2
    return min(MAX_SCORE, max(MIN_SCORE, avg))


def derive_pair(symbol_a: str, score_a: int, symbol_b: str, score_b: int) -> PairScore:
    """Build the PairScore for two scored tokens, in sorted symbol order."""
    a, b = symbol_a.upper(), symbol_b.upper()
    x, y = sort_symbols(a, b)
    score_x, score_y = (score_a, score_b) if x == a else (score_b, score_a)
    return PairScore(
        pool_id=pool_id(x, y),
        symbol_x=x,
        symbol_y=y,
        score_x=score_x,
        score_y=score_y,
        pair_score=pair_score(score_x, score_y),
    )


def lookup_pair(scores: Mapping[str, int], symbol_a: str, symbol_b: str) -> PairScore:
    """
    Derive a pair from a symbol -> score mapping.

    Raises:
        NotFoundError: If either symbol has no score
    """
    a, b = symbol_a.upper(), symbol_b.upper()
    for symbol in (a, b):
        if symbol not in scores:
            raise NotFoundError(f"No score for token {symbol}", key=symbol)
    return derive_pair(a, scores[a], b, scores[b])


def all_pairs(scores: Mapping[str, int]) -> dict[str, PairScore]:
    """Every unordered pair of scored tokens, keyed by pool id."""
    pairs: dict[str, PairScore] = {}
    for a, b in combinations(scores.keys(), 2):
        pair = derive_pair(a, scores[a], b, scores[b])
        pairs[pair.pool_id] = pair
    return pairs

"""
In-memory store of the latest token scores.

One instance is created at process start and handed to every component
that reads or writes scores. It is a cache: hourly snapshots in the
database are the durable record.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, Optional

from viral_score.scoring.models import AggregatedMetrics, TokenScore

logger = logging.getLogger(__name__)

# Platform tokens that never appear in rankings or leaderboards
DEFAULT_BLACKLIST = frozenset({"M", "MEMEX"})


def is_blacklisted(symbol: str, blacklist: Iterable[str] = DEFAULT_BLACKLIST) -> bool:
    return symbol.upper() in {s.upper() for s in blacklist}


class TokenScoreStore:
    """
    Latest score and metrics per token symbol.

    Each collection cycle overwrites the entries it produced; tokens not
    seen in a cycle keep their previous value until trimmed.

    Usage:
        store = TokenScoreStore()
        store.update_cycle(scores, metrics)
        store.get("PEPE")
        store.trim(100)
    """

    def __init__(self, blacklist: Iterable[str] = DEFAULT_BLACKLIST) -> None:
        self._scores: dict[str, TokenScore] = {}
        self._metrics: dict[str, AggregatedMetrics] = {}
        self._blacklist = frozenset(s.upper() for s in blacklist)
        self._updated_at: Optional[datetime] = None

    def __len__(self) -> int:
        return len(self._scores)

    def __contains__(self, symbol: str) -> bool:
        return symbol.upper() in self._scores

    @property
    def updated_at(self) -> Optional[datetime]:
        """Time of the last completed cycle."""
        return self._updated_at

    @property
    def blacklist(self) -> frozenset[str]:
        return self._blacklist

    def update_cycle(
        self,
        scores: dict[str, TokenScore],
        metrics: Optional[Iterable[AggregatedMetrics]] = None,
        updated_at: Optional[datetime] = None,
    ) -> None:
        """Store the results of one collection cycle."""
        for symbol, score in scores.items():
            self._scores[symbol.upper()] = score
        for m in metrics or ():
            self._metrics[m.symbol.upper()] = m
        self._updated_at = updated_at or self._updated_at
        logger.debug(f"Score store updated with {len(scores)} tokens (total={len(self._scores)})")

    def get(self, symbol: str) -> Optional[TokenScore]:
        return self._scores.get(symbol.upper())

    def get_metrics(self, symbol: str) -> Optional[AggregatedMetrics]:
        return self._metrics.get(symbol.upper())

    def as_dict(self) -> dict[str, int]:
        """Symbol -> score value for every cached token."""
        return {symbol: s.value for symbol, s in self._scores.items()}

    def scores(self) -> list[TokenScore]:
        return list(self._scores.values())

    def metrics(self) -> list[AggregatedMetrics]:
        return list(self._metrics.values())

    def is_blacklisted(self, symbol: str) -> bool:
        return symbol.upper() in self._blacklist

    def top(self, limit: Optional[int] = None, include_blacklisted: bool = False) -> list[TokenScore]:
        """Scores sorted descending; ties keep insertion order."""
        ranked = sorted(self._scores.values(), key=lambda s: s.value, reverse=True)
        if not include_blacklisted:
            ranked = [s for s in ranked if s.symbol.upper() not in self._blacklist]
        return ranked if limit is None else ranked[:limit]

    def leaderboard(self, limit: int = 20) -> list[TokenScore]:
        """Top scored tokens for display, blacklist removed."""
        return self.top(limit)

    def trim(self, limit: int) -> int:
        """
        Keep only the top `limit` tokens by score.

        Returns:
            Number of tokens removed
        """
        if len(self._scores) <= limit:
            return 0
        keep = {s.symbol.upper() for s in self.top(limit, include_blacklisted=True)}
        removed = [symbol for symbol in self._scores if symbol not in keep]
        for symbol in removed:
            del self._scores[symbol]
            self._metrics.pop(symbol, None)
        logger.info(f"Trimmed score store: removed {len(removed)}, kept {len(keep)}")
        return len(removed)

    def clear(self) -> None:
        self._scores.clear()
        self._metrics.clear()

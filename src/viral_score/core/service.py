"""
ViralScoreService - the consumer-facing facade.

Owns the score cache and ties the components together:
- collection cycle: metrics -> engine -> score store
- lookups: token scores, score breakdowns, pair scores
- signing: pair scores with per-pool nonces
- checkpoints: Merkle builds over the cached top tokens, proofs
- settlement: epoch submission and status
- persistence: hourly snapshots, daily rollups, cache trimming

Scheduled jobs call into this class; nothing here schedules itself.
"""
from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Optional

from viral_score.errors import NotFoundError
from viral_score.scoring.engine import round_half_up
from viral_score.scoring.pairs import all_pairs, lookup_pair
from viral_score.storage.models import TokenScoreDaily, TokenScoreSnapshot

if TYPE_CHECKING:
    from viral_score.ingestion.posts import MetricSource
    from viral_score.merkle.checkpoint import CheckpointResult, MerkleCheckpointBuilder
    from viral_score.merkle.tree import MerkleProof
    from viral_score.scoring.engine import ScoreEngine
    from viral_score.scoring.models import PairScore, ScoreBreakdown, TokenScore
    from viral_score.scoring.store import TokenScoreStore
    from viral_score.settlement.coordinator import (
        EpochCoordinator,
        EpochStatus,
        SubmissionOutcome,
    )
    from viral_score.signing.signer import ScoreSigner, SignedScore
    from viral_score.storage.models import MerkleCheckpointRecord
    from viral_score.storage.repositories import DailyRollupRepository, SnapshotRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollectionResult:
    """Outcome of one collection cycle."""
    tokens: int
    scored_at: datetime
    duration_ms: float
    top_symbol: Optional[str] = None
    top_score: Optional[int] = None


def hour_floor(moment: datetime) -> datetime:
    return moment.replace(minute=0, second=0, microsecond=0)


def rollup_snapshots(snapshot_date: date, snapshots: list[TokenScoreSnapshot]) -> list[TokenScoreDaily]:
    """
    Collapse one day of hourly snapshots into one row per token.

    Scores are averaged (half-up) with max and min. Raw counters are
    window totals at each hour, so the day's value is their maximum.
    """
    by_symbol: defaultdict[str, list[TokenScoreSnapshot]] = defaultdict(list)
    for snap in snapshots:
        by_symbol[snap.token_symbol].append(snap)

    rollups = []
    for symbol, rows in by_symbol.items():
        scores = [r.score for r in rows]
        rollups.append(
            TokenScoreDaily(
                token_symbol=symbol,
                snapshot_date=snapshot_date,
                avg_score=round_half_up(sum(scores) / len(scores)),
                max_score=max(scores),
                min_score=min(scores),
                total_posts=max(r.raw_posts for r in rows),
                total_views=max(r.raw_views for r in rows),
                total_likes=max(r.raw_likes for r in rows),
                total_reposts=max(r.raw_reposts for r in rows),
            )
        )
    return rollups


class ViralScoreService:
    """
    Single entry point for score consumers and scheduled jobs.

    Usage:
        service = ViralScoreService(engine, store, metric_source, signer,
                                    checkpoints, coordinator, snapshots, rollups)
        await service.run_collection_cycle()
        score = service.get_score("PEPE")
        signed = await service.sign_pair_score("PEPE", "DOGE")
    """

    def __init__(
        self,
        engine: "ScoreEngine",
        store: "TokenScoreStore",
        metric_source: "MetricSource",
        signer: "ScoreSigner",
        checkpoints: "MerkleCheckpointBuilder",
        coordinator: "EpochCoordinator",
        snapshots: "SnapshotRepository",
        rollups: "DailyRollupRepository",
        cache_limit: int = 100,
        checkpoint_top_tokens: int = 20,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._engine = engine
        self._store = store
        self._metric_source = metric_source
        self._signer = signer
        self._checkpoints = checkpoints
        self._coordinator = coordinator
        self._snapshots = snapshots
        self._rollups = rollups
        self._cache_limit = cache_limit
        self._checkpoint_top_tokens = checkpoint_top_tokens
        self._clock = clock

    @property
    def store(self) -> "TokenScoreStore":
        return self._store

    @property
    def signer_ready(self) -> bool:
        return self._signer.is_ready

    @property
    def signer_address(self) -> Optional[str]:
        return self._signer.address

    # =========================================================================
    # Collection
    # =========================================================================

    async def run_collection_cycle(self) -> CollectionResult:
        """
        Collect metrics, score every token and publish to the store.

        Raises:
            ExternalUnavailableError: If the metric source cannot be read
        """
        started = time.monotonic()
        now = self._clock()
        metrics = await self._metric_source.collect()
        scores = self._engine.calculate_batch(metrics, now)
        self._store.update_cycle(scores, metrics, updated_at=now)

        top = self._store.top(1)
        result = CollectionResult(
            tokens=len(scores),
            scored_at=now,
            duration_ms=(time.monotonic() - started) * 1000,
            top_symbol=top[0].symbol if top else None,
            top_score=top[0].value if top else None,
        )
        logger.info(
            f"Collection cycle: {result.tokens} tokens scored in {result.duration_ms:.0f}ms"
            + (f", top={result.top_symbol} ({result.top_score})" if top else "")
        )
        return result

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_score(self, symbol: str) -> "TokenScore":
        """
        Raises:
            NotFoundError: If the token has no cached score
        """
        score = self._store.get(symbol)
        if score is None:
            raise NotFoundError(f"No score for token {symbol.upper()}", key=symbol.upper())
        return score

    def get_score_breakdown(self, symbol: str) -> "ScoreBreakdown":
        """Recompute the cached token's score with every intermediate value."""
        metrics = self._store.get_metrics(symbol)
        if metrics is None:
            raise NotFoundError(f"No metrics for token {symbol.upper()}", key=symbol.upper())
        return self._engine.breakdown(metrics, self._clock())

    def get_pair_score(self, symbol_x: str, symbol_y: str) -> "PairScore":
        return lookup_pair(self._store.as_dict(), symbol_x, symbol_y)

    async def sign_pair_score(self, symbol_x: str, symbol_y: str) -> "SignedScore":
        """
        Sign the current pair score with the pool's next nonce.

        Raises:
            NotFoundError: If either token has no score
            ConfigurationError: If no signing key is configured
        """
        pair = self.get_pair_score(symbol_x, symbol_y)
        return await self._signer.sign_pair_score(pair)

    def list_scores(self) -> list["TokenScore"]:
        return self._store.top(include_blacklisted=True)

    def leaderboard(self, limit: int = 20) -> list["TokenScore"]:
        return self._store.leaderboard(limit)

    # =========================================================================
    # Checkpoints
    # =========================================================================

    async def build_checkpoint(self) -> Optional["CheckpointResult"]:
        """
        Commit pair scores for the top cached tokens as a new checkpoint.

        Returns None when fewer than two eligible tokens are cached.
        """
        top = self._store.top(self._checkpoint_top_tokens)
        if len(top) < 2:
            logger.info(f"Skipping checkpoint: {len(top)} eligible tokens cached")
            return None
        pairs = all_pairs({s.symbol: s.value for s in top})
        return await self._checkpoints.build({pid: p.pair_score for pid, p in pairs.items()})

    async def get_proof(self, pool_id: str, epoch: Optional[int] = None) -> Optional["MerkleProof"]:
        return await self._checkpoints.get_proof(pool_id, epoch)

    def verify_proof(self, proof: "MerkleProof") -> bool:
        return self._checkpoints.verify_proof(proof)

    async def latest_checkpoint(self) -> Optional["MerkleCheckpointRecord"]:
        return await self._checkpoints.latest()

    # =========================================================================
    # Settlement
    # =========================================================================

    async def trigger_epoch_submission(self) -> "SubmissionOutcome":
        outcome = await self._coordinator.submit()
        logger.info(f"Epoch submission: {outcome.status.value} (epoch={outcome.epoch}) {outcome.message}")
        return outcome

    async def reconcile_epochs(self) -> "SubmissionOutcome":
        return await self._coordinator.reconcile()

    async def get_epoch_status(self) -> "EpochStatus":
        return await self._coordinator.status()

    # =========================================================================
    # Persistence
    # =========================================================================

    async def write_hourly_snapshot(self) -> int:
        """Persist every cached score at the current hour. Returns rows written."""
        hour = hour_floor(self._clock())
        snapshots = []
        for score in self._store.scores():
            m = self._store.get_metrics(score.symbol)
            snapshots.append(
                TokenScoreSnapshot(
                    token_symbol=score.symbol,
                    snapshot_hour=hour,
                    score=score.value,
                    raw_posts=m.post_count if m else 0,
                    raw_views=m.view_count if m else 0,
                    raw_likes=m.like_count if m else 0,
                    raw_reposts=m.repost_count if m else 0,
                    raw_replies=m.reply_count if m else 0,
                    raw_unique_users=m.unique_user_count if m else 0,
                    avg_bonding_curve=m.avg_bonding_curve_progress if m else 0.0,
                    graduated_ratio=m.graduated_post_ratio if m else 0.0,
                    image_ratio=m.image_post_ratio if m else 0.0,
                )
            )
        if not snapshots:
            logger.info(f"No cached scores to snapshot for {hour.isoformat()}")
            return 0

        written = await self._snapshots.upsert_many(snapshots)
        logger.info(f"Saved hourly snapshot: {written} tokens at {hour.isoformat()}")
        return written

    async def write_daily_rollup(self, snapshot_date: Optional[date] = None) -> int:
        """Aggregate one UTC day of snapshots (default: yesterday)."""
        if snapshot_date is None:
            snapshot_date = (self._clock() - timedelta(days=1)).date()
        start = datetime(snapshot_date.year, snapshot_date.month, snapshot_date.day, tzinfo=timezone.utc)
        snapshots = await self._snapshots.get_between(start, start + timedelta(days=1))

        rollups = rollup_snapshots(snapshot_date, snapshots)
        for rollup in rollups:
            await self._rollups.upsert(rollup)
        logger.info(f"Daily rollup for {snapshot_date.isoformat()}: {len(rollups)} tokens")
        return len(rollups)

    def trim_cache(self) -> int:
        return self._store.trim(self._cache_limit)

"""
Epoch Coordinator - hourly settlement of viral rankings.

External epoch E covers the hour starting at E * 3600. For each attempt
the coordinator:
1. Re-reads currentEpoch/lastEpoch from the contract. No local "already
   submitted" state is kept, so attempts are idempotent across restarts.
2. Resolves the scores for E: the snapshot at E's start hour; for the
   current epoch, whose snapshot is only written at :05, the previous
   hour's snapshot (stale); otherwise, or when the snapshot read fails,
   the live in-memory scores (stale).
3. Ranks tokens against liquidity data and builds the viral pairs.
4. Re-reads lastEpoch, signs (epoch, pairs) and submits, waiting for
   the receipt. A revert or timeout fails this attempt only; the next
   tick re-evaluates.

Expected negative outcomes (already submitted, not ready, blocked) are
reported as SubmissionOutcome statuses, never raised.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Sequence

import asyncpg

from viral_score.chain.models import ViralPair
from viral_score.errors import (
    ConfigurationError,
    ExternalUnavailableError,
    OnChainRejectedError,
)
from viral_score.settlement.ranking import (
    DEFAULT_MATCHERS,
    TokenMatcher,
    build_rankings,
    build_viral_pairs,
)
from viral_score.storage.database import CONNECTION_ERRORS

if TYPE_CHECKING:
    from viral_score.chain.reporter import ViralScoreReporterClient
    from viral_score.ingestion.liquidity import LiquidityClient
    from viral_score.scoring.store import TokenScoreStore
    from viral_score.signing.signer import MessageSigner
    from viral_score.storage.repositories import SnapshotRepository

logger = logging.getLogger(__name__)

EPOCH_SECONDS = 3600

# A failed snapshot read degrades to live scores instead of failing the epoch
SNAPSHOT_READ_ERRORS = (ExternalUnavailableError, asyncpg.PostgresError, *CONNECTION_ERRORS)


def epoch_for(moment: datetime) -> int:
    return int(moment.timestamp()) // EPOCH_SECONDS


def epoch_start(epoch: int) -> datetime:
    return datetime.fromtimestamp(epoch * EPOCH_SECONDS, tz=timezone.utc)


class SubmissionStatus(str, Enum):
    SUBMITTED = "submitted"
    ALREADY_SUBMITTED = "already_submitted"
    NOT_YET_DUE = "not_yet_due"
    NOT_READY = "not_ready"
    BLOCKED = "blocked"
    FAILED = "failed"
    IN_PROGRESS = "in_progress"


class DataSource(str, Enum):
    SNAPSHOT = "snapshot"
    PREVIOUS_SNAPSHOT = "previous_snapshot"
    LIVE = "live"


@dataclass(frozen=True)
class EpochScores:
    """Scores used for one epoch and where they came from."""
    epoch: int
    scores: dict[str, int]
    source: DataSource
    stale: bool
    snapshot_hour: Optional[datetime] = None
    note: str = ""


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of one submission attempt."""
    status: SubmissionStatus
    epoch: Optional[int] = None
    tx_hash: Optional[str] = None
    pairs: tuple[ViralPair, ...] = ()
    data_source: Optional[DataSource] = None
    stale: bool = False
    warnings: tuple[str, ...] = ()
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status == SubmissionStatus.SUBMITTED

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "epoch": self.epoch,
            "txHash": self.tx_hash,
            "pairs": [asdict(p) for p in self.pairs],
            "dataSource": self.data_source.value if self.data_source else None,
            "stale": self.stale,
            "warnings": list(self.warnings),
            "message": self.message,
        }


@dataclass(frozen=True)
class EpochStatus:
    ready: bool
    can_submit: bool
    current_epoch: int
    last_epoch: int
    signer_address: Optional[str] = None
    active_pairs: int = 0


@dataclass
class CoordinatorStats:
    attempts: int = 0
    submitted: int = 0
    failed: int = 0
    skipped: int = 0
    last_outcome: Optional[SubmissionOutcome] = field(default=None, repr=False)


class EpochCoordinator:
    """
    Drives epoch submission against the ViralScoreReporter contract.

    Usage:
        coordinator = EpochCoordinator(reporter, signer, snapshots, liquidity, store)
        outcome = await coordinator.submit()
        if outcome.status == SubmissionStatus.SUBMITTED:
            ...
    """

    def __init__(
        self,
        reporter: "ViralScoreReporterClient",
        signer: "MessageSigner",
        snapshots: "SnapshotRepository",
        liquidity: "LiquidityClient",
        store: "TokenScoreStore",
        matchers: Sequence[TokenMatcher] = DEFAULT_MATCHERS,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._reporter = reporter
        self._signer = signer
        self._snapshots = snapshots
        self._liquidity = liquidity
        self._store = store
        self._matchers = tuple(matchers)
        self._clock = clock
        self._lock = asyncio.Lock()
        self.stats = CoordinatorStats()

    @property
    def is_ready(self) -> bool:
        return self._signer.is_ready

    @property
    def in_progress(self) -> bool:
        return self._lock.locked()

    # =========================================================================
    # Status
    # =========================================================================

    async def status(self) -> EpochStatus:
        """
        Contract epoch counters and signer readiness.

        Raises:
            ExternalUnavailableError: Chain RPC unreachable
        """
        if not self._signer.is_ready:
            return EpochStatus(ready=False, can_submit=False, current_epoch=0, last_epoch=0)

        current = await self._reporter.current_epoch()
        last = await self._reporter.last_submitted_epoch()
        active = await self._reporter.active_viral_pairs_count()
        return EpochStatus(
            ready=True,
            can_submit=current > last,
            current_epoch=current,
            last_epoch=last,
            signer_address=self._signer.address,
            active_pairs=active,
        )

    # =========================================================================
    # Score resolution
    # =========================================================================

    def _live_scores(self) -> dict[str, int]:
        return {
            symbol: score
            for symbol, score in self._store.as_dict().items()
            if not self._store.is_blacklisted(symbol)
        }

    def _snapshot_scores(self, snapshots) -> dict[str, int]:
        return {
            s.token_symbol.upper(): s.score
            for s in snapshots
            if not self._store.is_blacklisted(s.token_symbol)
        }

    def _live(self, epoch: int, note: str) -> EpochScores:
        return EpochScores(
            epoch=epoch,
            scores=self._live_scores(),
            source=DataSource.LIVE,
            stale=True,
            note=note,
        )

    async def resolve_epoch_scores(self, epoch: int) -> EpochScores:
        """Scores for `epoch`, preferring its own snapshot."""
        hour = epoch_start(epoch)
        try:
            own = await self._snapshots.get_for_hour(hour)
            if own:
                return EpochScores(
                    epoch=epoch,
                    scores=self._snapshot_scores(own),
                    source=DataSource.SNAPSHOT,
                    stale=False,
                    snapshot_hour=hour,
                    note=f"Using snapshot {hour.isoformat()} for epoch {epoch}",
                )

            if epoch == epoch_for(self._clock()):
                previous_hour = hour - timedelta(hours=1)
                previous = await self._snapshots.get_for_hour(previous_hour)
                if previous:
                    return EpochScores(
                        epoch=epoch,
                        scores=self._snapshot_scores(previous),
                        source=DataSource.PREVIOUS_SNAPSHOT,
                        stale=True,
                        snapshot_hour=previous_hour,
                        note=(
                            f"Snapshot for epoch {epoch} not written yet, "
                            f"using previous hour {previous_hour.isoformat()}"
                        ),
                    )
        except SNAPSHOT_READ_ERRORS as e:
            logger.error(f"Snapshot lookup for epoch {epoch} failed: {e}")
            return self._live(epoch, f"Snapshot lookup failed ({e}), using live scores")

        return self._live(epoch, f"No snapshot for epoch {epoch}, using live scores")

    # =========================================================================
    # Submission
    # =========================================================================

    def _record(self, outcome: SubmissionOutcome) -> None:
        self.stats.last_outcome = outcome
        if outcome.status == SubmissionStatus.SUBMITTED:
            self.stats.submitted += 1
        elif outcome.status == SubmissionStatus.FAILED:
            self.stats.failed += 1
        else:
            self.stats.skipped += 1

    async def submit(self) -> SubmissionOutcome:
        """
        Attempt to submit the contract's current epoch.

        Returns IN_PROGRESS without waiting if another attempt is running.
        An unexpected error is recorded as a FAILED attempt and re-raised.
        """
        if self._lock.locked():
            logger.info("Epoch submission already in progress")
            return SubmissionOutcome(
                status=SubmissionStatus.IN_PROGRESS, message="Epoch submission already in progress"
            )

        async with self._lock:
            self.stats.attempts += 1
            outcome = None
            try:
                outcome = await self._attempt()
            finally:
                if outcome is None:
                    outcome = SubmissionOutcome(
                        status=SubmissionStatus.FAILED, message="Submission attempt raised an error"
                    )
                self._record(outcome)
            return outcome

    async def _attempt(self) -> SubmissionOutcome:
        if not self._signer.is_ready:
            logger.warning("Epoch submission skipped: signer not configured")
            return SubmissionOutcome(
                status=SubmissionStatus.NOT_READY,
                message="Signer not configured (SIGNER_PRIVATE_KEY missing); submission skipped",
            )

        try:
            current = await self._reporter.current_epoch()
            last = await self._reporter.last_submitted_epoch()
        except (ExternalUnavailableError, OnChainRejectedError) as e:
            logger.error(f"Could not read epoch counters: {e}")
            return SubmissionOutcome(status=SubmissionStatus.FAILED, message=str(e))

        if current <= last:
            status = SubmissionStatus.ALREADY_SUBMITTED if current == last else SubmissionStatus.NOT_YET_DUE
            message = f"Cannot submit: current epoch {current}, last submitted {last}"
            logger.info(message)
            return SubmissionOutcome(status=status, epoch=current, message=message)

        epoch = current
        epoch_scores = await self.resolve_epoch_scores(epoch)
        warnings = []
        if epoch_scores.stale:
            warnings.append(epoch_scores.note)
            logger.warning(f"Epoch {epoch}: {epoch_scores.note}")
        else:
            logger.info(f"Epoch {epoch}: {epoch_scores.note}")

        def blocked(message: str) -> SubmissionOutcome:
            logger.error(f"Epoch {epoch} blocked: {message}")
            return SubmissionOutcome(
                status=SubmissionStatus.BLOCKED,
                epoch=epoch,
                data_source=epoch_scores.source,
                stale=epoch_scores.stale,
                warnings=tuple(warnings),
                message=message,
            )

        if not epoch_scores.scores:
            return blocked("No token scores available")

        try:
            tokens = await self._liquidity.get_token_pools()
        except ExternalUnavailableError as e:
            logger.error(f"Liquidity source unavailable for epoch {epoch}: {e}")
            return SubmissionOutcome(
                status=SubmissionStatus.FAILED,
                epoch=epoch,
                data_source=epoch_scores.source,
                stale=epoch_scores.stale,
                warnings=tuple(warnings),
                message=str(e),
            )

        rankings = build_rankings(epoch_scores.scores, tokens, self._matchers)
        pairs = build_viral_pairs(rankings)
        if not pairs:
            return blocked("No ranked tokens with quote-token pools")

        for index, ranking in enumerate(rankings[:3], start=1):
            logger.info(
                f"  {index}. {ranking.symbol} score={ranking.score} "
                f"binSteps={list(ranking.bin_steps)} [{ranking.matched_by}]"
            )

        try:
            last = await self._reporter.last_submitted_epoch()
            if last >= epoch:
                message = f"Epoch {epoch} was submitted meanwhile (last submitted {last})"
                logger.info(message)
                return SubmissionOutcome(
                    status=SubmissionStatus.ALREADY_SUBMITTED, epoch=epoch, message=message
                )
            if not await self._reporter.check_signer(self._signer.address):
                warnings.append("Local signer differs from the contract's trusted signer")
        except (ExternalUnavailableError, OnChainRejectedError) as e:
            logger.error(f"Could not re-check epoch {epoch} before signing: {e}")
            return SubmissionOutcome(status=SubmissionStatus.FAILED, epoch=epoch, message=str(e))

        outcome_fields = dict(
            epoch=epoch,
            pairs=tuple(pairs),
            data_source=epoch_scores.source,
            stale=epoch_scores.stale,
        )
        try:
            signed = self._signer.sign_epoch(epoch, pairs)
            receipt = await self._reporter.submit_epoch(epoch, pairs, signed.signature)
        except ConfigurationError as e:
            logger.warning(f"Epoch {epoch} not submitted: {e}")
            return SubmissionOutcome(
                status=SubmissionStatus.NOT_READY, warnings=tuple(warnings), message=str(e), **outcome_fields
            )
        except OnChainRejectedError as e:
            logger.error(f"Epoch {epoch} rejected on chain: {e}")
            return SubmissionOutcome(
                status=SubmissionStatus.FAILED,
                tx_hash=e.tx_hash,
                warnings=tuple(warnings),
                message=str(e),
                **outcome_fields,
            )
        except ExternalUnavailableError as e:
            logger.error(f"Epoch {epoch} submission failed: {e}")
            return SubmissionOutcome(
                status=SubmissionStatus.FAILED, warnings=tuple(warnings), message=str(e), **outcome_fields
            )

        logger.info(f"Epoch {epoch} submitted with {len(pairs)} pairs, tx: {receipt.tx_hash}")
        return SubmissionOutcome(
            status=SubmissionStatus.SUBMITTED,
            tx_hash=receipt.tx_hash,
            warnings=tuple(warnings),
            message=f"Epoch {epoch} submitted",
            **outcome_fields,
        )

    # =========================================================================
    # Reconciliation
    # =========================================================================

    async def reconcile(self) -> SubmissionOutcome:
        """
        Catch up a single missed epoch.

        One missing epoch is submitted now; more than one is only
        reported, since older epochs may no longer have snapshots.
        """
        if not self._signer.is_ready:
            logger.warning("Epoch check skipped: signer not configured")
            return SubmissionOutcome(status=SubmissionStatus.NOT_READY, message="Signer not configured")

        try:
            current = await self._reporter.current_epoch()
            last = await self._reporter.last_submitted_epoch()
        except (ExternalUnavailableError, OnChainRejectedError) as e:
            logger.error(f"Epoch check failed: {e}")
            return SubmissionOutcome(status=SubmissionStatus.FAILED, message=str(e))

        missing = current - last
        if missing <= 0:
            logger.info(f"All epochs up to date (current={current}, last={last})")
            return SubmissionOutcome(
                status=SubmissionStatus.ALREADY_SUBMITTED, epoch=current, message="All epochs up to date"
            )

        if missing > 1:
            message = (
                f"{missing} epochs missing (current={current}, last={last}); "
                f"only the current epoch can be submitted, manual submission recommended"
            )
            logger.warning(message)
            return SubmissionOutcome(status=SubmissionStatus.BLOCKED, epoch=current, message=message)

        if len(self._store) == 0:
            message = f"Epoch {current} missing but no token scores are available yet"
            logger.warning(message)
            return SubmissionOutcome(status=SubmissionStatus.BLOCKED, epoch=current, message=message)

        logger.info(f"Epoch {current} missing, attempting catch-up submission")
        return await self.submit()

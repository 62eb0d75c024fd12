"""
Health Checker for component health monitoring.

Monitors the database, the chain RPC, signer readiness (including the
contract's trusted signer) and score freshness.
"""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Callable, List, Optional

from viral_score.errors import ExternalUnavailableError, OnChainRejectedError

if TYPE_CHECKING:
    from viral_score.chain.reporter import ViralScoreReporterClient
    from viral_score.scoring.store import TokenScoreStore
    from viral_score.signing.signer import MessageSigner
    from viral_score.storage import Database

logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Health status levels."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    WARNING = "warning"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health check result for a single component."""

    component: str
    status: HealthStatus
    message: str
    latency_ms: Optional[float] = None


@dataclass
class AggregateHealth:
    """Overall system health."""

    status: HealthStatus
    components: List[ComponentHealth] = field(default_factory=list)
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "checkedAt": self.checked_at.isoformat(),
            "components": {
                c.component: {
                    "status": c.status.value,
                    "message": c.message,
                    "latencyMs": c.latency_ms,
                }
                for c in self.components
            },
        }


class HealthChecker:
    """
    Checks health of the oracle's components.

    A missing signer only degrades the service: scores are still computed
    and served, only signing and epoch submission are off.

    Usage:
        checker = HealthChecker(db, reporter, signer, store)
        health = await checker.check_database()
        overall = await checker.check_all()
    """

    def __init__(
        self,
        db: Optional["Database"] = None,
        reporter: Optional["ViralScoreReporterClient"] = None,
        signer: Optional["MessageSigner"] = None,
        store: Optional["TokenScoreStore"] = None,
        score_staleness_threshold: float = 300.0,  # 5 minutes
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.db = db
        self._reporter = reporter
        self._signer = signer
        self._store = store
        self._score_staleness_threshold = score_staleness_threshold
        self._clock = clock

    async def check_database(self) -> ComponentHealth:
        start_time = time.time()

        if self.db is None:
            return ComponentHealth(
                component="database",
                status=HealthStatus.UNHEALTHY,
                message="No database connection configured",
            )

        try:
            await self.db.execute("SELECT 1")
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return ComponentHealth(
                component="database",
                status=HealthStatus.UNHEALTHY,
                message=f"Database error: {e}",
            )

        return ComponentHealth(
            component="database",
            status=HealthStatus.HEALTHY,
            message="Database is accessible",
            latency_ms=(time.time() - start_time) * 1000,
        )

    async def check_chain(self) -> ComponentHealth:
        """RPC reachability plus the contract's current epoch."""
        start_time = time.time()

        if self._reporter is None:
            return ComponentHealth(
                component="chain",
                status=HealthStatus.UNHEALTHY,
                message="No chain client configured",
            )

        if not await self._reporter.is_connected():
            return ComponentHealth(
                component="chain",
                status=HealthStatus.UNHEALTHY,
                message="RPC endpoint not reachable",
            )

        try:
            epoch = await self._reporter.current_epoch()
        except (ExternalUnavailableError, OnChainRejectedError) as e:
            return ComponentHealth(
                component="chain",
                status=HealthStatus.DEGRADED,
                message=f"Contract read failed: {e}",
            )

        return ComponentHealth(
            component="chain",
            status=HealthStatus.HEALTHY,
            message=f"Contract reachable, current epoch {epoch}",
            latency_ms=(time.time() - start_time) * 1000,
        )

    async def check_signer(self) -> ComponentHealth:
        if self._signer is None or not self._signer.is_ready:
            return ComponentHealth(
                component="signer",
                status=HealthStatus.DEGRADED,
                message="Signer not configured - signing and submission disabled",
            )

        if self._reporter is None:
            return ComponentHealth(
                component="signer",
                status=HealthStatus.HEALTHY,
                message=f"Signer ready ({self._signer.address})",
            )

        try:
            matches = await self._reporter.check_signer(self._signer.address)
        except (ExternalUnavailableError, OnChainRejectedError) as e:
            return ComponentHealth(
                component="signer",
                status=HealthStatus.WARNING,
                message=f"Signer ready, trusted signer unknown: {e}",
            )

        if not matches:
            return ComponentHealth(
                component="signer",
                status=HealthStatus.WARNING,
                message=f"Signer {self._signer.address} is not the contract's trusted signer",
            )
        return ComponentHealth(
            component="signer",
            status=HealthStatus.HEALTHY,
            message=f"Signer ready and trusted ({self._signer.address})",
        )

    async def check_scores(self) -> ComponentHealth:
        if self._store is None or self._store.updated_at is None:
            return ComponentHealth(
                component="scores",
                status=HealthStatus.WARNING,
                message="No collection cycle completed yet",
            )

        age = (self._clock() - self._store.updated_at).total_seconds()
        if age > self._score_staleness_threshold:
            return ComponentHealth(
                component="scores",
                status=HealthStatus.WARNING,
                message=f"Scores are stale ({age:.0f}s old, {len(self._store)} tokens)",
            )
        return ComponentHealth(
            component="scores",
            status=HealthStatus.HEALTHY,
            message=f"{len(self._store)} tokens, updated {age:.0f}s ago",
        )

    async def check_all(self, timeout: float = 5.0) -> AggregateHealth:
        """
        Check all components with timeout.

        Args:
            timeout: Maximum time for all checks in seconds
        """
        components = []

        checks = [
            ("database", self.check_database),
            ("chain", self.check_chain),
            ("signer", self.check_signer),
            ("scores", self.check_scores),
        ]

        for name, check_func in checks:
            try:
                result = await asyncio.wait_for(
                    check_func(),
                    timeout=timeout / len(checks),
                )
                components.append(result)
            except asyncio.TimeoutError:
                components.append(ComponentHealth(
                    component=name,
                    status=HealthStatus.UNHEALTHY,
                    message=f"{name} check timed out",
                ))
            except Exception as e:
                logger.error(f"{name} health check raised: {e}")
                components.append(ComponentHealth(
                    component=name,
                    status=HealthStatus.UNHEALTHY,
                    message=f"{name} check failed: {str(e)}",
                ))

        return AggregateHealth(
            status=self._calculate_overall_status(components),
            components=components,
            checked_at=self._clock(),
        )

    def _calculate_overall_status(
        self,
        components: List[ComponentHealth],
    ) -> HealthStatus:
        """Calculate overall status from component statuses."""
        statuses = [c.status for c in components]

        if HealthStatus.UNHEALTHY in statuses:
            return HealthStatus.UNHEALTHY

        if HealthStatus.DEGRADED in statuses or HealthStatus.WARNING in statuses:
            return HealthStatus.DEGRADED

        return HealthStatus.HEALTHY

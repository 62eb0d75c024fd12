"""
Viral Score Oracle - Main Entry Point

Runs the oracle: periodic metric collection and scoring, hourly
snapshots, Merkle checkpoints and hourly epoch submission to the
ViralScoreReporter contract.

Usage:
    python -m viral_score.main                    # Run the service
    python -m viral_score.main --once             # One collection cycle + status, then exit
    python -m viral_score.main --log-level DEBUG

Environment Variables:
    DATABASE_URL                  PostgreSQL connection string (required)
    SIGNER_PRIVATE_KEY            Oracle signing key (optional; without it
                                  signing and epoch submission are disabled)
    RPC_URL                       Chain RPC endpoint
    CHAIN_ID                      Chain id (default: 43522)
    VIRAL_SCORE_REPORTER_ADDRESS  ViralScoreReporter contract address
    GRAPHQL_ENDPOINT              Liquidity indexer GraphQL endpoint
    QUOTE_TOKEN_ADDRESS           Quote token for viral pairs
    RECEIPT_TIMEOUT_SECONDS       Max wait for a submission receipt (default: 120)
    COLLECTION_INTERVAL_SECONDS   Collection interval (default: 10)
    METRICS_WINDOW_DAYS           Aggregation window (default: 7)
    SCORE_CACHE_LIMIT             Tokens kept in the score cache (default: 100)
    CHECKPOINT_TOP_TOKENS         Tokens included in checkpoints (default: 20)
    LOG_LEVEL                     Logging level (DEBUG/INFO/WARNING/ERROR)
    PID_FILE                      Single-instance lock file
"""

from __future__ import annotations

import argparse
import asyncio
import atexit
import fcntl
import logging
import os
import signal
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

from viral_score.chain.reporter import (
    DEFAULT_CHAIN_ID,
    DEFAULT_REPORTER_ADDRESS,
    DEFAULT_RPC_URL,
    ViralScoreReporterClient,
)
from viral_score.core import BackgroundTaskConfig, BackgroundTasksManager, ViralScoreService
from viral_score.errors import ExternalUnavailableError, OnChainRejectedError
from viral_score.ingestion import LiquidityClient, PostStoreMetricSource
from viral_score.ingestion.liquidity import DEFAULT_GRAPHQL_ENDPOINT, DEFAULT_QUOTE_TOKEN
from viral_score.merkle import MerkleCheckpointBuilder
from viral_score.monitoring import HealthChecker, HealthStatus
from viral_score.scoring import ScoreEngine, TokenScoreStore
from viral_score.settlement import EpochCoordinator
from viral_score.signing import MessageSigner, ScoreSigner
from viral_score.storage import (
    CheckpointRepository,
    DailyRollupRepository,
    Database,
    DatabaseConfig,
    PairScoreRepository,
    SnapshotRepository,
    SocialPostRepository,
    apply_schema,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# The nonce cache assumes one process per database
DEFAULT_PID_FILE = "/tmp/viral-score-oracle.pid"


class SingletonLockError(Exception):
    """Raised when another oracle instance is already running."""


@contextmanager
def singleton_lock(pid_file: str = DEFAULT_PID_FILE) -> Generator[None, None, None]:
    """
    Ensure only one oracle instance runs at a time.

    Uses an exclusive non-blocking flock on the PID file; the lock is
    released when the context exits or the process dies.

    Raises:
        SingletonLockError: If another instance holds the lock
    """
    pid_path = Path(pid_file)

    existing_pid = None
    try:
        existing_pid = pid_path.read_text().strip()
    except FileNotFoundError:
        pass

    # "a+" so the file is not truncated before we hold the lock
    fp = open(pid_path, "a+")

    try:
        fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except OSError:
        fp.close()
        if existing_pid:
            raise SingletonLockError(
                f"Another oracle instance is already running (PID: {existing_pid}). "
                f"Kill it with: kill {existing_pid}"
            )
        raise SingletonLockError("Another oracle instance is already running")

    fp.seek(0)
    fp.truncate()
    fp.write(str(os.getpid()))
    fp.flush()

    def cleanup():
        if fp.closed:
            return
        fcntl.flock(fp.fileno(), fcntl.LOCK_UN)
        fp.close()
        pid_path.unlink(missing_ok=True)

    atexit.register(cleanup)

    try:
        logger.info(f"Acquired singleton lock (PID: {os.getpid()}, file: {pid_file})")
        yield
    finally:
        cleanup()
        atexit.unregister(cleanup)


@dataclass(frozen=True)
class ServiceConfig:
    """Process configuration, loaded once at start."""

    database_url: str = ""
    signer_private_key: Optional[str] = None
    rpc_url: str = DEFAULT_RPC_URL
    chain_id: int = DEFAULT_CHAIN_ID
    reporter_address: str = DEFAULT_REPORTER_ADDRESS
    graphql_endpoint: str = DEFAULT_GRAPHQL_ENDPOINT
    quote_token: str = DEFAULT_QUOTE_TOKEN
    receipt_timeout_seconds: float = 120.0
    collection_interval_seconds: float = 10.0
    metrics_window_days: int = 7
    score_cache_limit: int = 100
    checkpoint_top_tokens: int = 20
    log_level: str = "INFO"
    pid_file: str = DEFAULT_PID_FILE
    health_check_interval_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> "ServiceConfig":
        """Load configuration from environment variables."""
        return cls(
            database_url=os.environ.get("DATABASE_URL", ""),
            signer_private_key=os.environ.get("SIGNER_PRIVATE_KEY") or None,
            rpc_url=os.environ.get("RPC_URL", DEFAULT_RPC_URL),
            chain_id=int(os.environ.get("CHAIN_ID", str(DEFAULT_CHAIN_ID))),
            reporter_address=os.environ.get("VIRAL_SCORE_REPORTER_ADDRESS", DEFAULT_REPORTER_ADDRESS),
            graphql_endpoint=os.environ.get("GRAPHQL_ENDPOINT", DEFAULT_GRAPHQL_ENDPOINT),
            quote_token=os.environ.get("QUOTE_TOKEN_ADDRESS", DEFAULT_QUOTE_TOKEN),
            receipt_timeout_seconds=float(os.environ.get("RECEIPT_TIMEOUT_SECONDS", "120")),
            collection_interval_seconds=float(os.environ.get("COLLECTION_INTERVAL_SECONDS", "10")),
            metrics_window_days=int(os.environ.get("METRICS_WINDOW_DAYS", "7")),
            score_cache_limit=int(os.environ.get("SCORE_CACHE_LIMIT", "100")),
            checkpoint_top_tokens=int(os.environ.get("CHECKPOINT_TOP_TOKENS", "20")),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
            pid_file=os.environ.get("PID_FILE", DEFAULT_PID_FILE),
        )

    def task_config(self) -> BackgroundTaskConfig:
        return BackgroundTaskConfig(collection_interval_seconds=self.collection_interval_seconds)


class ViralScoreApp:
    """
    Process lifecycle: database -> schema -> clients -> service -> tasks.

    Usage:
        app = ViralScoreApp(ServiceConfig.from_env())
        await app.run()
    """

    def __init__(self, config: ServiceConfig):
        self.config = config
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._fatal_error: Optional[BaseException] = None

        self._db: Optional[Database] = None
        self._liquidity: Optional[LiquidityClient] = None
        self._reporter: Optional[ViralScoreReporterClient] = None
        self._signer: Optional[MessageSigner] = None
        self.service: Optional[ViralScoreService] = None
        self._background_tasks: Optional[BackgroundTasksManager] = None
        self._health_checker: Optional[HealthChecker] = None

    async def initialize(self) -> None:
        if not self.config.database_url:
            raise ValueError("DATABASE_URL environment variable is required")

        self._db = Database(DatabaseConfig(url=self.config.database_url))
        await self._db.initialize()
        if not await self._db.health_check():
            raise RuntimeError("Database health check failed")
        await apply_schema(self._db)
        logger.info("Database: Connected")

        self._signer = MessageSigner(self.config.signer_private_key)
        self._reporter = ViralScoreReporterClient(
            rpc_url=self.config.rpc_url,
            contract_address=self.config.reporter_address,
            chain_id=self.config.chain_id,
            private_key=self.config.signer_private_key,
            receipt_timeout=self.config.receipt_timeout_seconds,
        )
        self._liquidity = LiquidityClient(
            endpoint=self.config.graphql_endpoint,
            chain_id=self.config.chain_id,
            quote_token=self.config.quote_token,
        )

        store = TokenScoreStore()
        snapshots = SnapshotRepository(self._db)
        self.service = ViralScoreService(
            engine=ScoreEngine(),
            store=store,
            metric_source=PostStoreMetricSource(
                SocialPostRepository(self._db),
                window_days=self.config.metrics_window_days,
            ),
            signer=ScoreSigner(self._signer, PairScoreRepository(self._db)),
            checkpoints=MerkleCheckpointBuilder(CheckpointRepository(self._db)),
            coordinator=EpochCoordinator(
                reporter=self._reporter,
                signer=self._signer,
                snapshots=snapshots,
                liquidity=self._liquidity,
                store=store,
            ),
            snapshots=snapshots,
            rollups=DailyRollupRepository(self._db),
            cache_limit=self.config.score_cache_limit,
            checkpoint_top_tokens=self.config.checkpoint_top_tokens,
        )
        self._health_checker = HealthChecker(
            db=self._db,
            reporter=self._reporter,
            signer=self._signer,
            store=store,
        )

        if self._signer.is_ready:
            try:
                await self._reporter.check_signer(self._signer.address)
            except (ExternalUnavailableError, OnChainRejectedError) as e:
                logger.warning(f"Could not verify trusted signer at startup: {e}")

    async def run(self) -> int:
        """Run until a signal or a fatal job error. Returns the exit code."""
        logger.info("=" * 60)
        logger.info("VIRAL SCORE ORACLE")
        logger.info("=" * 60)

        self._running = True
        self._shutdown_event.clear()
        self._setup_signal_handlers()

        try:
            await self.initialize()
            if self._shutdown_event.is_set():
                logger.info("Shutdown requested during startup")
                return 0

            self._background_tasks = BackgroundTasksManager(
                self.service,
                config=self.config.task_config(),
                on_fatal=self.request_shutdown,
            )
            await self._background_tasks.start()

            logger.info("Oracle started successfully")
            await self._run_loop()
        finally:
            await self.stop()

        return 1 if self._fatal_error else 0

    async def run_once(self) -> int:
        """One collection cycle, then report epoch status and the leaderboard."""
        try:
            await self.initialize()
            result = await self.service.run_collection_cycle()
            logger.info(f"Scored {result.tokens} tokens")
            for rank, score in enumerate(self.service.leaderboard(10), start=1):
                logger.info(f"  #{rank} {score.symbol}: {score.value} ({score.tier.value})")

            status = await self.service.get_epoch_status()
            logger.info(
                f"Epoch status: ready={status.ready}, current={status.current_epoch}, "
                f"last={status.last_epoch}, can_submit={status.can_submit}"
            )
            return 0
        finally:
            await self.stop()

    async def stop(self) -> None:
        self._running = False
        self._shutdown_event.set()

        if self._background_tasks:
            await self._background_tasks.stop()
            self._background_tasks = None

        if self._liquidity:
            await self._liquidity.close()
            self._liquidity = None

        if self._db:
            await self._db.close()
            self._db = None

        logger.info("Shutdown complete")

    def request_shutdown(self, error: Optional[BaseException] = None) -> None:
        if error is not None:
            logger.critical(f"Fatal error, shutting down: {error}")
            self._fatal_error = error
        self._running = False
        self._shutdown_event.set()

    async def _run_loop(self) -> None:
        """Wait for shutdown, checking component health periodically."""
        while self._running:
            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.config.health_check_interval_seconds,
                )
                break
            except asyncio.TimeoutError:
                pass

            health = await self._health_checker.check_all()
            unhealthy = [c.component for c in health.components if c.status == HealthStatus.UNHEALTHY]
            if unhealthy:
                logger.warning(f"Health check failed: {unhealthy}")
            else:
                logger.debug(f"Health: {health.status.value}")

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()

        def handle_signal(sig):
            logger.info(f"Received signal {sig}")
            self.request_shutdown()

        try:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, lambda s=sig: handle_signal(s))
        except NotImplementedError:
            logger.debug("Signal handlers not supported on this platform")


def load_env_file(path: str = ".env") -> None:
    """Load environment variables from .env file if it exists."""
    env_path = Path(path)
    if env_path.exists():
        logger.info(f"Loading environment from {env_path}")
        with open(env_path) as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith("#") and "=" in line:
                    key, _, value = line.partition("=")
                    value = value.strip().strip('"').strip("'")
                    os.environ.setdefault(key.strip(), value)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Viral Score Oracle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one collection cycle, report status and exit",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level",
    )
    return parser.parse_args(argv)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def main_async(args: argparse.Namespace, config: ServiceConfig) -> int:
    """Async main function."""
    if not config.database_url:
        logger.error("DATABASE_URL environment variable is required")
        return 1

    app = ViralScoreApp(config)
    try:
        if args.once:
            return await app.run_once()
        return await app.run()
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    load_env_file()
    args = parse_args(argv)
    config = ServiceConfig.from_env()
    configure_logging(args.log_level or config.log_level)
    logger.info(f"Started at {datetime.now(timezone.utc).isoformat()}")

    try:
        with singleton_lock(config.pid_file):
            try:
                return asyncio.run(main_async(args, config))
            except KeyboardInterrupt:
                return 0
    except SingletonLockError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())

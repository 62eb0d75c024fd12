"""
Background tasks - scheduled jobs for the oracle.

Jobs run on APScheduler's AsyncIOScheduler (UTC):
- Metrics collection (interval, may overlap)
- Epoch submission (top of every hour)
- Epoch reconciliation (interval, plus once shortly after start)
- Hourly score snapshot (minute 5)
- Daily rollup (00:10)
- Score cache trim (interval)
- Merkle checkpoint build (minute 15)

Every job is wrapped in a ScheduledJob: failures are logged and never
reach the scheduler, a tick that arrives while a non-overlapping job is
still running is skipped, and only InvariantViolationError is escalated
to the owner through `on_fatal`.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from viral_score.errors import InvariantViolationError, NotFoundError

if TYPE_CHECKING:
    from apscheduler.triggers.base import BaseTrigger

    from viral_score.core.service import ViralScoreService

logger = logging.getLogger(__name__)

# Job names
COLLECT_METRICS = "collect_metrics"
SUBMIT_EPOCH = "submit_epoch"
RECONCILE_EPOCHS = "reconcile_epochs"
HOURLY_SNAPSHOT = "hourly_snapshot"
DAILY_ROLLUP = "daily_rollup"
TRIM_CACHE = "trim_cache"
BUILD_CHECKPOINT = "build_checkpoint"


@dataclass
class BackgroundTaskConfig:
    """Configuration for background tasks."""

    # Metrics collection
    collection_interval_seconds: float = 10
    collection_enabled: bool = True

    # Epoch submission, at this minute of every hour
    epoch_submission_minute: int = 0
    epoch_submission_enabled: bool = True

    # Reconciliation of missed epochs
    reconciliation_interval_seconds: float = 300  # 5 minutes
    reconciliation_enabled: bool = True
    startup_reconcile_delay_seconds: float = 10

    # Hourly snapshot
    snapshot_minute: int = 5
    snapshot_enabled: bool = True

    # Daily rollup of the previous UTC day
    daily_rollup_hour: int = 0
    daily_rollup_minute: int = 10
    daily_rollup_enabled: bool = True

    # Score cache trim
    cache_trim_interval_seconds: float = 300  # 5 minutes
    cache_trim_enabled: bool = True

    # Merkle checkpoint
    checkpoint_minute: int = 15
    checkpoint_enabled: bool = True


class JobRunStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    ALREADY_RUNNING = "already_running"


@dataclass(frozen=True)
class JobRunResult:
    job: str
    status: JobRunStatus
    value: Any = None
    error: Optional[str] = None
    duration_ms: float = 0.0


@dataclass
class JobStats:
    runs: int = 0
    failures: int = 0
    skipped: int = 0
    last_started_at: Optional[datetime] = None
    last_duration_ms: Optional[float] = None
    last_error: Optional[str] = None


@dataclass
class ScheduledJob:
    """
    A named unit of scheduled work.

    `func` may be a coroutine function or a plain callable.
    """
    name: str
    func: Callable[[], Any]
    allow_overlap: bool = False
    description: str = ""
    on_fatal: Optional[Callable[[BaseException], None]] = None
    stats: JobStats = field(default_factory=JobStats)
    _active: int = field(default=0, init=False, repr=False)

    @property
    def is_running(self) -> bool:
        return self._active > 0

    async def run(self) -> JobRunResult:
        if self._active and not self.allow_overlap:
            self.stats.skipped += 1
            logger.info(f"Skipping {self.name}: previous run still in progress")
            return JobRunResult(job=self.name, status=JobRunStatus.ALREADY_RUNNING)

        self._active += 1
        self.stats.runs += 1
        self.stats.last_started_at = datetime.now(timezone.utc)
        started = time.monotonic()
        try:
            value = self.func()
            if inspect.isawaitable(value):
                value = await value
        except asyncio.CancelledError:
            raise
        except InvariantViolationError as e:
            logger.critical(f"Job {self.name} hit an invariant violation: {e}")
            self._record_failure(e)
            if self.on_fatal is not None:
                self.on_fatal(e)
            return JobRunResult(job=self.name, status=JobRunStatus.FAILED, error=str(e))
        except Exception as e:
            logger.error(f"Job {self.name} failed: {e}", exc_info=True)
            self._record_failure(e)
            return JobRunResult(job=self.name, status=JobRunStatus.FAILED, error=str(e))
        finally:
            self._active -= 1
            self.stats.last_duration_ms = (time.monotonic() - started) * 1000

        self.stats.last_error = None
        return JobRunResult(
            job=self.name,
            status=JobRunStatus.COMPLETED,
            value=value,
            duration_ms=self.stats.last_duration_ms,
        )

    def _record_failure(self, error: BaseException) -> None:
        self.stats.failures += 1
        self.stats.last_error = str(error)


class TaskScheduler:
    """
    Registry of ScheduledJobs driven by an AsyncIOScheduler.

    Usage:
        scheduler = TaskScheduler()
        scheduler.add(ScheduledJob("trim_cache", service.trim_cache), IntervalTrigger(minutes=5))
        scheduler.start()
        result = await scheduler.run_now("trim_cache")
        scheduler.shutdown()
    """

    def __init__(self, scheduler: Optional[AsyncIOScheduler] = None) -> None:
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self._jobs: dict[str, ScheduledJob] = {}

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    @property
    def jobs(self) -> dict[str, ScheduledJob]:
        return dict(self._jobs)

    def add(self, job: ScheduledJob, trigger: "BaseTrigger") -> None:
        self._jobs[job.name] = job
        # Non-overlapping jobs get a second instance slot so the skip is ours to log
        self._scheduler.add_job(
            job.run,
            trigger,
            id=job.name,
            name=job.description or job.name,
            replace_existing=True,
            max_instances=10 if job.allow_overlap else 2,
            coalesce=True,
            misfire_grace_time=60,
        )
        logger.debug(f"Scheduled job {job.name} ({trigger})")

    def schedule_once(self, name: str, delay_seconds: float) -> None:
        """Run a registered job once, `delay_seconds` from now."""
        job = self._get(name)
        run_date = datetime.now(timezone.utc) + timedelta(seconds=delay_seconds)
        self._scheduler.add_job(
            job.run,
            DateTrigger(run_date=run_date),
            id=f"{name}_once",
            name=f"{job.description or name} (one-off)",
            replace_existing=True,
        )
        logger.info(f"Scheduled one-off {name} at {run_date.isoformat()}")

    def start(self) -> None:
        if self.running:
            logger.warning("Task scheduler already running")
            return
        self._scheduler.start()
        logger.info(f"Task scheduler started with {len(self._jobs)} jobs")

    def shutdown(self) -> None:
        if not self.running:
            return
        self._scheduler.shutdown(wait=False)
        logger.info("Task scheduler stopped")

    async def run_now(self, name: str) -> JobRunResult:
        """Run a job immediately through the same guard as scheduled ticks."""
        return await self._get(name).run()

    def pause(self, name: str) -> None:
        self._get(name)
        self._scheduler.pause_job(name)
        logger.info(f"Paused job {name}")

    def resume(self, name: str) -> None:
        self._get(name)
        self._scheduler.resume_job(name)
        logger.info(f"Resumed job {name}")

    def status(self) -> list[dict]:
        rows = []
        for name, job in self._jobs.items():
            scheduled = self._scheduler.get_job(name)
            next_run = getattr(scheduled, "next_run_time", None)
            rows.append({
                "name": name,
                "running": job.is_running,
                "next_run": next_run.isoformat() if next_run else None,
                "runs": job.stats.runs,
                "failures": job.stats.failures,
                "skipped": job.stats.skipped,
                "last_error": job.stats.last_error,
            })
        return rows

    def _get(self, name: str) -> ScheduledJob:
        job = self._jobs.get(name)
        if job is None:
            raise NotFoundError(f"Unknown job: {name}", key=name)
        return job


class BackgroundTasksManager:
    """
    Wires the service's periodic work onto a TaskScheduler.

    Usage:
        manager = BackgroundTasksManager(service, BackgroundTaskConfig())
        await manager.start()
        # ... service runs ...
        await manager.stop()
    """

    def __init__(
        self,
        service: "ViralScoreService",
        config: Optional[BackgroundTaskConfig] = None,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
        scheduler: Optional[TaskScheduler] = None,
    ) -> None:
        self._service = service
        self._config = config or BackgroundTaskConfig()
        self._on_fatal = on_fatal
        self._scheduler = scheduler or TaskScheduler()
        self._registered = False

    @property
    def scheduler(self) -> TaskScheduler:
        return self._scheduler

    @property
    def is_running(self) -> bool:
        return self._scheduler.running

    def _job(self, name: str, func: Callable[[], Any], description: str, allow_overlap: bool = False) -> ScheduledJob:
        return ScheduledJob(
            name=name,
            func=func,
            allow_overlap=allow_overlap,
            description=description,
            on_fatal=self._on_fatal,
        )

    def register_jobs(self) -> list[str]:
        """Register every enabled job. Returns their names."""
        cfg = self._config
        service = self._service
        plan = [
            (
                cfg.collection_enabled,
                self._job(COLLECT_METRICS, service.run_collection_cycle, "Collect metrics", allow_overlap=True),
                IntervalTrigger(seconds=cfg.collection_interval_seconds),
            ),
            (
                cfg.epoch_submission_enabled,
                self._job(SUBMIT_EPOCH, service.trigger_epoch_submission, "Submit epoch"),
                CronTrigger(minute=cfg.epoch_submission_minute, timezone="UTC"),
            ),
            (
                cfg.reconciliation_enabled,
                self._job(RECONCILE_EPOCHS, service.reconcile_epochs, "Reconcile epochs"),
                IntervalTrigger(seconds=cfg.reconciliation_interval_seconds),
            ),
            (
                cfg.snapshot_enabled,
                self._job(HOURLY_SNAPSHOT, service.write_hourly_snapshot, "Hourly score snapshot"),
                CronTrigger(minute=cfg.snapshot_minute, timezone="UTC"),
            ),
            (
                cfg.daily_rollup_enabled,
                self._job(DAILY_ROLLUP, service.write_daily_rollup, "Daily score rollup"),
                CronTrigger(hour=cfg.daily_rollup_hour, minute=cfg.daily_rollup_minute, timezone="UTC"),
            ),
            (
                cfg.cache_trim_enabled,
                self._job(TRIM_CACHE, service.trim_cache, "Trim score cache"),
                IntervalTrigger(seconds=cfg.cache_trim_interval_seconds),
            ),
            (
                cfg.checkpoint_enabled,
                self._job(BUILD_CHECKPOINT, service.build_checkpoint, "Build Merkle checkpoint"),
                CronTrigger(minute=cfg.checkpoint_minute, timezone="UTC"),
            ),
        ]

        names = []
        for enabled, job, trigger in plan:
            if not enabled:
                logger.info(f"Job {job.name} disabled")
                continue
            self._scheduler.add(job, trigger)
            names.append(job.name)
        self._registered = True
        return names

    async def start(self) -> None:
        if self.is_running:
            logger.warning("BackgroundTasksManager already running")
            return

        logger.info("Starting background tasks...")
        if not self._registered:
            names = self.register_jobs()
            logger.info(f"Registered jobs: {', '.join(names)}")
        self._scheduler.start()

        if self._config.reconciliation_enabled:
            self._scheduler.schedule_once(RECONCILE_EPOCHS, self._config.startup_reconcile_delay_seconds)

    async def stop(self) -> None:
        logger.info("Stopping background tasks...")
        self._scheduler.shutdown()

    async def run_now(self, name: str) -> JobRunResult:
        return await self._scheduler.run_now(name)

    def status(self) -> list[dict]:
        return self._scheduler.status()

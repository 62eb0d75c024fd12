"""
Core Layer - service facade and scheduled jobs.

This module provides:
    - ViralScoreService: collection, lookups, signing, checkpoints, settlement
    - BackgroundTasksManager / TaskScheduler: APScheduler-driven jobs
"""

from .background_tasks import (
    BackgroundTaskConfig,
    BackgroundTasksManager,
    JobRunResult,
    JobRunStatus,
    ScheduledJob,
    TaskScheduler,
)
from .service import CollectionResult, ViralScoreService, rollup_snapshots

__all__ = [
    "BackgroundTaskConfig",
    "BackgroundTasksManager",
    "CollectionResult",
    "JobRunResult",
    "JobRunStatus",
    "ScheduledJob",
    "TaskScheduler",
    "ViralScoreService",
    "rollup_snapshots",
]

"""
Scoring layer test fixtures.

The scoring layer is pure, so fixtures only build metrics at a fixed
reference time.
"""
from datetime import datetime, timedelta, timezone

import pytest

from viral_score.scoring import AggregatedMetrics, ScoreEngine, TokenScoreStore


# =============================================================================
# Time Fixtures
# =============================================================================


@pytest.fixture
def now():
    """Fixed reference time in UTC."""
    return datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def make_metrics(now):
    """Factory for metrics with a post at `age_hours` before `now`."""

    def _make(symbol="PEPE", age_hours=0.0, **overrides):
        fields = dict(
            symbol=symbol,
            post_count=1,
            unique_user_count=1,
            latest_post_time=now - timedelta(hours=age_hours),
        )
        fields.update(overrides)
        return AggregatedMetrics(**fields)

    return _make


@pytest.fixture
def engine():
    return ScoreEngine()


@pytest.fixture
def store():
    return TokenScoreStore()

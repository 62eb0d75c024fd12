"""
Storage layer test fixtures.

Repositories are tested against a mocked Database so the suite runs
without PostgreSQL. Rows are plain dicts, which is all BaseRepository
needs from an asyncpg Record.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def mock_db():
    """Mock database for unit tests."""
    db = AsyncMock()
    db.execute = AsyncMock(return_value="INSERT 0 1")
    db.executemany = AsyncMock(return_value=None)
    db.fetch = AsyncMock(return_value=[])
    db.fetchrow = AsyncMock(return_value=None)
    db.fetchval = AsyncMock(return_value=None)

    mock_conn = AsyncMock()
    mock_conn.execute = AsyncMock(return_value="CREATE TABLE")

    class MockTransaction:
        async def __aenter__(self):
            return mock_conn

        async def __aexit__(self, *args):
            pass

    db.transaction = MagicMock(return_value=MockTransaction())
    db._mock_conn = mock_conn
    return db


# =============================================================================
# Row Fixtures
# =============================================================================


@pytest.fixture
def hour():
    return datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def checkpoint_row():
    return {
        "id": 1,
        "epoch": 3,
        "root": "0x" + "ab" * 32,
        "pool_count": 1,
        "tree_data": '{"leaves": [{"poolId": "0x' + "11" * 32 + '", "score": "6000", "epoch": "3"}], "root": "0x' + "ab" * 32 + '"}',
        "created_at": datetime(2025, 6, 1, tzinfo=timezone.utc),
    }

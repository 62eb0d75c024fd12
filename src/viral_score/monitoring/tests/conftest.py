"""
Monitoring test fixtures.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

NOW = datetime(2025, 6, 1, 12, 20, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def mock_db():
    db = MagicMock()
    db.execute = AsyncMock(return_value="SELECT 1")
    return db


@pytest.fixture
def mock_reporter():
    reporter = MagicMock()
    reporter.is_connected = AsyncMock(return_value=True)
    reporter.current_epoch = AsyncMock(return_value=485772)
    reporter.check_signer = AsyncMock(return_value=True)
    return reporter


@pytest.fixture
def mock_signer():
    signer = MagicMock()
    signer.is_ready = True
    signer.address = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
    return signer

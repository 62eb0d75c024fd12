"""
Test fixtures for the ingestion layer.

IMPORTANT: All external calls are mocked. Never hit the real feed or
indexer in tests.
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from viral_score.ingestion import BodyItem, SocialPost

QUOTE = "0x653e645e3d81a72e71328bc01a04002945e3ef7a"


# =============================================================================
# Time Fixtures
# =============================================================================


@pytest.fixture
def now():
    return datetime(2025, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Post Fixtures
# =============================================================================


@pytest.fixture
def make_post(now):
    """Factory for SocialPost with sensible defaults."""
    def _make(post_id=1, user_id=1, **overrides):
        fields = {
            "post_id": post_id,
            "user_id": user_id,
            "created_at": now,
        }
        fields.update(overrides)
        return SocialPost(**fields)
    return _make


@pytest.fixture
def api_post():
    """One feed item as the social API returns it."""
    return {
        "id": 9001,
        "user": {"id": 42, "userName": "degen", "isPreOrdered": True},
        "contentType": "POST",
        "value": "Loading up on $pepe and $WIF, not $88 or $1061M",
        "body": [
            {"type": "mention", "value": "doge"},
            {"type": "text", "value": " to the moon "},
            {"type": "hashtag", "value": "Pepe"},
        ],
        "hashTags": ["memes"],
        "imageSrc": ["https://img.example/1.png"],
        "viewCount": 120,
        "likeCount": 7,
        "repostCount": 2,
        "replyCount": 1,
        "bondingCurveProgress": 100,
        "priceFluctuationRange": -3.5,
        "createdAt": "2025-06-01T11:30:00.000Z",
    }


# =============================================================================
# HTTP Fixtures
# =============================================================================


class FakeResponse:
    def __init__(self, status=200, payload=None, text=""):
        self.status = status
        self._payload = payload or {}
        self._text = text

    async def json(self):
        return self._payload

    async def text(self):
        return self._text

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False


@pytest.fixture
def mock_session():
    """aiohttp session whose post() yields queued FakeResponses or raises."""
    session = MagicMock()
    session.close = AsyncMock()
    session.queue = []

    def _post(*args, **kwargs):
        item = session.queue.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    session.post = MagicMock(side_effect=_post)
    return session


def lb_pair(pair_id, meme_address, symbol, bin_step, tvl, quote_first=False, name=None):
    meme = {"id": meme_address, "address": meme_address, "symbol": symbol, "name": name or symbol}
    quote = {"id": QUOTE, "address": QUOTE, "symbol": "WM", "name": "Wrapped M"}
    token_x, token_y = (quote, meme) if quote_first else (meme, quote)
    return {
        "id": pair_id,
        "address": "0x" + pair_id.rjust(40, "0"),
        "binStep": str(bin_step),
        "totalValueLockedUSD": str(tvl),
        "tokenX": token_x,
        "tokenY": token_y,
    }

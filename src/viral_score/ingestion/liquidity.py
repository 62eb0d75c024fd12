"""
Liquidity source: LBPair pools from the GraphQL indexer.

Pairs are grouped by their meme token (the side that is not the quote
token). Pairs without the quote token, or with no locked value, are
ignored. Each token's pools come back sorted by TVL, highest first, and
tokens are sorted by total TVL.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

import aiohttp

from viral_score.errors import ExternalUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_GRAPHQL_ENDPOINT = "https://indexer.dev.hyperindex.xyz/e3c58e2/v1/graphql"
DEFAULT_QUOTE_TOKEN = "0x653e645e3d81a72e71328Bc01A04002945E3ef7A"

LB_PAIRS_QUERY = """
  query GetLBPairs($chainId: Int!) {
    LBPair(where: { chainId: { _eq: $chainId } }, order_by: { totalValueLockedUSD: desc }) {
      id
      address
      binStep
      totalValueLockedUSD
      tokenX { id address symbol name }
      tokenY { id address symbol name }
    }
  }
"""


class GraphQLError(ExternalUnavailableError):
    """Indexer answered, but with GraphQL errors."""


@dataclass(frozen=True)
class PoolInfo:
    """One quote-denominated pool of a token."""
    bin_step: int
    tvl_usd: float
    pair_address: str


@dataclass(frozen=True)
class TokenPools:
    """
    A meme token and its quote-token pools.

    Attributes:
        token_address: Meme token address (lower-case)
        symbol: Token symbol as reported by the indexer
        name: Token display name, used for fallback matching
        quote_token_address: Quote token address (lower-case)
        pools: Pools sorted by TVL, highest first
    """
    token_address: str
    symbol: str
    name: str
    quote_token_address: str
    pools: tuple[PoolInfo, ...]

    @property
    def total_tvl_usd(self) -> float:
        return sum(p.tvl_usd for p in self.pools)


def group_pairs(pairs: list[dict], quote_token: str) -> list[TokenPools]:
    """Group raw LBPair rows by meme token."""
    quote = quote_token.lower()
    grouped: dict[str, dict[str, Any]] = {}

    for pair in pairs:
        try:
            tvl = float(pair.get("totalValueLockedUSD") or 0)
            bin_step = int(pair["binStep"])
            token_x, token_y = pair["tokenX"], pair["tokenY"]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed LBPair {pair.get('id')}: {e}")
            continue

        if tvl <= 0:
            continue

        if token_x["address"].lower() == quote:
            meme, quote_side = token_y, token_x
        elif token_y["address"].lower() == quote:
            meme, quote_side = token_x, token_y
        else:
            continue

        address = meme["address"].lower()
        entry = grouped.setdefault(address, {
            "symbol": meme.get("symbol") or "",
            "name": meme.get("name") or "",
            "quote": quote_side["address"].lower(),
            "pools": [],
        })
        entry["pools"].append(
            PoolInfo(bin_step=bin_step, tvl_usd=tvl, pair_address=(pair.get("address") or "").lower())
        )

    tokens = [
        TokenPools(
            token_address=address,
            symbol=entry["symbol"],
            name=entry["name"],
            quote_token_address=entry["quote"],
            pools=tuple(sorted(entry["pools"], key=lambda p: p.tvl_usd, reverse=True)),
        )
        for address, entry in grouped.items()
    ]
    tokens.sort(key=lambda t: t.total_tvl_usd, reverse=True)
    return tokens


class LiquidityClient:
    """
    Async GraphQL client for the liquidity indexer.

    Features:
        - Automatic retries with exponential backoff on 5xx, timeouts
          and connection errors
        - 4xx and GraphQL errors fail immediately

    Usage:
        async with LiquidityClient(endpoint, chain_id=43522) as client:
            tokens = await client.get_token_pools()
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_GRAPHQL_ENDPOINT,
        chain_id: int = 43522,
        quote_token: str = DEFAULT_QUOTE_TOKEN,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        self._endpoint = endpoint
        self._chain_id = chain_id
        self._quote_token = quote_token.lower()
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._max_retries = max_retries
        self._retry_delay = retry_delay

    @property
    def quote_token(self) -> str:
        return self._quote_token

    async def __aenter__(self) -> "LiquidityClient":
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session:
            await self._session.close()
            self._session = None

    async def _query(self, query: str, variables: dict) -> dict:
        """
        POST a GraphQL query with retries.

        Raises:
            ExternalUnavailableError: After retries, or on a 4xx
            GraphQLError: The response carried GraphQL errors
            asyncio.CancelledError: When task is cancelled (re-raised)
        """
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True

        last_error: Optional[ExternalUnavailableError] = None

        for attempt in range(self._max_retries):
            try:
                async with self._session.post(
                    self._endpoint, json={"query": query, "variables": variables}
                ) as response:
                    if 400 <= response.status < 500:
                        text = await response.text()
                        raise ExternalUnavailableError(
                            f"GraphQL request rejected: {response.status} - {text}",
                            source="liquidity",
                            status_code=response.status,
                        )
                    if response.status >= 500:
                        text = await response.text()
                        raise ExternalUnavailableError(
                            f"GraphQL server error: {response.status} - {text}",
                            source="liquidity",
                            status_code=response.status,
                        )
                    payload = await response.json()

                if payload.get("errors"):
                    raise GraphQLError(f"GraphQL errors: {payload['errors']}", source="liquidity")
                return payload.get("data") or {}

            except GraphQLError:
                raise

            except ExternalUnavailableError as e:
                if e.status_code and e.status_code >= 500:
                    delay = self._retry_delay * (2 ** attempt)
                    logger.warning(
                        f"Indexer error {e.status_code}, retry {attempt + 1}/{self._max_retries}"
                    )
                    await asyncio.sleep(delay)
                    last_error = e
                else:
                    raise

            except asyncio.TimeoutError:
                delay = self._retry_delay * (2 ** attempt)
                logger.warning(f"Indexer timeout, retry {attempt + 1}/{self._max_retries}")
                await asyncio.sleep(delay)
                last_error = ExternalUnavailableError("GraphQL request timed out", source="liquidity")

            except asyncio.CancelledError:
                logger.debug("GraphQL request cancelled")
                raise

            except aiohttp.ClientError as e:
                delay = self._retry_delay * (2 ** attempt)
                logger.warning(f"Indexer request failed: {e}, retry {attempt + 1}/{self._max_retries}")
                await asyncio.sleep(delay)
                last_error = ExternalUnavailableError(str(e), source="liquidity")

        raise last_error or ExternalUnavailableError(
            "GraphQL request failed after retries", source="liquidity"
        )

    async def fetch_pairs(self) -> list[dict]:
        data = await self._query(LB_PAIRS_QUERY, {"chainId": self._chain_id})
        pairs = data.get("LBPair") or []
        logger.info(f"Fetched {len(pairs)} LBPairs")
        return pairs

    async def get_token_pools(self) -> list[TokenPools]:
        """Meme tokens with quote-token pools, sorted by TVL."""
        tokens = group_pairs(await self.fetch_pairs(), self._quote_token)
        logger.info(f"Found {len(tokens)} meme tokens with quote token pairs")
        return tokens

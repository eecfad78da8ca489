"""Token metadata resolver.

Name, symbol and decimals come from the Jupiter token API, price from the
Jupiter price API and circulating supply from the Solana RPC node. Only the
name lookup is mandatory: a token we cannot name is not reported, while a
missing price or supply simply shows as zero market cap.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import orjson

from walletwatch.core.constants import (
    DEFAULT_JUPITER_PRICE_API_URL,
    DEFAULT_JUPITER_TOKEN_API_URL,
)
from walletwatch.core.exceptions import LedgerError, MetadataLookupError
from walletwatch.core.logging import get_logger
from walletwatch.ledger.models import TokenInfo

logger = get_logger(__name__)

# Metadata rarely changes; prices are refreshed on expiry
TOKEN_INFO_CACHE_TTL = 60.0

SupplyLookup = Callable[[str], Awaitable[tuple[float, int]]]


class TokenInfoResolver:
    """Implements TokenInfoProvider on top of Jupiter and the RPC node."""

    def __init__(
        self,
        supply_lookup: SupplyLookup | None = None,
        *,
        token_api_url: str = DEFAULT_JUPITER_TOKEN_API_URL,
        price_api_url: str = DEFAULT_JUPITER_PRICE_API_URL,
        cache_ttl: float = TOKEN_INFO_CACHE_TTL,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._supply_lookup = supply_lookup
        self._token_api_url = token_api_url.rstrip("/")
        self._price_api_url = price_api_url
        self._cache_ttl = cache_ttl
        self._http_client = http_client
        self._clock = clock
        self._cache: dict[str, tuple[TokenInfo, float]] = {}

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=15.0, follow_redirects=True)
        return self._http_client

    async def close(self) -> None:
        """Clean up resources."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("TokenInfoResolver closed")

    def clear_cache(self) -> None:
        self._cache.clear()

    async def get_token_info(self, token_id: str) -> TokenInfo:
        cached = self._cache.get(token_id)
        now = self._clock()
        if cached is not None and now - cached[1] < self._cache_ttl:
            return cached[0]

        metadata = await self._fetch_metadata(token_id)
        price = await self._fetch_price(token_id)
        supply, decimals = await self._fetch_supply(token_id, metadata.get("decimals"))

        info = TokenInfo(
            token_id=token_id,
            name=str(metadata.get("name") or ""),
            symbol=str(metadata.get("symbol") or ""),
            price=price,
            supply=supply,
            decimals=decimals,
        )
        self._cache[token_id] = (info, now)
        return info

    async def _fetch_metadata(self, token_id: str) -> dict[str, Any]:
        url = f"{self._token_api_url}/{token_id}"
        try:
            response = await self._get_http_client().get(url)
            response.raise_for_status()
            data: dict[str, Any] = orjson.loads(response.content)
        except httpx.HTTPStatusError as e:
            raise MetadataLookupError(
                f"Token metadata lookup for {token_id} returned HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, orjson.JSONDecodeError) as e:
            raise MetadataLookupError(f"Token metadata lookup for {token_id} failed: {e}") from e

        if not isinstance(data, dict) or not data.get("name"):
            raise MetadataLookupError(f"No metadata for token {token_id}")
        return data

    async def _fetch_price(self, token_id: str) -> float:
        try:
            response = await self._get_http_client().get(self._price_api_url, params={"ids": token_id})
            response.raise_for_status()
            data = orjson.loads(response.content)
        except (httpx.HTTPError, orjson.JSONDecodeError) as e:
            logger.debug("Token price lookup failed", token_id=token_id, error=str(e))
            return 0.0

        entry = (data.get("data") or {}).get(token_id) or {}
        try:
            return float(entry.get("price") or 0.0)
        except (TypeError, ValueError):
            return 0.0

    async def _fetch_supply(self, token_id: str, decimals: Any) -> tuple[float, int]:
        fallback_decimals = int(decimals) if isinstance(decimals, int) else 9
        if self._supply_lookup is None:
            return 0.0, fallback_decimals
        try:
            return await self._supply_lookup(token_id)
        except LedgerError as e:
            logger.debug("Token supply lookup failed", token_id=token_id, error=e.message)
            return 0.0, fallback_decimals

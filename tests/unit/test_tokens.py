"""Tests for TokenInfoResolver against mocked Jupiter endpoints."""

from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from walletwatch.core.exceptions import MetadataLookupError, RPCResponseError
from walletwatch.ledger.tokens import TokenInfoResolver

MINT = "Mint1111111111111111111111111111111111111pump"
TOKEN_API = "https://tokens.test/token"
PRICE_API = "https://price.test/v2"


def _handler(*, token_status: int = 200, price_status: int = 200):
    calls: list[str] = []

    def handle(request: httpx.Request) -> httpx.Response:
        calls.append(str(request.url))
        if request.url.path.startswith("/token/"):
            if token_status != 200:
                return httpx.Response(token_status, json={"error": "not found"})
            return httpx.Response(200, json={"address": MINT, "name": "Pump Cat", "symbol": "PCAT", "decimals": 6})
        if price_status != 200:
            return httpx.Response(price_status)
        return httpx.Response(200, json={"data": {MINT: {"id": MINT, "price": "0.0025"}}})

    return handle, calls


def _resolver(handler, supply: AsyncMock | None = None, **kwargs) -> TokenInfoResolver:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return TokenInfoResolver(
        supply,
        token_api_url=TOKEN_API,
        price_api_url=PRICE_API,
        http_client=client,
        **kwargs,
    )


class TestGetTokenInfo:
    async def test_combines_metadata_price_and_supply(self) -> None:
        handler, _ = _handler()
        supply = AsyncMock(return_value=(1_000_000_000.0, 6))
        resolver = _resolver(handler, supply)

        info = await resolver.get_token_info(MINT)

        assert info.name == "Pump Cat"
        assert info.symbol == "PCAT"
        assert info.price == 0.0025
        assert info.market_cap == pytest.approx(2_500_000.0)
        assert info.is_pump_token
        assert info.display_name == "🎯 PUMP Pump Cat"
        supply.assert_awaited_once_with(MINT)
        await resolver.close()

    async def test_missing_metadata_raises(self) -> None:
        handler, _ = _handler(token_status=404)
        resolver = _resolver(handler)

        with pytest.raises(MetadataLookupError):
            await resolver.get_token_info(MINT)
        await resolver.close()

    async def test_price_failure_is_zero(self) -> None:
        handler, _ = _handler(price_status=500)
        resolver = _resolver(handler, AsyncMock(return_value=(100.0, 6)))

        info = await resolver.get_token_info(MINT)

        assert info.price == 0.0
        assert info.market_cap == 0.0
        await resolver.close()

    async def test_supply_failure_is_zero(self) -> None:
        handler, _ = _handler()
        supply = AsyncMock(side_effect=RPCResponseError("invalid mint", code=-32602))
        resolver = _resolver(handler, supply)

        info = await resolver.get_token_info(MINT)

        assert info.supply == 0.0
        assert info.decimals == 6
        await resolver.close()

    async def test_results_are_cached(self) -> None:
        handler, calls = _handler()
        now = [0.0]
        resolver = _resolver(handler, clock=lambda: now[0], cache_ttl=60.0)

        await resolver.get_token_info(MINT)
        await resolver.get_token_info(MINT)
        assert len(calls) == 2  # token + price, once

        now[0] = 61.0
        await resolver.get_token_info(MINT)
        assert len(calls) == 4
        await resolver.close()

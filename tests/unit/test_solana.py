"""Tests for SolanaClient JSON-RPC calls and websocket message routing."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import httpx
import orjson
import pytest

from walletwatch.core.constants import TOKEN_PROGRAM_ID
from walletwatch.core.exceptions import (
    LedgerError,
    RPCResponseError,
    SubscriptionError,
    TransientProviderError,
)
from walletwatch.ledger.solana import SolanaClient, _ActiveSubscription

WALLET = "Wa11et1111111111111111111111111111111111111"


def _client(handler: Any, api_key: str | None = None) -> SolanaClient:
    sleep = AsyncMock()
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SolanaClient("https://rpc.test", "wss://rpc.test", api_key, http_client=http, sleep=sleep)


def _rpc_result(result: Any):
    requests: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": result})

    return handler, requests


class TestRpc:
    async def test_get_balance_in_sol(self) -> None:
        handler, requests = _rpc_result({"context": {"slot": 1}, "value": 2_500_000_000})
        client = _client(handler)

        assert await client.get_balance(WALLET) == 2.5
        assert requests[0]["method"] == "getBalance"
        assert requests[0]["params"][0] == WALLET

    async def test_get_token_balances(self) -> None:
        handler, requests = _rpc_result(
            {
                "value": [
                    {
                        "pubkey": "acct1",
                        "account": {
                            "data": {
                                "parsed": {
                                    "info": {
                                        "mint": "MintA",
                                        "owner": WALLET,
                                        "tokenAmount": {"uiAmount": 12.5},
                                    }
                                }
                            }
                        },
                    }
                ]
            }
        )
        client = _client(handler)

        assert await client.get_token_balances(WALLET) == {"MintA": 12.5}
        assert requests[0]["params"][1] == {"programId": TOKEN_PROGRAM_ID}

    async def test_get_recent_signature(self) -> None:
        handler, _ = _rpc_result([{"signature": "abc", "slot": 5}])
        assert await _client(handler).get_recent_signature(WALLET) == "abc"

    async def test_get_recent_signature_none(self) -> None:
        handler, _ = _rpc_result([])
        assert await _client(handler).get_recent_signature(WALLET) is None

    async def test_rpc_error_object(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "Invalid param"}}
            )

        with pytest.raises(RPCResponseError) as exc_info:
            await _client(handler).get_balance(WALLET)
        assert exc_info.value.code == -32602

    async def test_transient_errors_are_retried(self) -> None:
        attempts = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts["n"] += 1
            if attempts["n"] < 3:
                return httpx.Response(503)
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": {"value": 1_000_000_000}})

        assert await _client(handler).get_balance(WALLET) == 1.0
        assert attempts["n"] == 3

    async def test_transient_errors_give_up(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429)

        with pytest.raises(TransientProviderError):
            await _client(handler).get_balance(WALLET)

    async def test_client_error_is_not_retried(self) -> None:
        attempts = {"n": 0}

        def handler(request: httpx.Request) -> httpx.Response:
            attempts["n"] += 1
            return httpx.Response(401, text="unauthorized")

        with pytest.raises(LedgerError):
            await _client(handler).get_balance(WALLET)
        assert attempts["n"] == 1

    async def test_fetch_event_retries_null_transaction(self) -> None:
        responses = [None, {"slot": 7, "transaction": {"signatures": ["sigX"], "message": {}}, "meta": {}}]

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": responses.pop(0)})

        event = await _client(handler).fetch_event("sigX", WALLET)
        assert event is not None
        assert event.signature == "sigX"
        assert event.source == WALLET

    async def test_get_token_supply(self) -> None:
        handler, _ = _rpc_result({"value": {"amount": "1000", "decimals": 2, "uiAmount": 10.0}})
        assert await _client(handler).get_token_supply("MintA") == (10.0, 2)


class TestWebsocketRouting:
    async def test_notification_routed_to_handler(self) -> None:
        client = SolanaClient("https://rpc.test", "wss://rpc.test")
        handler = AsyncMock()
        entry = _ActiveSubscription(
            key=1,
            address=WALLET,
            method="logsSubscribe",
            unsubscribe_method="logsUnsubscribe",
            params=[],
            handler=handler,
            server_id=42,
        )
        client._active[1] = entry
        client._by_server_id[42] = {1}

        client._handle_message(
            orjson.dumps(
                {
                    "jsonrpc": "2.0",
                    "method": "logsNotification",
                    "params": {"subscription": 42, "result": {"value": {"signature": "s1", "err": None}}},
                }
            )
        )

        queued_entry, result = client._inbox.get_nowait()
        assert queued_entry is entry
        assert result["value"]["signature"] == "s1"

    async def test_unknown_subscription_ignored(self) -> None:
        client = SolanaClient("https://rpc.test", "wss://rpc.test")
        client._handle_message(b'{"method":"logsNotification","params":{"subscription":99,"result":{}}}')
        assert client._inbox.empty()

    async def test_response_resolves_pending_request(self) -> None:
        client = SolanaClient("https://rpc.test", "wss://rpc.test")

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        client._pending[7] = future

        client._handle_message(b'{"jsonrpc":"2.0","id":7,"result":1234}')
        assert future.result() == 1234

    async def test_subscribe_requires_start(self) -> None:
        client = SolanaClient("https://rpc.test", "wss://rpc.test")
        with pytest.raises(SubscriptionError):
            await client.subscribe_activity(WALLET, AsyncMock())


def _connected_client(server_id: int) -> tuple[SolanaClient, AsyncMock]:
    """Client with a stand-in socket whose subscribe calls all return ``server_id``."""
    client = SolanaClient("https://rpc.test", "wss://rpc.test")
    client._running = True
    client._connected.set()
    client._ws = MagicMock()
    request = AsyncMock(return_value=server_id)
    client._request = request  # type: ignore[method-assign]
    return client, request


def _notification(server_id: int, signature: str) -> bytes:
    return orjson.dumps(
        {
            "jsonrpc": "2.0",
            "method": "logsNotification",
            "params": {"subscription": server_id, "result": {"value": {"signature": signature, "err": None}}},
        }
    )


class TestSharedServerSubscription:
    async def test_notification_fans_out_to_every_subscriber(self) -> None:
        client, _ = _connected_client(7)
        await client.subscribe_activity("Z", AsyncMock())
        await client.subscribe_activity("Z", AsyncMock())

        client._handle_message(_notification(7, "s1"))

        keys = []
        while not client._inbox.empty():
            entry, result = client._inbox.get_nowait()
            assert result["value"]["signature"] == "s1"
            keys.append(entry.key)
        assert len(keys) == 2
        assert len(set(keys)) == 2

    async def test_unsubscribe_keeps_shared_stream_until_last(self) -> None:
        client, request = _connected_client(7)
        first = await client.subscribe_activity("Z", AsyncMock())
        second = await client.subscribe_activity("Z", AsyncMock())

        await first.cancel()

        assert request.await_count == 2
        client._handle_message(_notification(7, "s2"))
        entry, _ = client._inbox.get_nowait()
        assert client._inbox.empty()
        assert entry.key in client._active

        await second.cancel()

        request.assert_awaited_with("logsUnsubscribe", [7])
        assert client.subscription_count == 0
        assert 7 not in client._by_server_id

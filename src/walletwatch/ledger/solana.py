"""Solana JSON-RPC and websocket subscription client.

Point queries go over HTTP with httpx. Subscriptions share one websocket
connection: notifications are read by a single reader task and handed to a
single worker through a queue, so callbacks run in delivery order and may
themselves open new subscriptions without blocking the reader.

Pattern: connect, subscribe, listen, reconnect with exponential backoff and
re-subscribe everything that is still active.
"""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

import httpx
import orjson
import websockets
import websockets.exceptions
from websockets.asyncio.client import ClientConnection

from walletwatch.core.constants import (
    LAMPORTS_PER_SOL,
    RPC_TIMEOUT_SECONDS,
    TOKEN_ACCOUNT_OWNER_OFFSET,
    TOKEN_PROGRAM_ID,
    WS_MAX_RECONNECT_DELAY_SECONDS,
)
from walletwatch.core.exceptions import (
    LedgerError,
    RPCResponseError,
    SubscriptionError,
    TransientProviderError,
)
from walletwatch.core.logging import get_logger
from walletwatch.ledger.base import ActivityCallback, BalanceCallback
from walletwatch.ledger.models import LedgerEvent, Subscription
from walletwatch.ledger.parsing import parse_token_account, parse_transaction

logger = get_logger(__name__)

RPC_MAX_ATTEMPTS = 3
RPC_RETRY_BASE_DELAY = 0.5
TRANSACTION_FETCH_ATTEMPTS = 3
TRANSACTION_FETCH_DELAY = 1.0
SUBSCRIBE_TIMEOUT = 10.0


@dataclass
class _ActiveSubscription:
    """Everything needed to (re)open one subscription."""

    key: int
    address: str
    method: str
    unsubscribe_method: str
    params: list[Any]
    handler: Callable[[dict[str, Any]], Awaitable[None]]
    server_id: int | None = None
    confirmed: asyncio.Event = field(default_factory=asyncio.Event)


class SolanaClient:
    """Async client for a Solana RPC node."""

    def __init__(
        self,
        rpc_url: str,
        ws_url: str,
        api_key: str | None = None,
        *,
        commitment: str = "confirmed",
        timeout: float = RPC_TIMEOUT_SECONDS,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._rpc_url = rpc_url
        self._ws_url = ws_url
        self._api_key = api_key
        self._commitment = commitment
        self._timeout = timeout
        self._client = http_client
        self._sleep = sleep
        self._request_ids = itertools.count(1)
        self._sub_keys = itertools.count(1)

        self._ws: ClientConnection | None = None
        self._ws_task: asyncio.Task[None] | None = None
        self._worker_task: asyncio.Task[None] | None = None
        self._running = False
        self._connected = asyncio.Event()
        self._reconnect_delay = 1.0
        self._max_reconnect_delay = WS_MAX_RECONNECT_DELAY_SECONDS

        self._active: dict[int, _ActiveSubscription] = {}
        # Identical params share one server subscription, so one id can serve several keys
        self._by_server_id: dict[int, set[int]] = {}
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._inbox: asyncio.Queue[tuple[_ActiveSubscription, dict[str, Any]]] = asyncio.Queue()

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and self._running

    @property
    def subscription_count(self) -> int:
        return len(self._active)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["x-api-key"] = self._api_key
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, headers=self._headers())
        return self._client

    # ------------------------------------------------------------------
    # JSON-RPC over HTTP
    # ------------------------------------------------------------------

    async def _rpc_once(self, method: str, params: list[Any]) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._request_ids), "method": method, "params": params}
        try:
            response = await self._get_client().post(self._rpc_url, json=payload)
        except httpx.TimeoutException as e:
            raise TransientProviderError(f"{method} timed out") from e
        except httpx.TransportError as e:
            raise TransientProviderError(f"{method} transport error: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientProviderError(f"{method} returned HTTP {response.status_code}")
        if response.status_code >= 400:
            raise LedgerError(f"{method} returned HTTP {response.status_code}: {response.text[:200]}")

        data = response.json()
        if data.get("error"):
            error = data["error"]
            raise RPCResponseError(
                f"{method} failed: {error.get('message', error)}",
                code=error.get("code"),
            )
        return data.get("result")

    async def rpc(self, method: str, params: list[Any] | None = None) -> Any:
        """Call ``method``, retrying transient provider failures with backoff."""
        params = params or []
        delay = RPC_RETRY_BASE_DELAY
        for attempt in range(1, RPC_MAX_ATTEMPTS + 1):
            try:
                return await self._rpc_once(method, params)
            except TransientProviderError as e:
                if attempt == RPC_MAX_ATTEMPTS:
                    raise
                logger.debug("Transient RPC failure, retrying", method=method, attempt=attempt, error=e.message)
                await self._sleep(delay)
                delay *= 2
        raise TransientProviderError(f"{method} exhausted retries")  # pragma: no cover

    async def get_balance(self, address: str) -> float:
        result = await self.rpc("getBalance", [address, {"commitment": self._commitment}])
        return float(result["value"]) / LAMPORTS_PER_SOL

    async def get_token_balances(self, owner: str) -> dict[str, float]:
        result = await self.rpc(
            "getTokenAccountsByOwner",
            [
                owner,
                {"programId": TOKEN_PROGRAM_ID},
                {"encoding": "jsonParsed", "commitment": self._commitment},
            ],
        )
        balances: dict[str, float] = {}
        for item in result.get("value", []):
            change = parse_token_account(item)
            if change is not None:
                balances[change.token_id] = change.balance
        return balances

    async def get_recent_signature(self, address: str) -> str | None:
        result = await self.rpc(
            "getSignaturesForAddress", [address, {"limit": 1, "commitment": self._commitment}]
        )
        if result:
            return str(result[0]["signature"])
        return None

    async def get_transaction(self, signature: str) -> dict[str, Any] | None:
        result: dict[str, Any] | None = await self.rpc(
            "getTransaction",
            [
                signature,
                {
                    "encoding": "jsonParsed",
                    "maxSupportedTransactionVersion": 0,
                    "commitment": self._commitment,
                },
            ],
        )
        return result

    async def get_token_supply(self, token_id: str) -> tuple[float, int]:
        """Returns (ui_supply, decimals)."""
        result = await self.rpc("getTokenSupply", [token_id, {"commitment": self._commitment}])
        value = result["value"]
        return float(value.get("uiAmount") or 0.0), int(value.get("decimals", 9))

    async def fetch_event(self, signature: str, source: str) -> LedgerEvent | None:
        """Fetch and parse a transaction announced by a logs notification.

        The node can announce a signature slightly before getTransaction
        serves it, so a null result is retried a few times.
        """
        for attempt in range(TRANSACTION_FETCH_ATTEMPTS):
            tx = await self.get_transaction(signature)
            if tx is not None:
                return parse_transaction(tx, source)
            if attempt < TRANSACTION_FETCH_ATTEMPTS - 1:
                await self._sleep(TRANSACTION_FETCH_DELAY)
        logger.debug("Transaction not available", signature=signature)
        return None

    # ------------------------------------------------------------------
    # Websocket lifecycle
    # ------------------------------------------------------------------

    async def start(self, connect_timeout: float = SUBSCRIBE_TIMEOUT) -> None:
        """Start the websocket reader and wait for the first connection."""
        if self._running:
            logger.warning("Solana WS already running")
            return
        self._running = True
        self._ws_task = asyncio.create_task(self._ws_loop())
        self._worker_task = asyncio.create_task(self._dispatch_loop())
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=connect_timeout)
        except TimeoutError:
            logger.warning("Solana WS not connected yet, will keep retrying", url=self._ws_url)

    async def stop(self) -> None:
        """Stop the websocket and close the HTTP client."""
        self._running = False
        if self._ws:
            await self._ws.close()
            self._ws = None
        for task in (self._ws_task, self._worker_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._ws_task = None
        self._worker_task = None
        self._connected.clear()
        for future in self._pending.values():
            if not future.done():
                future.cancel()
        self._pending.clear()
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.debug("Solana WS stopped")

    async def _ws_loop(self) -> None:
        """Main websocket loop with reconnection."""
        while self._running:
            try:
                await self._connect_and_listen()
            except websockets.exceptions.ConnectionClosed as e:
                logger.warning("Solana WS connection closed", code=e.code, reason=e.reason)
            except Exception as e:
                logger.error("Solana WS error", error=str(e))

            if self._running:
                logger.debug("Solana WS reconnecting", delay=self._reconnect_delay)
                await self._sleep(self._reconnect_delay)
                self._reconnect_delay = min(self._reconnect_delay * 2, self._max_reconnect_delay)

    async def _connect_and_listen(self) -> None:
        headers = {"x-api-key": self._api_key} if self._api_key else None
        try:
            async with websockets.connect(self._ws_url, additional_headers=headers) as ws:
                self._ws = ws
                self._reconnect_delay = 1.0
                self._by_server_id.clear()
                self._connected.set()
                logger.info("Solana WS connected", subscriptions=len(self._active))

                reader = asyncio.create_task(self._read_messages(ws))
                try:
                    if self._active:
                        await self._resubscribe_all()
                    await reader
                finally:
                    reader.cancel()
        finally:
            self._ws = None
            self._connected.clear()
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(SubscriptionError("Websocket disconnected"))
            self._pending.clear()

    async def _read_messages(self, ws: ClientConnection) -> None:
        async for message in ws:
            self._handle_message(message)

    async def _resubscribe_all(self) -> None:
        for entry in list(self._active.values()):
            try:
                await self._open(entry)
            except SubscriptionError as e:
                logger.warning("Solana WS re-subscribe failed", address=entry.address, error=e.message)

    def _handle_message(self, raw: str | bytes) -> None:
        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("Solana WS sent invalid JSON")
            return

        request_id = data.get("id")
        if request_id is not None:
            future = self._pending.pop(request_id, None)
            if future is not None and not future.done():
                if data.get("error"):
                    future.set_exception(
                        SubscriptionError(str(data["error"].get("message", data["error"])))
                    )
                else:
                    future.set_result(data.get("result"))
            return

        params = data.get("params") or {}
        server_id = params.get("subscription")
        keys = self._by_server_id.get(server_id, set()) if server_id is not None else set()
        result = params.get("result") or {}
        for key in sorted(keys):
            entry = self._active.get(key)
            if entry is not None:
                self._inbox.put_nowait((entry, result))

    async def _dispatch_loop(self) -> None:
        """Run subscription handlers one at a time, in delivery order."""
        while True:
            entry, result = await self._inbox.get()
            if entry.key not in self._active:
                continue
            try:
                await entry.handler(result)
            except Exception:
                logger.exception("Error in subscription handler", address=entry.address, method=entry.method)

    async def _request(self, method: str, params: list[Any]) -> Any:
        if self._ws is None:
            raise SubscriptionError("Websocket not connected")
        request_id = next(self._request_ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        try:
            await self._ws.send(
                orjson.dumps({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}).decode()
            )
            return await asyncio.wait_for(future, timeout=SUBSCRIBE_TIMEOUT)
        except TimeoutError as e:
            raise SubscriptionError(f"{method} timed out") from e
        except websockets.exceptions.ConnectionClosed as e:
            raise SubscriptionError(f"{method} failed, connection closed") from e
        finally:
            self._pending.pop(request_id, None)

    async def _open(self, entry: _ActiveSubscription) -> None:
        server_id = int(await self._request(entry.method, entry.params))
        entry.server_id = server_id
        self._by_server_id.setdefault(server_id, set()).add(entry.key)
        entry.confirmed.set()

    async def _subscribe(self, entry: _ActiveSubscription) -> Subscription:
        if not self._running:
            raise SubscriptionError("Solana client not started")
        try:
            await asyncio.wait_for(self._connected.wait(), timeout=SUBSCRIBE_TIMEOUT)
        except TimeoutError as e:
            raise SubscriptionError("Websocket not connected") from e

        self._active[entry.key] = entry
        try:
            await self._open(entry)
        except SubscriptionError:
            self._active.pop(entry.key, None)
            raise

        logger.debug("Subscribed", method=entry.method, address=entry.address, server_id=entry.server_id)

        async def cancel() -> None:
            await self._unsubscribe(entry)

        return Subscription(address=entry.address, kind=entry.method, _cancel=cancel)

    async def _unsubscribe(self, entry: _ActiveSubscription) -> None:
        self._active.pop(entry.key, None)
        if entry.server_id is None:
            return
        sharing = self._by_server_id.get(entry.server_id, set())
        sharing.discard(entry.key)
        if sharing:
            logger.debug("Server subscription still shared", address=entry.address, server_id=entry.server_id)
            return
        self._by_server_id.pop(entry.server_id, None)
        if self._ws is None:
            return
        try:
            await self._request(entry.unsubscribe_method, [entry.server_id])
        except SubscriptionError as e:
            logger.debug("Unsubscribe failed", address=entry.address, error=e.message)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe_activity(self, address: str, callback: ActivityCallback) -> Subscription:
        """logsSubscribe on ``address``; each transaction is fetched and parsed."""

        async def handler(result: dict[str, Any]) -> None:
            value = result.get("value") or {}
            if value.get("err") is not None:
                return
            signature = value.get("signature")
            if not signature:
                return
            event = await self.fetch_event(signature, address)
            if event is not None:
                await callback(event)

        entry = _ActiveSubscription(
            key=next(self._sub_keys),
            address=address,
            method="logsSubscribe",
            unsubscribe_method="logsUnsubscribe",
            params=[{"mentions": [address]}, {"commitment": self._commitment}],
            handler=handler,
        )
        return await self._subscribe(entry)

    async def subscribe_token_balances(
        self, owner: str, callback: BalanceCallback
    ) -> Subscription:
        """programSubscribe on the SPL Token program filtered to ``owner``'s accounts."""

        async def handler(result: dict[str, Any]) -> None:
            slot = (result.get("context") or {}).get("slot")
            change = parse_token_account(result.get("value") or {}, slot=slot)
            if change is not None and change.owner == owner:
                await callback(change)

        entry = _ActiveSubscription(
            key=next(self._sub_keys),
            address=owner,
            method="programSubscribe",
            unsubscribe_method="programUnsubscribe",
            params=[
                TOKEN_PROGRAM_ID,
                {
                    "encoding": "jsonParsed",
                    "commitment": self._commitment,
                    "filters": [
                        {"dataSize": 165},
                        {"memcmp": {"offset": TOKEN_ACCOUNT_OWNER_OFFSET, "bytes": owner}},
                    ],
                },
            ],
            handler=handler,
        )
        return await self._subscribe(entry)

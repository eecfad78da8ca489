"""Data models for the tracking engine."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from walletwatch.ledger.models import Subscription


@dataclass(frozen=True)
class RootWallet:
    """One of the two configured wallets that seed discovery."""

    wallet_id: int
    address: str


@dataclass
class TrackedAddress:
    """Counterparty discovered through a root wallet's activity."""

    address: str
    last_updated: float


@dataclass(frozen=True)
class PendingUpdate:
    """Latest balance seen for a token within the current debounce window."""

    token_id: str
    balance: float
    signature: str


@dataclass
class WalletBook:
    """Mutable state owned by one root wallet.

    Only touched from event-loop callbacks, so no locking is needed.
    """

    root: RootWallet
    pending: dict[str, PendingUpdate] = field(default_factory=dict)
    flush_handle: asyncio.TimerHandle | None = None
    last_balances: dict[str, float] = field(default_factory=dict)
    subscriptions: list[Subscription] = field(default_factory=list)
    derived_subscriptions: dict[str, Subscription] = field(default_factory=dict)

    @property
    def wallet_id(self) -> int:
        return self.root.wallet_id

    @property
    def address(self) -> str:
        return self.root.address


class EngineStatus(StrEnum):
    STOPPED = "stopped"
    STARTING = "starting"
    TRACKING = "tracking"
    STOPPING = "stopping"


class LifecycleResult(StrEnum):
    """What a start/stop request did."""

    OK = "ok"
    ALREADY = "already"
    FAILED = "failed"


class EngineState(BaseModel):
    """Persisted tracking flag, the only state that survives a restart."""

    model_config = ConfigDict(populate_by_name=True)

    is_tracking: bool = Field(default=False, alias="isTracking")
    last_updated: datetime = Field(default_factory=lambda: datetime.now(UTC), alias="lastUpdated")


@dataclass
class StatusReport:
    """Read-only snapshot for /status and the HTTP API."""

    status: EngineStatus
    discovered: dict[int, int] = field(default_factory=dict)
    sol_balances: dict[int, float | None] = field(default_factory=dict)
    correlation: dict[str, int] = field(default_factory=dict)
    subscriptions: int = 0

    @property
    def is_tracking(self) -> bool:
        return self.status is EngineStatus.TRACKING

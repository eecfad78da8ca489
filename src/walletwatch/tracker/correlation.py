"""Cross-wallet correlation of token interactions.

A token only becomes alert-worthy once activity involving it has been seen
from the address space of the *second* root wallet after the first. Tokens
that turn out to be one of the root wallets themselves are ignored for good.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from walletwatch.core.logging import get_logger

logger = get_logger(__name__)


class Action(StrEnum):
    """Outcome of observing a token id from one root wallet."""

    IGNORE = "ignore"
    CONFIRM = "confirm"
    TRACK = "track"
    NOOP = "noop"


class CorrelationStatus(StrEnum):
    OBSERVED = "observed"
    CONFIRMED = "confirmed"
    IGNORED = "ignored"


@dataclass(frozen=True)
class CorrelationEntry:
    status: CorrelationStatus
    wallet_id: int | None = None


class CorrelationStateMachine:
    """Per-token state: observed by one wallet, confirmed by both, or ignored.

    ``Ignored`` is absorbing. Entries live for the process lifetime and are
    never persisted.
    """

    def __init__(self, root_addresses: Iterable[str]) -> None:
        self._root_addresses = frozenset(a for a in root_addresses if a)
        self._entries: dict[str, CorrelationEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, token_id: str) -> CorrelationEntry | None:
        """Current entry for ``token_id``; None means unseen."""
        return self._entries.get(token_id)

    def observe(self, root_id: int, token_id: str) -> Action:
        """Record that ``root_id``'s address space touched ``token_id``."""
        entry = self._entries.get(token_id)

        if entry is not None and entry.status is CorrelationStatus.IGNORED:
            return Action.NOOP

        if token_id in self._root_addresses:
            self._entries[token_id] = CorrelationEntry(CorrelationStatus.IGNORED)
            logger.debug("Token id is a root wallet, ignoring", token_id=token_id)
            return Action.IGNORE

        if entry is not None and (
            entry.status is CorrelationStatus.CONFIRMED
            or (entry.status is CorrelationStatus.OBSERVED and entry.wallet_id != root_id)
        ):
            self._entries[token_id] = CorrelationEntry(CorrelationStatus.CONFIRMED)
            return Action.CONFIRM

        self._entries[token_id] = CorrelationEntry(CorrelationStatus.OBSERVED, wallet_id=root_id)
        return Action.TRACK

    def counts(self) -> dict[str, int]:
        """Number of entries per status, for status reports."""
        result = {status.value: 0 for status in CorrelationStatus}
        for entry in self._entries.values():
            result[entry.status.value] += 1
        return result

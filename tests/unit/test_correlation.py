"""Tests for the cross-wallet correlation state machine."""

from __future__ import annotations

import pytest

from walletwatch.tracker.correlation import Action, CorrelationStateMachine, CorrelationStatus

ROOT_1 = "Root1111111111111111111111111111111111111111"
ROOT_2 = "Root2222222222222222222222222222222222222222"


@pytest.fixture
def machine() -> CorrelationStateMachine:
    return CorrelationStateMachine([ROOT_1, ROOT_2])


class TestObserve:
    def test_first_observation_tracks(self, machine: CorrelationStateMachine) -> None:
        assert machine.observe(1, "X") is Action.TRACK
        entry = machine.get("X")
        assert entry is not None
        assert entry.status is CorrelationStatus.OBSERVED
        assert entry.wallet_id == 1

    def test_other_wallet_confirms(self, machine: CorrelationStateMachine) -> None:
        assert machine.observe(1, "X") is Action.TRACK
        assert machine.observe(2, "X") is Action.CONFIRM
        entry = machine.get("X")
        assert entry is not None
        assert entry.status is CorrelationStatus.CONFIRMED

    def test_same_wallet_twice_keeps_tracking(self, machine: CorrelationStateMachine) -> None:
        assert machine.observe(1, "X") is Action.TRACK
        assert machine.observe(1, "X") is Action.TRACK

    def test_confirmed_reconfirms_from_either_wallet(self, machine: CorrelationStateMachine) -> None:
        machine.observe(1, "X")
        machine.observe(2, "X")
        assert machine.observe(1, "X") is Action.CONFIRM
        assert machine.observe(2, "X") is Action.CONFIRM

    def test_root_address_is_ignored(self, machine: CorrelationStateMachine) -> None:
        assert machine.observe(1, ROOT_2) is Action.IGNORE
        entry = machine.get(ROOT_2)
        assert entry is not None
        assert entry.status is CorrelationStatus.IGNORED

    def test_ignored_is_absorbing(self, machine: CorrelationStateMachine) -> None:
        machine.observe(1, ROOT_1)
        for root_id in (1, 2, 1, 2):
            assert machine.observe(root_id, ROOT_1) is Action.NOOP

    def test_tokens_are_independent(self, machine: CorrelationStateMachine) -> None:
        machine.observe(1, "X")
        assert machine.observe(2, "Y") is Action.TRACK
        assert machine.observe(2, "X") is Action.CONFIRM


class TestCounts:
    def test_counts_by_status(self, machine: CorrelationStateMachine) -> None:
        machine.observe(1, "A")
        machine.observe(1, "B")
        machine.observe(2, "B")
        machine.observe(1, ROOT_1)

        assert machine.counts() == {"observed": 1, "confirmed": 1, "ignored": 1}
        assert len(machine) == 3

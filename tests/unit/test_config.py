"""Unit tests for Settings validation and derived values in config.py."""

from __future__ import annotations

import pytest

from walletwatch.config import Settings
from walletwatch.core.exceptions import ConfigurationError

ROOT_1 = "Root1111111111111111111111111111111111111111"
ROOT_2 = "Root2222222222222222222222222222222222222222"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Keep a developer's .env and shell from leaking into these tests."""
    monkeypatch.chdir(tmp_path)
    for name in (
        "MAIN_WALLET_ADDRESS_1",
        "MAIN_WALLET_ADDRESS_2",
        "TELEGRAM_BOT_TOKEN",
        "TELEGRAM_CHANNEL_ID",
        "SOLANA_RPC_URL",
        "SOLANA_WS_URL",
        "WALLETWATCH_ENV",
    ):
        monkeypatch.delenv(name, raising=False)


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)


class TestDefaults:
    def test_defaults(self) -> None:
        s = _settings()
        assert s.env == "development"
        assert s.tracked_wallets_size == 1000
        assert s.update_delay_seconds == 10.0
        assert s.max_balance_change == 25.0
        assert str(s.state_file) == "data/bot_state.json"


class TestEnvLoading:
    def test_reads_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MAIN_WALLET_ADDRESS_1", f"  {ROOT_1} ")
        monkeypatch.setenv("MAIN_WALLET_ADDRESS_2", ROOT_2)
        monkeypatch.setenv("WALLETWATCH_ENV", "production")
        monkeypatch.setenv("TRACKED_WALLETS_SIZE", "50")

        s = _settings()
        assert s.root_wallets == {1: ROOT_1, 2: ROOT_2}
        assert s.is_production
        assert s.tracked_wallets_size == 50


class TestDerived:
    def test_ws_endpoint_from_https(self) -> None:
        s = _settings(solana_rpc_url="https://rpc.example.com/?key=1")
        assert s.solana_ws_endpoint == "wss://rpc.example.com/?key=1"

    def test_ws_endpoint_from_http(self) -> None:
        assert _settings(solana_rpc_url="http://localhost:8899").solana_ws_endpoint == "ws://localhost:8899"

    def test_explicit_ws_url_wins(self) -> None:
        s = _settings(solana_rpc_url="https://a.test", solana_ws_url="wss://b.test")
        assert s.solana_ws_endpoint == "wss://b.test"

    def test_channel_is_group(self) -> None:
        assert _settings(telegram_channel_id="-1001").channel_is_group
        assert not _settings(telegram_channel_id="1001").channel_is_group


class TestRequireTrackingConfig:
    def test_lists_everything_missing(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            _settings().require_tracking_config()
        message = exc_info.value.message
        for name in ("MAIN_WALLET_ADDRESS_1", "MAIN_WALLET_ADDRESS_2", "TELEGRAM_BOT_TOKEN", "TELEGRAM_CHANNEL_ID"):
            assert name in message

    def test_wallets_must_differ(self) -> None:
        s = _settings(
            main_wallet_address_1=ROOT_1,
            main_wallet_address_2=ROOT_1,
            telegram_bot_token="t",
            telegram_channel_id="-1",
        )
        with pytest.raises(ConfigurationError, match="must differ"):
            s.require_tracking_config()

    def test_complete_config(self) -> None:
        _settings(
            main_wallet_address_1=ROOT_1,
            main_wallet_address_2=ROOT_2,
            telegram_bot_token="t",
            telegram_channel_id="-1",
        ).require_tracking_config()

    def test_invalid_size_rejected(self) -> None:
        with pytest.raises(ValueError):
            _settings(tracked_wallets_size=0)

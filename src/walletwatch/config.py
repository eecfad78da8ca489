"""Application configuration via pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from walletwatch.core.constants import (
    DEFAULT_JUPITER_PRICE_API_URL,
    DEFAULT_JUPITER_TOKEN_API_URL,
    DEFAULT_SOLANA_RPC_URL,
)
from walletwatch.core.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # Core
    env: Literal["development", "staging", "production"] = Field(
        default="development", alias="WALLETWATCH_ENV"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="WALLETWATCH_LOG_LEVEL"
    )

    # Root wallets
    main_wallet_address_1: str = Field(default="")
    main_wallet_address_2: str = Field(default="")

    # Telegram
    telegram_bot_token: SecretStr | None = Field(
        default=None,
        description="Bot token used for both commands and notifications",
    )
    telegram_channel_id: str | None = Field(
        default=None,
        description="Chat/channel that receives alerts (negative ids are groups)",
    )

    # Solana
    solana_rpc_url: str = Field(default=DEFAULT_SOLANA_RPC_URL)
    solana_ws_url: str | None = Field(
        default=None,
        description="Websocket endpoint; derived from SOLANA_RPC_URL when unset",
    )
    solana_rpc_api_key: SecretStr | None = Field(default=None)

    # Token metadata
    jupiter_price_api_url: str = Field(default=DEFAULT_JUPITER_PRICE_API_URL)
    jupiter_token_api_url: str = Field(default=DEFAULT_JUPITER_TOKEN_API_URL)

    # Tracking behaviour
    tracked_wallets_size: int = Field(
        default=1000,
        ge=1,
        description="Max derived addresses kept per root wallet",
    )
    update_delay_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Debounce window for batched balance updates",
    )
    max_balance_change: float = Field(
        default=25.0,
        gt=0,
        description="SOL delta above which a root transfer does not seed discovery",
    )
    seen_cache_ttl_seconds: float = Field(default=60.0, gt=0)
    subscribe_derived_wallets: bool = Field(
        default=True,
        description="Open activity subscriptions for discovered addresses",
    )

    # Persistence
    state_file: Path = Field(default=Path("data/bot_state.json"))

    @field_validator("main_wallet_address_1", "main_wallet_address_2", mode="before")
    @classmethod
    def strip_address(cls, v: str | None) -> str:
        if v is None:
            return ""
        return v.strip()

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def root_wallets(self) -> dict[int, str]:
        """Root wallet id -> address."""
        return {1: self.main_wallet_address_1, 2: self.main_wallet_address_2}

    @property
    def solana_ws_endpoint(self) -> str:
        if self.solana_ws_url:
            return self.solana_ws_url
        if self.solana_rpc_url.startswith("https://"):
            return "wss://" + self.solana_rpc_url.removeprefix("https://")
        if self.solana_rpc_url.startswith("http://"):
            return "ws://" + self.solana_rpc_url.removeprefix("http://")
        return self.solana_rpc_url

    @property
    def channel_is_group(self) -> bool:
        """Telegram group and channel ids are negative; private chats are positive."""
        return bool(self.telegram_channel_id) and str(self.telegram_channel_id).startswith("-")

    def require_tracking_config(self) -> None:
        """Raise ConfigurationError listing every missing startup requirement."""
        missing: list[str] = []
        if not self.main_wallet_address_1:
            missing.append("MAIN_WALLET_ADDRESS_1")
        if not self.main_wallet_address_2:
            missing.append("MAIN_WALLET_ADDRESS_2")
        if not self.telegram_bot_token:
            missing.append("TELEGRAM_BOT_TOKEN")
        if not self.telegram_channel_id:
            missing.append("TELEGRAM_CHANNEL_ID")
        if missing:
            raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")
        if self.main_wallet_address_1 == self.main_wallet_address_2:
            raise ConfigurationError("MAIN_WALLET_ADDRESS_1 and MAIN_WALLET_ADDRESS_2 must differ")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

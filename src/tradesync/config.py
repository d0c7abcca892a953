"""Configuration system using pydantic-settings with environment variable loading.

Settings are read once at process start (see tradesync.main) and turned into
plain values before any core component is constructed. Nothing below the
entry point reads the environment.
"""

from dataclasses import dataclass
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

ONE_DAY_NS = 86_400_000_000_000


class ExchangeSettings(BaseSettings):
    """Kraken REST API settings.

    Only public endpoints are used, so credentials are optional. The tier
    decides the pacing interval between history calls.
    """

    model_config = SettingsConfigDict(env_prefix="KRAKEN_")

    api_key: SecretStr = SecretStr("")
    api_secret: SecretStr = SecretStr("")
    tier: Literal["starter", "intermediate", "pro"] = "starter"
    call_cost: float = 1.0  # counter increase per history call
    pacing_interval: float | None = None  # seconds; overrides the tier-derived value
    timeout_ms: int = 30_000


class DatabaseSettings(BaseSettings):
    """Trade store location and layout."""

    model_config = SettingsConfigDict(env_prefix="DB_")

    backend: Literal["sqlite", "timescale"] = "sqlite"
    path: str = "data/trades.db"
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: SecretStr = SecretStr("")
    name: str | None = None  # defaults to the lowercased pair symbol
    table_suffix: str = "_kraken_trades"
    chunk_interval_ns: int = ONE_DAY_NS


class SyncSettings(BaseSettings):
    """Sync loop behaviour.

    All fields configurable via SYNC_ environment variable prefix.
    """

    model_config = SettingsConfigDict(env_prefix="SYNC_")

    pair: str = ""
    max_retries: int = 5
    retry_base_delay: float = 1.0
    retry_max_delay: float = 60.0
    estimate_eta: bool = True


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: Literal["console", "json"] = "console"  # LOG_FORMAT
    exchange: ExchangeSettings = ExchangeSettings()
    database: DatabaseSettings = DatabaseSettings()
    sync: SyncSettings = SyncSettings()

    def database_name(self) -> str:
        """Database name, falling back to the lowercased pair symbol."""
        return self.database.name or self.sync.pair.strip().lower()


@dataclass(frozen=True)
class SyncConfig:
    """Immutable run configuration handed to SyncEngine."""

    pair: str
    table_suffix: str = "_kraken_trades"
    max_retries: int = 5
    retry_base_delay: float = 1.0
    retry_max_delay: float = 60.0
    estimate_eta: bool = True

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "SyncConfig":
        """Build a SyncConfig from loaded application settings."""
        if not settings.sync.pair.strip():
            raise ValueError("SYNC_PAIR must be set to the pair to sync")
        return cls(
            pair=settings.sync.pair.strip(),
            table_suffix=settings.database.table_suffix,
            max_retries=max(1, settings.sync.max_retries),
            retry_base_delay=settings.sync.retry_base_delay,
            retry_max_delay=settings.sync.retry_max_delay,
            estimate_eta=settings.sync.estimate_eta,
        )

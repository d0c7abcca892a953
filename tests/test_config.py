"""Tests for settings loading and SyncConfig derivation."""

import pytest
from pydantic import ValidationError

from tradesync.config import (
    ONE_DAY_NS,
    AppSettings,
    DatabaseSettings,
    ExchangeSettings,
    SyncConfig,
    SyncSettings,
)


class TestSettings:
    """Environment variable loading."""

    def test_exchange_env_prefix(self, monkeypatch) -> None:
        monkeypatch.setenv("KRAKEN_TIER", "pro")
        monkeypatch.setenv("KRAKEN_PACING_INTERVAL", "0.5")
        settings = ExchangeSettings()
        assert settings.tier == "pro"
        assert settings.pacing_interval == 0.5

    def test_unknown_tier_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ExchangeSettings(tier="platinum")

    def test_database_defaults(self) -> None:
        settings = DatabaseSettings()
        assert settings.backend == "sqlite"
        assert settings.chunk_interval_ns == ONE_DAY_NS
        assert settings.table_suffix == "_kraken_trades"

    def test_database_name_falls_back_to_pair(self) -> None:
        settings = AppSettings(
            database=DatabaseSettings(name=None),
            sync=SyncSettings(pair=" XBTUSD "),
        )
        assert settings.database_name() == "xbtusd"

    def test_explicit_database_name_wins(self) -> None:
        settings = AppSettings(
            database=DatabaseSettings(name="history"),
            sync=SyncSettings(pair="XBTUSD"),
        )
        assert settings.database_name() == "history"


class TestSyncConfig:
    """SyncConfig.from_settings."""

    def test_from_settings(self, mock_settings: AppSettings) -> None:
        config = SyncConfig.from_settings(mock_settings)
        assert config.pair == "xbtusd"
        assert config.max_retries == 3
        assert config.retry_base_delay == 1.0
        assert config.table_suffix == "_kraken_trades"

    def test_empty_pair_rejected(self) -> None:
        settings = AppSettings(sync=SyncSettings(pair="  "))
        with pytest.raises(ValueError, match="SYNC_PAIR"):
            SyncConfig.from_settings(settings)

    def test_max_retries_at_least_one(self) -> None:
        settings = AppSettings(sync=SyncSettings(pair="XBTUSD", max_retries=0))
        assert SyncConfig.from_settings(settings).max_retries == 1

    def test_frozen(self) -> None:
        config = SyncConfig(pair="XBTUSD")
        with pytest.raises(AttributeError):
            config.pair = "ETHUSD"  # type: ignore[misc]

"""Tests for component wiring and the entry point."""

from unittest.mock import AsyncMock, patch

import pytest

from tradesync.config import AppSettings, DatabaseSettings, ExchangeSettings, SyncSettings
from tradesync.engine import SyncEngine
from tradesync.exceptions import PairNotFound, TransportError
from tradesync.main import _build_components, _build_store, main, run
from tradesync.models import SyncResult
from tradesync.rate_limit import pacing_interval
from tradesync.storage.sqlite_store import SqliteTradeStore
from tradesync.storage.timescale_store import TimescaleTradeStore


class TestBuildComponents:
    """Wiring from settings."""

    def test_builds_all_components(self, mock_settings: AppSettings) -> None:
        components = _build_components(mock_settings)
        assert set(components) == {
            "config",
            "client",
            "catalog",
            "limiter",
            "fetcher",
            "store",
            "engine",
        }
        assert isinstance(components["engine"], SyncEngine)
        assert isinstance(components["store"], SqliteTradeStore)

    def test_tier_derived_pacing(self, mock_settings: AppSettings) -> None:
        limiter = _build_components(mock_settings)["limiter"]
        assert limiter.interval == pytest.approx(pacing_interval("starter"))

    def test_explicit_pacing_overrides_tier(self) -> None:
        settings = AppSettings(
            exchange=ExchangeSettings(tier="starter", pacing_interval=0.25),
            sync=SyncSettings(pair="XBTUSD"),
        )
        assert _build_components(settings)["limiter"].interval == 0.25

    def test_missing_pair_rejected(self) -> None:
        with pytest.raises(ValueError):
            _build_components(AppSettings(sync=SyncSettings(pair="")))


class TestBuildStore:
    """Backend selection."""

    def test_sqlite_backend(self, mock_settings: AppSettings) -> None:
        assert isinstance(_build_store(mock_settings), SqliteTradeStore)

    def test_timescale_backend(self) -> None:
        settings = AppSettings(
            database=DatabaseSettings(backend="timescale"),
            sync=SyncSettings(pair="XBTUSD"),
        )
        assert isinstance(_build_store(settings), TimescaleTradeStore)


class TestRun:
    """run() always releases resources."""

    @pytest.mark.asyncio
    async def test_closes_client_and_store_on_failure(self, mock_settings: AppSettings) -> None:
        with (
            patch("tradesync.main.KrakenClient") as client_cls,
            patch("tradesync.main._build_store") as build_store,
            patch.object(SyncEngine, "run", AsyncMock(side_effect=TransportError("down"))),
        ):
            client = client_cls.return_value
            client.connect = AsyncMock()
            client.close = AsyncMock()
            store = build_store.return_value
            store.connect = AsyncMock()
            store.close = AsyncMock()

            with pytest.raises(TransportError):
                await run(mock_settings)

        store.close.assert_awaited_once()
        client.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_returns_engine_result(self, mock_settings: AppSettings) -> None:
        expected = SyncResult(
            pair="XXBTZUSD", table="xxbtzusd_kraken_trades", start_cursor=0, end_cursor=4
        )
        with (
            patch("tradesync.main.KrakenClient") as client_cls,
            patch("tradesync.main._build_store") as build_store,
            patch.object(SyncEngine, "run", AsyncMock(return_value=expected)),
        ):
            client_cls.return_value.connect = AsyncMock()
            client_cls.return_value.close = AsyncMock()
            build_store.return_value.connect = AsyncMock()
            build_store.return_value.close = AsyncMock()

            assert await run(mock_settings) is expected


class TestMain:
    """Exit codes."""

    def test_pair_not_found_exits_1(self) -> None:
        with patch("tradesync.main.run", new=AsyncMock(side_effect=PairNotFound("NOPE"))):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == 1

    def test_invalid_configuration_exits_2(self) -> None:
        with patch("tradesync.main.run", new=AsyncMock(side_effect=ValueError("SYNC_PAIR must be set"))):
            with pytest.raises(SystemExit) as exc_info:
                main()
        assert exc_info.value.code == 2

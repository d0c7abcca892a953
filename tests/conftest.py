"""Shared test fixtures for the trade history sync.

Upstream responses mimic Kraken's raw REST payloads (as returned by ccxt's
implicit public endpoints) so decoding is exercised end to end.
"""

import pytest
import pytest_asyncio

from tradesync.config import AppSettings, DatabaseSettings, ExchangeSettings, SyncSettings
from tradesync.exceptions import TransportError
from tradesync.exchange.client import MarketDataClient
from tradesync.models import PairDescriptor
from tradesync.storage.database import TradeDatabase
from tradesync.storage.sqlite_store import SqliteTradeStore

PAIR_ID = "XXBTZUSD"

ASSET_PAIRS = {
    "XXBTZUSD": {"altname": "XBTUSD", "wsname": "XBT/USD", "base": "XXBT", "quote": "ZUSD"},
    "XETHZUSD": {"altname": "ETHUSD", "wsname": "ETH/USD", "base": "XETH", "quote": "ZUSD"},
    "SOLUSD": {"altname": "SOLUSD", "wsname": "SOL/USD", "base": "SOL", "quote": "ZUSD"},
}


def raw_trade(
    trade_id: int,
    time: float | None = None,
    price: str = "100.0",
    volume: str = "0.5",
    side: str = "b",
    order_type: str = "m",
    misc: str = "",
) -> list:
    """One trade in Kraken's positional array format."""
    if time is None:
        time = 1690000000 + trade_id / 1000
    return [price, volume, time, side, order_type, misc, trade_id]


def trades_result(ids, last: int | str | None = None, pair_id: str = PAIR_ID) -> dict:
    """A Trades ``result`` object holding one record per id."""
    ids = list(ids)
    if last is None:
        last = ids[-1] if ids else 0
    return {pair_id: [raw_trade(i) for i in ids], "last": str(last)}


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeKrakenClient(MarketDataClient):
    """In-memory upstream serving scripted Trades pages.

    Each scripted entry is either a result dict or an exception to raise.
    Once the script runs out, an empty page is served. Every call is
    recorded as (since, count, clock time).
    """

    def __init__(
        self,
        pages: list | None = None,
        asset_pairs: dict | None = None,
        latest: dict | Exception | None = None,
        clock: FakeClock | None = None,
    ) -> None:
        self.pages = list(pages or [])
        self.asset_pairs = asset_pairs if asset_pairs is not None else ASSET_PAIRS
        self.latest = latest
        self.clock = clock
        self.calls: list[tuple[int | None, int | None, float | None]] = []
        self.asset_pair_calls = 0
        self.closed = False

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        self.closed = True

    async def fetch_asset_pairs(self) -> dict:
        self.asset_pair_calls += 1
        return self.asset_pairs

    async def fetch_trades(self, pair_id, since=None, count=None) -> dict:
        self.calls.append((since, count, self.clock() if self.clock else None))
        if count == 1:
            entry = self.latest if self.latest is not None else trades_result([])
        elif self.pages:
            entry = self.pages.pop(0)
        else:
            entry = trades_result([], last=since or 0)
        if isinstance(entry, Exception):
            raise entry
        return entry

    @property
    def page_calls(self) -> list[int | None]:
        """`since` of every paginated (non count=1) call."""
        return [since for since, count, _ in self.calls if count is None]


@pytest.fixture
def pair() -> PairDescriptor:
    return PairDescriptor(PAIR_ID, ("XBTUSD", "XBT/USD"))


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_client():
    """Factory for FakeKrakenClient instances."""
    return FakeKrakenClient


@pytest.fixture
def make_trade():
    """Factory for raw positional trade arrays."""
    return raw_trade


@pytest.fixture
def make_result():
    """Factory for raw Trades result objects."""
    return trades_result


@pytest.fixture
def transport_error() -> TransportError:
    return TransportError("connection reset by peer")


@pytest_asyncio.fixture
async def sqlite_store(tmp_path):
    """Connected SQLite store on a temporary file."""
    store = SqliteTradeStore(TradeDatabase(str(tmp_path / "trades.db")))
    await store.connect()
    yield store
    await store.close()


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (starter tier, sqlite backend)."""
    return AppSettings(
        log_level="DEBUG",
        exchange=ExchangeSettings(tier="starter"),
        database=DatabaseSettings(backend="sqlite", path="data/test.db"),
        sync=SyncSettings(pair="xbtusd", max_retries=3, retry_base_delay=1.0),
    )

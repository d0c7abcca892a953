"""Entry point for the trade history sync.

Wires all components together and runs a single sync to completion.
Configuration is read from the environment exactly once, here, and handed
to the components as plain values.

Component wiring order (in _build_components):
1. AppSettings (configuration)
2. Logging setup
3. KrakenClient (public market data)
4. PairCatalog (symbol resolution)
5. RateLimiter (tier pacing)
6. TradeFetcher (page fetch + decode)
7. TradeStore (SQLite or TimescaleDB backend)
8. SyncEngine (resume/fetch/persist loop)
"""

import asyncio
import sys
from typing import Any

from tradesync.catalog import PairCatalog
from tradesync.config import AppSettings, SyncConfig
from tradesync.engine import SyncEngine
from tradesync.exceptions import PairNotFound, SyncError
from tradesync.exchange.kraken_client import KrakenClient
from tradesync.fetcher import TradeFetcher
from tradesync.logging import get_logger, setup_logging
from tradesync.models import SyncResult
from tradesync.rate_limit import RateLimiter, pacing_interval
from tradesync.storage.database import TradeDatabase
from tradesync.storage.sqlite_store import SqliteTradeStore
from tradesync.storage.store import TradeStore
from tradesync.storage.timescale_store import TimescaleTradeStore


def _build_store(settings: AppSettings) -> TradeStore:
    """Create the configured store backend (not yet connected)."""
    db = settings.database
    if db.backend == "timescale":
        return TimescaleTradeStore(
            host=db.host,
            port=db.port,
            user=db.user,
            password=db.password.get_secret_value(),
            dbname=settings.database_name(),
            chunk_interval_ns=db.chunk_interval_ns,
        )
    return SqliteTradeStore(TradeDatabase(db.path, chunk_interval_ns=db.chunk_interval_ns))


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all sync components from settings.

    Does NOT open any connection -- that happens in run().
    """
    config = SyncConfig.from_settings(settings)

    client = KrakenClient(settings.exchange)
    catalog = PairCatalog(client)

    interval = settings.exchange.pacing_interval
    if interval is None:
        interval = pacing_interval(settings.exchange.tier, settings.exchange.call_cost)
    limiter = RateLimiter(interval)

    fetcher = TradeFetcher(client)
    store = _build_store(settings)

    engine = SyncEngine(
        config=config,
        catalog=catalog,
        limiter=limiter,
        fetcher=fetcher,
        store=store,
    )

    return {
        "config": config,
        "client": client,
        "catalog": catalog,
        "limiter": limiter,
        "fetcher": fetcher,
        "store": store,
        "engine": engine,
    }


async def run(settings: AppSettings | None = None) -> SyncResult:
    """Run one sync of the configured pair until caught up.

    Always closes the exchange client and the store, success or not.
    """
    settings = settings or AppSettings()
    setup_logging(settings.log_level, settings.log_format)
    logger = get_logger("tradesync.main")

    components = _build_components(settings)
    client = components["client"]
    store = components["store"]

    logger.info(
        "tradesync_starting",
        pair=components["config"].pair,
        backend=settings.database.backend,
        tier=settings.exchange.tier,
        pacing_interval=round(components["limiter"].interval, 3),
    )

    try:
        await client.connect()
        await store.connect()
        return await components["engine"].run()
    finally:
        await store.close()
        await client.close()
        logger.info("tradesync_stopped")


def main() -> None:
    """Synchronous entry point. Exits non-zero on a classified sync failure."""
    logger = get_logger("tradesync.main")
    try:
        asyncio.run(run())
    except PairNotFound as e:
        logger.error("pair_not_found", symbol=e.symbol, hint="check spelling or try another pair")
        sys.exit(1)
    except SyncError as e:
        logger.error("sync_aborted", error_type=type(e).__name__, error=str(e))
        sys.exit(1)
    except ValueError as e:
        logger.error("invalid_configuration", error=str(e))
        sys.exit(2)


if __name__ == "__main__":
    main()

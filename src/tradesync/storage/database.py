"""aiosqlite connection manager for the SQLite trade store.

SQLite has no native time partitioning. A table counts as time-partitioned
once it has a row in the ``partitioned_tables`` catalog naming its time
column and chunk width; the catalog lives in the same file as the trades.
"""

import os
from typing import Self

import aiosqlite

from tradesync.config import ONE_DAY_NS
from tradesync.logging import get_logger

logger = get_logger(__name__)

# Tracked in PRAGMA user_version
SCHEMA_VERSION = 1

BUSY_TIMEOUT_MS = 5_000

_CATALOG_SQL = """
CREATE TABLE IF NOT EXISTS partitioned_tables (
    table_name TEXT PRIMARY KEY,
    time_column TEXT NOT NULL,
    chunk_interval_ns INTEGER NOT NULL,
    created_at INTEGER NOT NULL
);
"""


class TradeDatabase:
    """Owns the single aiosqlite connection for one trades file.

    Usage:
        async with TradeDatabase("data/trades.db") as database:
            await database.register_partitioned("xxbtzusd_kraken_trades")
            await database.db.commit()
    """

    def __init__(
        self,
        db_path: str = "data/trades.db",
        chunk_interval_ns: int = ONE_DAY_NS,
    ) -> None:
        self._path = db_path
        self._chunk_interval_ns = chunk_interval_ns
        self._conn: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        """The open connection. Raises RuntimeError when not connected."""
        if self._conn is None:
            raise RuntimeError(f"{self._path} is not connected; call connect() first")
        return self._conn

    @property
    def chunk_interval_ns(self) -> int:
        return self._chunk_interval_ns

    async def connect(self) -> None:
        """Open the file (creating its directory), set pragmas, migrate the catalog."""
        parent = os.path.dirname(self._path)
        if parent:
            os.makedirs(parent, exist_ok=True)

        conn = await aiosqlite.connect(self._path)
        for pragma in (
            "PRAGMA journal_mode=WAL",
            "PRAGMA synchronous=NORMAL",
            f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}",
        ):
            await conn.execute(pragma)

        cursor = await conn.execute("PRAGMA user_version")
        (version,) = await cursor.fetchone()
        if version < SCHEMA_VERSION:
            await conn.executescript(_CATALOG_SQL)
            await conn.execute(f"PRAGMA user_version={SCHEMA_VERSION}")
            await conn.commit()
            logger.info("trade_db_migrated", from_version=version, to_version=SCHEMA_VERSION)

        self._conn = conn
        logger.info("trade_db_connected", db_path=self._path)

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        logger.info("trade_db_closed", db_path=self._path)

    # ──────────────────────────────────────────────
    # Partition catalog
    # ──────────────────────────────────────────────

    async def register_partitioned(self, table: str, time_column: str = "time") -> None:
        """Record table as partitioned on time_column. Runs in the caller's transaction."""
        await self.db.execute(
            "INSERT OR IGNORE INTO partitioned_tables "
            "(table_name, time_column, chunk_interval_ns, created_at) "
            "VALUES (?, ?, ?, CAST(strftime('%s', 'now') AS INTEGER) * 1000)",
            (table, time_column, self._chunk_interval_ns),
        )

    async def partition_info(self, table: str) -> tuple[str, int] | None:
        """Return (time_column, chunk_interval_ns) for a registered table."""
        cursor = await self.db.execute(
            "SELECT time_column, chunk_interval_ns FROM partitioned_tables WHERE table_name = ?",
            (table,),
        )
        row = await cursor.fetchone()
        return None if row is None else (row[0], int(row[1]))

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.close()

"""SQLite trade store on top of TradeDatabase.

All SQL for the SQLite backend is isolated behind this class. Column types
follow the canonical schema (BIGINT / DOUBLE PRECISION / TEXT), which
SQLite maps to INTEGER / REAL / TEXT affinity.
"""

import sqlite3

from tradesync.exceptions import PersistenceError
from tradesync.logging import get_logger
from tradesync.models import OrderType, Trade, TradeSide
from tradesync.storage.database import TradeDatabase
from tradesync.storage.store import TRADE_COLUMNS, TradeStore, trade_to_row

logger = get_logger(__name__)

# OperationalError messages that indicate a broken schema rather than a busy/IO problem
_PERMANENT_OPERATIONAL = ("no such table", "no such column", "syntax error")


class SqliteTradeStore(TradeStore):
    """Async SQLite store for per-pair trade tables.

    Usage:
        async with SqliteTradeStore(TradeDatabase("data/trades.db")) as store:
            await store.ensure_schema("xxbtzusd_kraken_trades")
            cursor = await store.resume_cursor("xxbtzusd_kraken_trades")
    """

    def __init__(self, database: TradeDatabase) -> None:
        self._database = database

    async def connect(self) -> None:
        try:
            await self._database.connect()
        except sqlite3.Error as e:
            raise _translate(e, "connect") from e

    async def close(self) -> None:
        await self._database.close()

    # ──────────────────────────────────────────────
    # Schema
    # ──────────────────────────────────────────────

    async def ensure_schema(self, table: str) -> bool:
        db = self._database.db
        try:
            cursor = await db.execute(
                "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?",
                (table,),
            )
            exists = await cursor.fetchone() is not None

            await db.execute(
                f'CREATE TABLE IF NOT EXISTS "{table}" ('
                "time BIGINT NOT NULL, "
                "price DOUBLE PRECISION, "
                "volume DOUBLE PRECISION, "
                "side TEXT, "
                "type TEXT, "
                "misc TEXT, "
                "trade_id BIGINT NOT NULL)"
            )
            await db.execute(
                f'CREATE UNIQUE INDEX IF NOT EXISTS "{table}_trade_id_key" '
                f'ON "{table}" (trade_id)'
            )
            await db.execute(
                f'CREATE INDEX IF NOT EXISTS "{table}_time_idx" ON "{table}" (time)'
            )
            await self._database.register_partitioned(table)
            await db.commit()
        except sqlite3.Error as e:
            await db.rollback()
            raise _translate(e, f"ensure_schema({table})") from e

        if not exists:
            logger.info("trade_table_created", table=table)
        return not exists

    async def is_partitioned(self, table: str) -> bool:
        """Return True if the table is registered as time-partitioned."""
        return await self._database.partition_info(table) is not None

    # ──────────────────────────────────────────────
    # Write
    # ──────────────────────────────────────────────

    async def write_batch(self, table: str, trades: list[Trade]) -> int:
        if not trades:
            return 0

        db = self._database.db
        columns = ", ".join(TRADE_COLUMNS)
        try:
            cursor = await db.executemany(
                f'INSERT INTO "{table}" ({columns}) '
                "VALUES (?, ?, ?, ?, ?, ?, ?) "
                "ON CONFLICT (trade_id) DO NOTHING",
                [trade_to_row(t) for t in trades],
            )
            await db.commit()
        except sqlite3.Error as e:
            await db.rollback()
            raise _translate(e, f"write_batch({table})") from e

        inserted = cursor.rowcount
        logger.debug("inserted_trades", table=table, total=len(trades), inserted=inserted)
        return inserted

    # ──────────────────────────────────────────────
    # Read
    # ──────────────────────────────────────────────

    async def resume_cursor(self, table: str) -> int:
        last = await self.last_trade_id(table)
        return 0 if last is None else last + 1

    async def last_trade_id(self, table: str) -> int | None:
        row = await self._fetchone(f'SELECT MAX(trade_id) FROM "{table}"', table)
        return None if row is None or row[0] is None else int(row[0])

    async def count_trades(self, table: str) -> int:
        row = await self._fetchone(f'SELECT COUNT(*) FROM "{table}"', table)
        return int(row[0]) if row else 0

    async def get_trades(
        self,
        table: str,
        since_ns: int | None = None,
        until_ns: int | None = None,
        limit: int | None = None,
    ) -> list[Trade]:
        conditions: list[str] = []
        params: list = []

        if since_ns is not None:
            conditions.append("time >= ?")
            params.append(since_ns)
        if until_ns is not None:
            conditions.append("time <= ?")
            params.append(until_ns)

        query = f'SELECT {", ".join(TRADE_COLUMNS)} FROM "{table}"'
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY trade_id ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        try:
            cursor = await self._database.db.execute(query, params)
            rows = await cursor.fetchall()
        except sqlite3.Error as e:
            raise _translate(e, f"get_trades({table})") from e

        return [
            Trade(
                time=row[0],
                price=row[1],
                volume=row[2],
                side=TradeSide(row[3]),
                type=OrderType(row[4]),
                misc=row[5] or "",
                trade_id=row[6],
            )
            for row in rows
        ]

    async def _fetchone(self, query: str, table: str) -> tuple | None:
        try:
            cursor = await self._database.db.execute(query)
            return await cursor.fetchone()
        except sqlite3.Error as e:
            raise _translate(e, f"query({table})") from e


def _translate(error: sqlite3.Error, operation: str) -> PersistenceError:
    """Classify a sqlite3 error as transient (busy/locked/IO) or permanent."""
    message = str(error).lower()
    transient = isinstance(error, sqlite3.OperationalError) and not any(
        marker in message for marker in _PERMANENT_OPERATIONAL
    )
    logger.warning(
        "sqlite_error",
        operation=operation,
        error=str(error),
        transient=transient,
    )
    return PersistenceError(f"{operation} failed: {error}", transient=transient)

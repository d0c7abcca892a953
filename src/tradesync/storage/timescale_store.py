"""TimescaleDB trade store via psycopg2.

psycopg2 is blocking; every database round trip runs in a worker thread
through asyncio.to_thread so the event loop stays responsive. Execution
is still strictly sequential: the engine awaits each call before the next.

Each pair table is converted to a hypertable on ``time`` (BIGINT ns since
epoch) with one-day chunks by default. The unique index must include the
partitioning column, so dedup is keyed on (trade_id, time).
"""

import asyncio

import psycopg2
from psycopg2 import sql
from psycopg2.extras import execute_values

from tradesync.config import ONE_DAY_NS
from tradesync.exceptions import PersistenceError
from tradesync.logging import get_logger
from tradesync.models import OrderType, Trade, TradeSide
from tradesync.storage.store import TRADE_COLUMNS, TradeStore, trade_to_row

logger = get_logger(__name__)


class TimescaleTradeStore(TradeStore):
    """Postgres + TimescaleDB store for per-pair trade hypertables.

    The target database must already exist; tables, the timescaledb
    extension and hypertables are created on demand.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        dbname: str,
        chunk_interval_ns: int = ONE_DAY_NS,
    ) -> None:
        self._conn_kwargs = {
            "host": host,
            "port": port,
            "user": user,
            "password": password,
            "dbname": dbname,
            "application_name": "tradesync",
        }
        self._chunk_interval_ns = chunk_interval_ns
        self._conn = None

    @property
    def conn(self):
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    async def connect(self) -> None:
        try:
            self._conn = await asyncio.to_thread(psycopg2.connect, **self._conn_kwargs)
        except psycopg2.Error as e:
            raise _translate(e, "connect") from e
        logger.info(
            "timescale_connected",
            host=self._conn_kwargs["host"],
            dbname=self._conn_kwargs["dbname"],
        )

    async def close(self) -> None:
        if self._conn is not None:
            await asyncio.to_thread(self._conn.close)
            self._conn = None
            logger.info("timescale_closed", dbname=self._conn_kwargs["dbname"])

    async def ensure_schema(self, table: str) -> bool:
        created = await self._run(self._ensure_schema_sync, table, operation="ensure_schema")
        if created:
            logger.info("hypertable_created", table=table, chunk_interval_ns=self._chunk_interval_ns)
        return created

    async def write_batch(self, table: str, trades: list[Trade]) -> int:
        if not trades:
            return 0
        inserted = await self._run(self._write_batch_sync, table, trades, operation="write_batch")
        logger.debug("inserted_trades", table=table, total=len(trades), inserted=inserted)
        return inserted

    async def resume_cursor(self, table: str) -> int:
        last = await self.last_trade_id(table)
        return 0 if last is None else last + 1

    async def last_trade_id(self, table: str) -> int | None:
        row = await self._run(
            self._fetchone_sync,
            sql.SQL("SELECT MAX(trade_id) FROM {}").format(sql.Identifier(table)),
            (),
            operation="last_trade_id",
        )
        return None if row is None or row[0] is None else int(row[0])

    async def count_trades(self, table: str) -> int:
        row = await self._run(
            self._fetchone_sync,
            sql.SQL("SELECT COUNT(*) FROM {}").format(sql.Identifier(table)),
            (),
            operation="count_trades",
        )
        return int(row[0]) if row else 0

    async def get_trades(
        self,
        table: str,
        since_ns: int | None = None,
        until_ns: int | None = None,
        limit: int | None = None,
    ) -> list[Trade]:
        conditions: list[sql.Composable] = []
        params: list = []
        if since_ns is not None:
            conditions.append(sql.SQL("time >= %s"))
            params.append(since_ns)
        if until_ns is not None:
            conditions.append(sql.SQL("time <= %s"))
            params.append(until_ns)

        query = sql.SQL("SELECT {} FROM {}").format(
            sql.SQL(", ").join(map(sql.Identifier, TRADE_COLUMNS)),
            sql.Identifier(table),
        )
        if conditions:
            query += sql.SQL(" WHERE ") + sql.SQL(" AND ").join(conditions)
        query += sql.SQL(" ORDER BY trade_id ASC")
        if limit is not None:
            query += sql.SQL(" LIMIT %s")
            params.append(limit)

        rows = await self._run(self._fetchall_sync, query, tuple(params), operation="get_trades")
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

    # ──────────────────────────────────────────────
    # Blocking helpers (run in a worker thread)
    # ──────────────────────────────────────────────

    async def _run(self, fn, *args, operation: str):
        try:
            return await asyncio.to_thread(fn, *args)
        except psycopg2.Error as e:
            await asyncio.to_thread(self._rollback_quietly)
            raise _translate(e, operation) from e

    def _rollback_quietly(self) -> None:
        if self._conn is not None and not self._conn.closed:
            try:
                self._conn.rollback()
            except psycopg2.Error:
                logger.warning("timescale_rollback_failed", exc_info=True)

    def _ensure_schema_sync(self, table: str) -> bool:
        ident = sql.Identifier(table)
        with self.conn.cursor() as cur:
            cur.execute(
                "SELECT EXISTS (SELECT 1 FROM information_schema.tables WHERE table_name = %s)",
                (table,),
            )
            exists = bool(cur.fetchone()[0])

            cur.execute("CREATE EXTENSION IF NOT EXISTS timescaledb")
            cur.execute(
                sql.SQL(
                    "CREATE TABLE IF NOT EXISTS {} ("
                    "time BIGINT NOT NULL, "
                    "price DOUBLE PRECISION, "
                    "volume DOUBLE PRECISION, "
                    "side TEXT, "
                    "type TEXT, "
                    "misc TEXT, "
                    "trade_id BIGINT NOT NULL)"
                ).format(ident)
            )
            cur.execute(
                "SELECT create_hypertable(%s, 'time', "
                "chunk_time_interval => %s, if_not_exists => TRUE)",
                (table, self._chunk_interval_ns),
            )
            cur.execute(
                sql.SQL("CREATE UNIQUE INDEX IF NOT EXISTS {} ON {} (trade_id, time)").format(
                    sql.Identifier(f"{table}_trade_id_key"), ident
                )
            )
        self.conn.commit()
        return not exists

    def _write_batch_sync(self, table: str, trades: list[Trade]) -> int:
        query = sql.SQL(
            "INSERT INTO {} ({}) VALUES %s ON CONFLICT (trade_id, time) DO NOTHING RETURNING trade_id"
        ).format(
            sql.Identifier(table),
            sql.SQL(", ").join(map(sql.Identifier, TRADE_COLUMNS)),
        )
        with self.conn.cursor() as cur:
            returned = execute_values(
                cur,
                query,
                [trade_to_row(t) for t in trades],
                page_size=max(len(trades), 1),
                fetch=True,
            )
        self.conn.commit()
        return len(returned)

    def _fetchone_sync(self, query, params: tuple):
        with self.conn.cursor() as cur:
            cur.execute(query, params)
            row = cur.fetchone()
        self.conn.commit()
        return row

    def _fetchall_sync(self, query, params: tuple) -> list:
        with self.conn.cursor() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        self.conn.commit()
        return rows


def _translate(error: psycopg2.Error, operation: str) -> PersistenceError:
    """Classify a psycopg2 error: connection problems are transient."""
    transient = isinstance(error, (psycopg2.OperationalError, psycopg2.InterfaceError))
    logger.warning(
        "timescale_error",
        operation=operation,
        error=str(error),
        transient=transient,
    )
    return PersistenceError(f"{operation} failed: {error}", transient=transient)

"""Trade history persistence layer.

Provides the abstract TradeStore plus SQLite (aiosqlite) and TimescaleDB
(psycopg2) backends, one time-partitioned table per pair.
"""

from tradesync.storage.database import TradeDatabase
from tradesync.storage.sqlite_store import SqliteTradeStore
from tradesync.storage.store import TradeStore, table_name_for
from tradesync.storage.timescale_store import TimescaleTradeStore

__all__ = [
    "SqliteTradeStore",
    "TimescaleTradeStore",
    "TradeDatabase",
    "TradeStore",
    "table_name_for",
]

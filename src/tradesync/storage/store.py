"""Abstract trade store interface.

One table per pair, append-only. The resume cursor is always derived from
the rows already committed (1 + max(trade_id)); there is no separate
checkpoint record, so a crash loses nothing that was committed.

Batch writes are upserts keyed by trade_id and each page is written in a
single transaction: a page is either fully committed or not at all, and
re-delivering an already committed page inserts nothing.
"""

import re
from abc import ABC, abstractmethod
from typing import Self

from tradesync.exceptions import PersistenceError
from tradesync.models import PairDescriptor, Trade

_IDENTIFIER_RE = re.compile(r"^[a-z0-9_]{1,63}$")

TRADE_COLUMNS = ("time", "price", "volume", "side", "type", "misc", "trade_id")


def table_name_for(pair: PairDescriptor, suffix: str = "_kraken_trades") -> str:
    """Table name for a pair: lowercased canonical id plus suffix.

    Raises:
        PersistenceError: the result is not a plain SQL identifier.
    """
    name = f"{pair.pair_id.lower()}{suffix}"
    if not _IDENTIFIER_RE.match(name):
        raise PersistenceError(f"Unsafe table name {name!r} for pair {pair.pair_id}")
    return name


def trade_to_row(trade: Trade) -> tuple:
    """Flatten a Trade into column order (see TRADE_COLUMNS)."""
    return (
        trade.time,
        trade.price,
        trade.volume,
        trade.side.value,
        trade.type.value,
        trade.misc,
        trade.trade_id,
    )


class TradeStore(ABC):
    """Abstract base class for time-partitioned trade stores."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying connection."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Close the underlying connection if open."""
        ...

    @abstractmethod
    async def ensure_schema(self, table: str) -> bool:
        """Create the table and mark it time-partitioned on ``time`` if absent.

        Safe to call on every run. Returns True iff this call created the table.
        """
        ...

    @abstractmethod
    async def resume_cursor(self, table: str) -> int:
        """Return 0 for an empty table, else 1 + max(trade_id)."""
        ...

    @abstractmethod
    async def write_batch(self, table: str, trades: list[Trade]) -> int:
        """Persist one page atomically. Returns the number of newly inserted rows."""
        ...

    @abstractmethod
    async def last_trade_id(self, table: str) -> int | None:
        """Return the highest committed trade_id, or None if the table is empty."""
        ...

    @abstractmethod
    async def count_trades(self, table: str) -> int:
        """Return the number of committed rows."""
        ...

    @abstractmethod
    async def get_trades(
        self,
        table: str,
        since_ns: int | None = None,
        until_ns: int | None = None,
        limit: int | None = None,
    ) -> list[Trade]:
        """Query committed trades in an optional time range, ordered by trade_id."""
        ...

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        """Async context manager exit."""
        await self.close()

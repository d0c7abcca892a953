"""Core data models for trade history sync.

Trades are immutable once decoded: the store is append-only and nothing
downstream of TradeFetcher mutates a record.
"""

from dataclasses import dataclass, field
from enum import Enum


class TradeSide(str, Enum):
    """Aggressor side as encoded by the upstream ("b" / "s")."""

    BUY = "b"
    SELL = "s"


class OrderType(str, Enum):
    """Order type as encoded by the upstream ("m" / "l")."""

    MARKET = "m"
    LIMIT = "l"


class SyncState(str, Enum):
    """Lifecycle states of a single sync run."""

    RESOLVING = "resolving"
    BOOTSTRAPPING = "bootstrapping"
    SYNCING = "syncing"
    CAUGHT_UP = "caught_up"
    FAILED = "failed"


@dataclass(frozen=True)
class Trade:
    """One executed public trade.

    time is nanoseconds since the epoch. trade_id is assigned upstream and
    strictly increasing per pair; it is both the pagination cursor and the
    dedup key.
    """

    time: int
    price: float
    volume: float
    side: TradeSide
    type: OrderType
    misc: str
    trade_id: int


@dataclass(frozen=True)
class PairDescriptor:
    """A tradeable pair: canonical exchange id plus alternate names."""

    pair_id: str
    altnames: tuple[str, ...] = ()

    @property
    def names(self) -> tuple[str, ...]:
        """All names this pair answers to, canonical id first."""
        return (self.pair_id, *self.altnames)


@dataclass(frozen=True)
class TradePage:
    """One page of trade history returned by a single upstream call.

    last is the upstream's opaque trailing marker, used to build the next
    cursor. is_final is True when the page held fewer than the maximum
    number of records.
    """

    trades: tuple[Trade, ...]
    last: str
    is_final: bool

    def __len__(self) -> int:
        return len(self.trades)


@dataclass
class SyncResult:
    """Summary of a completed sync run."""

    pair: str
    table: str
    start_cursor: int
    end_cursor: int
    pages: int = 0
    records_fetched: int = 0
    records_written: int = 0
    duration_seconds: float = 0.0
    final_state: SyncState = SyncState.CAUGHT_UP
    table_created: bool = False
    retries: int = 0
    errors: list[str] = field(default_factory=list)

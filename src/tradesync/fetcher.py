"""Single-page trade history fetch and strict record decoding.

Kraken sends each trade as a positional array:

    [price: str, volume: str, time: float, side: str, type: str, misc: str, trade_id: int]

Every field is validated up front. Any mismatch raises MalformedRecord for
the whole page rather than writing a miscoded row.

CRITICAL: time arrives as fractional epoch seconds in a float. It is
converted through the float's shortest decimal repr (Decimal(str(t))) so
1690000000.123456 becomes exactly 1690000000123456000 ns. Multiplying the
float by 1e9 directly would be off by up to a few hundred ns.
"""

import math
from decimal import Decimal, InvalidOperation

from tradesync.exceptions import MalformedRecord
from tradesync.exchange.client import MarketDataClient
from tradesync.logging import get_logger
from tradesync.models import OrderType, PairDescriptor, Trade, TradePage, TradeSide

logger = get_logger(__name__)

MAX_PAGE_SIZE = 1000
RECORD_FIELDS = ("price", "volume", "time", "side", "type", "misc", "trade_id")
NS_PER_SECOND = 1_000_000_000


class TradeFetcher:
    """Fetches and decodes one page of trade history per call.

    Pacing is NOT handled here -- SyncEngine gates every call through
    RateLimiter before calling in.

    Usage:
        fetcher = TradeFetcher(client)
        page = await fetcher.fetch_page(pair, since=0)
    """

    def __init__(self, client: MarketDataClient, page_size: int = MAX_PAGE_SIZE) -> None:
        self._client = client
        self._page_size = page_size

    @property
    def page_size(self) -> int:
        return self._page_size

    async def fetch_page(self, pair: PairDescriptor, since: int) -> TradePage:
        """Fetch the page of trades starting at cursor `since`.

        is_final is True iff the page holds fewer than page_size records.
        """
        result = await self._client.fetch_trades(pair.pair_id, since=since)
        page = decode_page(result, pair, self._page_size)
        logger.debug(
            "trade_page_fetched",
            pair=pair.pair_id,
            since=since,
            records=len(page),
            last=page.last,
            final=page.is_final,
        )
        return page

    async def fetch_latest_trade_id(self, pair: PairDescriptor) -> int | None:
        """Return the newest upstream trade id, or None if the pair has no trades."""
        result = await self._client.fetch_trades(pair.pair_id, count=1)
        page = decode_page(result, pair, self._page_size)
        if not page.trades:
            return None
        return page.trades[-1].trade_id


def decode_page(
    result: dict,
    pair: PairDescriptor,
    page_size: int = MAX_PAGE_SIZE,
) -> TradePage:
    """Decode a raw Trades ``result`` object into a TradePage.

    Raises:
        MalformedRecord: missing record list, bad record, unordered ids,
            or a ``last`` marker that is not an integer.
    """
    if not isinstance(result, dict):
        raise MalformedRecord("Trades result is not an object")

    records = _find_records(result, pair)
    last = _decode_last(result.get("last"))

    trades: list[Trade] = []
    for index, raw in enumerate(records):
        try:
            trade = decode_trade(raw)
        except MalformedRecord as e:
            raise MalformedRecord(f"record {index} of {pair.pair_id}: {e}") from e
        if trades and trade.trade_id <= trades[-1].trade_id:
            raise MalformedRecord(
                f"record {index} of {pair.pair_id}: trade_id {trade.trade_id} "
                f"does not follow {trades[-1].trade_id}"
            )
        trades.append(trade)

    return TradePage(trades=tuple(trades), last=last, is_final=len(trades) < page_size)


def decode_trade(raw: object) -> Trade:
    """Decode one positional trade array into a Trade.

    Raises:
        MalformedRecord: wrong length, or any field of the wrong type/value.
    """
    if not isinstance(raw, (list, tuple)):
        raise MalformedRecord(f"expected array, got {type(raw).__name__}")
    if len(raw) != len(RECORD_FIELDS):
        raise MalformedRecord(f"expected {len(RECORD_FIELDS)} fields, got {len(raw)}")

    price_raw, volume_raw, time_raw, side_raw, type_raw, misc_raw, id_raw = raw

    return Trade(
        time=_to_nanoseconds(time_raw),
        price=_parse_quantity(price_raw, "price"),
        volume=_parse_quantity(volume_raw, "volume"),
        side=_parse_enum(TradeSide, side_raw, "side"),
        type=_parse_enum(OrderType, type_raw, "type"),
        misc=_require_str(misc_raw, "misc"),
        trade_id=_parse_trade_id(id_raw),
    )


# ──────────────────────────────────────────────
# Field decoders
# ──────────────────────────────────────────────


def _find_records(result: dict, pair: PairDescriptor) -> list:
    if pair.pair_id in result:
        records = result[pair.pair_id]
    else:
        # Some pairs are keyed by an alternate name; accept a single unambiguous key
        keys = [k for k in result if k != "last"]
        if len(keys) != 1:
            raise MalformedRecord(
                f"no record list for {pair.pair_id} (keys: {sorted(keys)})"
            )
        records = result[keys[0]]

    if not isinstance(records, list):
        raise MalformedRecord(f"record list for {pair.pair_id} is not an array")
    return records


def _decode_last(value: object) -> str:
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise MalformedRecord(f"'last' marker missing or not a string: {value!r}")
    text = str(value).strip()
    try:
        int(text)
    except ValueError:
        raise MalformedRecord(f"'last' marker is not an integer: {value!r}") from None
    return text


def _require_str(value: object, name: str) -> str:
    if not isinstance(value, str):
        raise MalformedRecord(f"{name} must be a string, got {type(value).__name__}")
    return value


def _parse_quantity(value: object, name: str) -> float:
    text = _require_str(value, name)
    try:
        parsed = float(text)
    except ValueError:
        raise MalformedRecord(f"{name} is not a number: {text!r}") from None
    if not math.isfinite(parsed):
        raise MalformedRecord(f"{name} is not finite: {text!r}")
    return parsed


def _parse_enum(enum_cls, value: object, name: str):
    text = _require_str(value, name)
    try:
        return enum_cls(text)
    except ValueError:
        raise MalformedRecord(f"unknown {name}: {text!r}") from None


def _to_nanoseconds(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedRecord(f"time must be a number, got {type(value).__name__}")
    if not math.isfinite(value):
        raise MalformedRecord(f"time is not finite: {value!r}")
    try:
        return int(Decimal(str(value)) * NS_PER_SECOND)
    except InvalidOperation:
        raise MalformedRecord(f"time is not a number: {value!r}") from None


def _parse_trade_id(value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedRecord(f"trade_id must be a number, got {type(value).__name__}")
    if isinstance(value, float) and not value.is_integer():
        raise MalformedRecord(f"trade_id is not integral: {value!r}")
    trade_id = int(value)
    if trade_id < 0:
        raise MalformedRecord(f"trade_id is negative: {trade_id}")
    return trade_id

"""Pair resolution against the upstream tradeable-pair catalog.

Accepts either Kraken's canonical pair id (e.g. "XXBTZUSD") or one of its
alternate names ("XBTUSD", "XBT/USD"), case-insensitively.
"""

from tradesync.exceptions import PairNotFound
from tradesync.exchange.client import MarketDataClient
from tradesync.logging import get_logger
from tradesync.models import PairDescriptor

logger = get_logger(__name__)

_ALTNAME_FIELDS = ("altname", "wsname")


class PairCatalog:
    """Resolves user-supplied symbols to canonical pair descriptors.

    The catalog is fetched once, on first use, and cached for the lifetime
    of the instance; the set of pairs is stable within a session.

    Usage:
        catalog = PairCatalog(client)
        pair = await catalog.resolve("xbtusd")  # PairDescriptor("XXBTZUSD", ...)
    """

    def __init__(self, client: MarketDataClient) -> None:
        self._client = client
        self._by_id: dict[str, PairDescriptor] | None = None
        self._by_altname: dict[str, PairDescriptor] = {}

    async def resolve(self, symbol: str) -> PairDescriptor:
        """Resolve symbol to a PairDescriptor. Canonical id wins over altname.

        Raises:
            PairNotFound: symbol matches neither lookup table.
        """
        if self._by_id is None:
            await self._load()
        assert self._by_id is not None

        key = _normalize(symbol)
        if key in self._by_id:
            pair = self._by_id[key]
            logger.info("pair_resolved", symbol=symbol, pair_id=pair.pair_id, match="canonical")
            return pair

        pair = self._by_altname.get(key)
        if pair is not None:
            logger.info("pair_resolved", symbol=symbol, pair_id=pair.pair_id, match="altname")
            return pair

        logger.warning("pair_not_found", symbol=symbol, known_pairs=len(self._by_id))
        raise PairNotFound(symbol)

    async def _load(self) -> None:
        """Fetch the catalog and build both lookup tables."""
        raw = await self._client.fetch_asset_pairs()

        by_id: dict[str, PairDescriptor] = {}
        by_altname: dict[str, PairDescriptor] = {}
        for pair_id, info in raw.items():
            info = info if isinstance(info, dict) else {}
            altnames: list[str] = []
            for field_name in _ALTNAME_FIELDS:
                value = info.get(field_name)
                if (
                    isinstance(value, str)
                    and value.strip()
                    and value != pair_id
                    and value not in altnames
                ):
                    altnames.append(value)

            pair = PairDescriptor(pair_id=pair_id, altnames=tuple(altnames))
            by_id[_normalize(pair_id)] = pair
            for name in altnames:
                by_altname.setdefault(_normalize(name), pair)

        self._by_id = by_id
        self._by_altname = by_altname
        logger.debug("pair_catalog_loaded", pairs=len(by_id), altnames=len(by_altname))


def _normalize(name: str) -> str:
    return name.strip().upper()

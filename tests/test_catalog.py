"""Tests for PairCatalog symbol resolution."""

import pytest

from tradesync.catalog import PairCatalog
from tradesync.exceptions import PairNotFound


class TestPairCatalog:
    """Canonical id and altname lookups, case-insensitive."""

    @pytest.mark.asyncio
    async def test_resolves_canonical_id(self, make_client) -> None:
        catalog = PairCatalog(make_client())
        pair = await catalog.resolve("XXBTZUSD")
        assert pair.pair_id == "XXBTZUSD"
        assert pair.altnames == ("XBTUSD", "XBT/USD")

    @pytest.mark.asyncio
    async def test_resolves_altname_to_canonical(self, make_client) -> None:
        catalog = PairCatalog(make_client())
        pair = await catalog.resolve("xbtusd")
        assert pair.pair_id == "XXBTZUSD"

    @pytest.mark.asyncio
    async def test_resolves_wsname(self, make_client) -> None:
        catalog = PairCatalog(make_client())
        pair = await catalog.resolve(" eth/usd ")
        assert pair.pair_id == "XETHZUSD"

    @pytest.mark.asyncio
    async def test_altname_equal_to_id_not_repeated(self, make_client) -> None:
        catalog = PairCatalog(make_client())
        pair = await catalog.resolve("solusd")
        assert pair.pair_id == "SOLUSD"
        assert pair.names == ("SOLUSD", "SOL/USD")

    @pytest.mark.asyncio
    async def test_canonical_match_wins(self, make_client) -> None:
        pairs = {
            "ABC": {"altname": "XYZ"},
            "XYZ": {"altname": "QQQ"},
        }
        catalog = PairCatalog(make_client(asset_pairs=pairs))
        pair = await catalog.resolve("xyz")
        assert pair.pair_id == "XYZ"

    @pytest.mark.asyncio
    async def test_unknown_symbol_raises(self, make_client) -> None:
        catalog = PairCatalog(make_client())
        with pytest.raises(PairNotFound) as exc_info:
            await catalog.resolve("DOGEBTC")
        assert exc_info.value.symbol == "DOGEBTC"
        assert exc_info.value.transient is False

    @pytest.mark.asyncio
    async def test_catalog_fetched_once(self, make_client) -> None:
        client = make_client()
        catalog = PairCatalog(client)
        await catalog.resolve("XBTUSD")
        await catalog.resolve("ETHUSD")
        with pytest.raises(PairNotFound):
            await catalog.resolve("nope")
        assert client.asset_pair_calls == 1

    @pytest.mark.asyncio
    async def test_entries_without_altname(self, make_client) -> None:
        catalog = PairCatalog(make_client(asset_pairs={"FOOBAR": {}}))
        pair = await catalog.resolve("foobar")
        assert pair.altnames == ()

"""Abstract market-data client interface.

Defines the contract for upstream implementations. Catalog and fetcher
code depends only on this interface, keeping Kraken-specific details
isolated in the concrete implementation.
"""

from abc import ABC, abstractmethod


class MarketDataClient(ABC):
    """Abstract base class for public market-data API clients."""

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the underlying HTTP session."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (CRITICAL for ccxt async)."""
        ...

    @abstractmethod
    async def fetch_asset_pairs(self) -> dict:
        """Fetch the tradeable-pair catalog.

        Returns a mapping of canonical pair id to an info object containing
        at least an ``altname`` field.
        """
        ...

    @abstractmethod
    async def fetch_trades(
        self,
        pair_id: str,
        since: int | None = None,
        count: int | None = None,
    ) -> dict:
        """Fetch one page of public trade history.

        Returns the raw ``result`` object: ``{<pair_id>: [[...], ...], "last": str}``.
        Records are NOT decoded here -- TradeFetcher owns validation.
        """
        ...

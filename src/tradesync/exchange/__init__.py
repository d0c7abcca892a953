"""Exchange client layer -- Kraken public API integration via ccxt."""

from tradesync.exchange.client import MarketDataClient
from tradesync.exchange.kraken_client import KrakenClient

__all__ = ["KrakenClient", "MarketDataClient"]

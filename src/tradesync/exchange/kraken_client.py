"""Kraken public market-data client via ccxt async.

Wraps ccxt.async_support.kraken and calls its implicit raw endpoints so
trade records reach TradeFetcher as the positional arrays Kraken sends.
This is the only module that knows about ccxt exceptions; they are
translated into the tradesync error taxonomy here.
"""

import ccxt.async_support as ccxt_async

from tradesync.config import ExchangeSettings
from tradesync.exceptions import (
    MalformedRecord,
    PairNotFound,
    TransportError,
    UpstreamError,
)
from tradesync.exchange.client import MarketDataClient
from tradesync.logging import get_logger

logger = get_logger(__name__)


class KrakenClient(MarketDataClient):
    """Concrete Kraken client using ccxt async."""

    def __init__(self, settings: ExchangeSettings) -> None:
        self._settings = settings

        config: dict = {
            "apiKey": settings.api_key.get_secret_value(),
            "secret": settings.api_secret.get_secret_value(),
            # Pacing is owned by RateLimiter; ccxt's throttler would double it
            "enableRateLimit": False,
            "timeout": settings.timeout_ms,
        }
        self._exchange = ccxt_async.kraken(config)

    @property
    def exchange(self) -> ccxt_async.kraken:
        """Access the underlying ccxt exchange instance."""
        return self._exchange

    async def connect(self) -> None:
        """No handshake is needed for public endpoints; the session opens lazily."""
        logger.info("kraken_client_ready", tier=self._settings.tier)

    async def close(self) -> None:
        """Clean up ccxt async resources. CRITICAL: must be called to avoid resource leaks."""
        await self._exchange.close()
        logger.info("kraken_connection_closed")

    async def fetch_asset_pairs(self) -> dict:
        """Fetch the AssetPairs catalog (canonical id -> pair info)."""
        result = await self._request("public_get_assetpairs", {})
        if not isinstance(result, dict):
            raise MalformedRecord("AssetPairs result is not an object")
        logger.debug("fetched_asset_pairs", count=len(result))
        return result

    async def fetch_trades(
        self,
        pair_id: str,
        since: int | None = None,
        count: int | None = None,
    ) -> dict:
        """Fetch one raw page of public trades for pair_id."""
        params: dict = {"pair": pair_id}
        if since is not None:
            params["since"] = str(since)
        if count is not None:
            params["count"] = count
        result = await self._request("public_get_trades", params, pair=pair_id)
        if not isinstance(result, dict):
            raise MalformedRecord("Trades result is not an object")
        return result

    async def _request(self, method: str, params: dict, pair: str | None = None) -> dict:
        """Call a raw ccxt endpoint and unwrap Kraken's {error, result} envelope."""
        try:
            response = await getattr(self._exchange, method)(params)
        except ccxt_async.RateLimitExceeded as e:
            raise TransportError(f"{method} rate limited: {e}", rate_limited=True) from e
        except ccxt_async.NetworkError as e:
            raise TransportError(f"{method} failed: {e}") from e
        except ccxt_async.BadSymbol as e:
            raise PairNotFound(pair or str(params.get("pair", ""))) from e
        except ccxt_async.BaseError as e:
            raise UpstreamError(f"{method} rejected: {e}") from e

        if not isinstance(response, dict):
            raise MalformedRecord(f"{method} response is not an object")

        errors = response.get("error") or []
        if errors:
            raise UpstreamError(f"{method} returned errors: {', '.join(map(str, errors))}")

        if "result" not in response:
            raise MalformedRecord(f"{method} response has no 'result'")
        return response["result"]

"""Incremental trade history sync loop.

State machine:

    RESOLVING -> BOOTSTRAPPING -> SYNCING (loops) -> CAUGHT_UP
                                       \\-> FAILED on any unrecoverable error

The resume cursor is re-derived from the store on every run, so a crash
between pages loses nothing: the next run starts at 1 + max(trade_id).
Termination is decided by page length only (a short page means caught up),
never by wall-clock time, since trades keep arriving while the run goes.
"""

import asyncio
import math
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from tradesync.catalog import PairCatalog
from tradesync.config import SyncConfig
from tradesync.exceptions import MalformedRecord, SyncError, TransportError
from tradesync.fetcher import TradeFetcher
from tradesync.logging import get_logger
from tradesync.models import PairDescriptor, SyncResult, SyncState, TradePage
from tradesync.rate_limit import RateLimiter
from tradesync.storage.store import TradeStore, table_name_for

logger = get_logger(__name__)

T = TypeVar("T")

RATE_LIMIT_BACKOFF_MULTIPLIER = 3


class SyncEngine:
    """Orchestrates resolve -> bootstrap -> fetch/persist/advance until caught up.

    Execution is strictly sequential: fetch one page, commit it, advance
    the cursor. Pages are therefore committed in cursor order.

    Usage:
        engine = SyncEngine(config, catalog, limiter, fetcher, store)
        result = await engine.run()
    """

    def __init__(
        self,
        config: SyncConfig,
        catalog: PairCatalog,
        limiter: RateLimiter,
        fetcher: TradeFetcher,
        store: TradeStore,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._config = config
        self._catalog = catalog
        self._limiter = limiter
        self._fetcher = fetcher
        self._store = store
        self._sleep = sleep
        self._state = SyncState.RESOLVING
        self._retries = 0

    @property
    def state(self) -> SyncState:
        return self._state

    async def run(self) -> SyncResult:
        """Sync the configured pair until caught up.

        Raises:
            SyncError: a permanent error, or a transient one that outlived
                its retries. The engine is left in SyncState.FAILED.
        """
        start = time.monotonic()
        self._retries = 0
        self._transition(SyncState.RESOLVING)
        try:
            pair = await self._catalog.resolve(self._config.pair)
            table = table_name_for(pair, self._config.table_suffix)

            with structlog.contextvars.bound_contextvars(pair=pair.pair_id, table=table):
                self._transition(SyncState.BOOTSTRAPPING)
                created = await self._with_retry(self._store.ensure_schema, table)
                cursor = await self._with_retry(self._store.resume_cursor, table)
                logger.info(
                    "sync_bootstrapped",
                    table_created=created,
                    start_cursor=cursor,
                )
                if self._config.estimate_eta:
                    await self._log_eta(pair, cursor)

                result = SyncResult(
                    pair=pair.pair_id,
                    table=table,
                    start_cursor=cursor,
                    end_cursor=cursor,
                    table_created=created,
                )
                self._transition(SyncState.SYNCING)
                await self._sync(pair, table, result)
        except SyncError as e:
            self._transition(SyncState.FAILED)
            logger.error(
                "sync_failed",
                error_type=type(e).__name__,
                error=str(e),
                transient=e.transient,
            )
            raise

        self._transition(SyncState.CAUGHT_UP)
        result.final_state = self._state
        result.retries = self._retries
        result.duration_seconds = round(time.monotonic() - start, 3)
        logger.info(
            "sync_caught_up",
            pair=result.pair,
            pages=result.pages,
            records_fetched=result.records_fetched,
            records_written=result.records_written,
            end_cursor=result.end_cursor,
            duration_seconds=result.duration_seconds,
        )
        return result

    # ──────────────────────────────────────────────
    # Sync loop
    # ──────────────────────────────────────────────

    async def _sync(self, pair: PairDescriptor, table: str, result: SyncResult) -> None:
        cursor = result.start_cursor
        while True:
            page = await self._with_retry(self._fetch_page, pair, cursor)
            written = await self._with_retry(self._store.write_batch, table, list(page.trades))

            next_cursor = self._advance(cursor, page)
            result.pages += 1
            result.records_fetched += len(page)
            result.records_written += written
            result.end_cursor = next_cursor

            logger.info(
                "page_committed",
                page=result.pages,
                records=len(page),
                inserted=written,
                first_trade_id=page.trades[0].trade_id if page.trades else None,
                last_trade_id=page.trades[-1].trade_id if page.trades else None,
                next_cursor=next_cursor,
            )

            if page.is_final:
                return
            cursor = next_cursor

    async def _fetch_page(self, pair: PairDescriptor, cursor: int) -> TradePage:
        # Gate every attempt, retries included
        await self._limiter.wait()
        return await self._fetcher.fetch_page(pair, cursor)

    @staticmethod
    def _advance(cursor: int, page: TradePage) -> int:
        """Next cursor is int(last) + 1; it must never move backwards."""
        next_cursor = int(page.last) + 1
        if page.trades and next_cursor <= page.trades[-1].trade_id:
            raise MalformedRecord(
                f"'last' marker {page.last} is behind trade_id {page.trades[-1].trade_id}"
            )
        if not page.is_final and next_cursor <= cursor:
            raise MalformedRecord(
                f"'last' marker {page.last} does not advance cursor {cursor}"
            )
        return max(next_cursor, cursor)

    async def _log_eta(self, pair: PairDescriptor, cursor: int) -> None:
        """Log an estimate of the remaining sync time. Failures are not fatal."""
        try:
            await self._limiter.wait()
            latest = await self._fetcher.fetch_latest_trade_id(pair)
        except SyncError as e:
            logger.warning("sync_eta_unavailable", error_type=type(e).__name__, error=str(e))
            return

        if latest is None:
            logger.info("sync_eta_estimate", remaining_trades=0, pages=0, eta_seconds=0)
            return

        remaining = max(0, latest - cursor + 1)
        pages = max(1, math.ceil(remaining / self._fetcher.page_size))
        eta_seconds = self._limiter.estimate_duration(pages)
        days, rem = divmod(int(eta_seconds), 86_400)
        hours, rem = divmod(rem, 3_600)
        minutes = rem // 60
        logger.info(
            "sync_eta_estimate",
            latest_trade_id=latest,
            remaining_trades=remaining,
            pages=pages,
            eta_seconds=round(eta_seconds, 1),
            eta=f"{days}d {hours}h {minutes}m",
        )

    # ──────────────────────────────────────────────
    # Retry wrapper
    # ──────────────────────────────────────────────

    async def _with_retry(self, fn: Callable[..., Awaitable[T]], *args) -> T:
        """Run fn, retrying transient SyncErrors with capped exponential backoff.

        Delays: base, 2*base, 4*base, ... capped at retry_max_delay.
        Upstream rate-limit rejections get a longer delay multiplier.
        Permanent errors and the final transient failure are re-raised.
        """
        max_retries = self._config.max_retries
        base_delay = self._config.retry_base_delay

        for attempt in range(max_retries):
            try:
                return await fn(*args)
            except SyncError as e:
                if not e.transient:
                    raise
                if attempt == max_retries - 1:
                    logger.error(
                        "retries_exhausted",
                        error_type=type(e).__name__,
                        error=str(e),
                        attempts=max_retries,
                    )
                    raise

                delay = min(base_delay * (2**attempt), self._config.retry_max_delay)
                if isinstance(e, TransportError) and e.rate_limited:
                    delay = min(delay * RATE_LIMIT_BACKOFF_MULTIPLIER, self._config.retry_max_delay)

                self._retries += 1
                logger.warning(
                    "transient_error_retry",
                    error_type=type(e).__name__,
                    error=str(e),
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay=delay,
                )
                await self._sleep(delay)

        raise AssertionError("unreachable")

    def _transition(self, state: SyncState) -> None:
        logger.debug("sync_state", previous=self._state.value, state=state.value)
        self._state = state

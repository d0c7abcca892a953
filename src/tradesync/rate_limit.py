"""Fixed-interval pacing for paginated history calls.

Kraken gives every REST user a call counter that rises by a fixed cost per
call and decays continuously at a tier-dependent rate:

    Tier          Max counter   Decay
    starter       15            -0.33/sec
    intermediate  20            -0.5/sec
    pro           20            -1/sec

Instead of modelling the counter, calls are spaced by the time the counter
needs to decay one call's cost. At that spacing the counter never grows,
whatever the tier's max. Higher tiers simply get a shorter interval.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from enum import Enum

from tradesync.logging import get_logger

logger = get_logger(__name__)


class AccountTier(str, Enum):
    STARTER = "starter"
    INTERMEDIATE = "intermediate"
    PRO = "pro"


TIER_DECAY_PER_SECOND: dict[AccountTier, float] = {
    AccountTier.STARTER: 0.33,
    AccountTier.INTERMEDIATE: 0.5,
    AccountTier.PRO: 1.0,
}


def pacing_interval(tier: AccountTier | str, call_cost: float = 1.0) -> float:
    """Seconds for the counter to decay one call's cost at the given tier."""
    if call_cost <= 0:
        raise ValueError(f"call_cost must be positive, got {call_cost}")
    return call_cost / TIER_DECAY_PER_SECOND[AccountTier(tier)]


class RateLimiter:
    """Blocks callers so consecutive calls are at least `interval` seconds apart.

    The first call passes immediately; every later call sleeps for whatever
    remains of the interval since the previous permitted call. Clock and
    sleep are injectable for tests.
    """

    def __init__(
        self,
        interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if interval < 0:
            raise ValueError(f"interval must be non-negative, got {interval}")
        self._interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None

    @classmethod
    def for_tier(
        cls,
        tier: AccountTier | str,
        call_cost: float = 1.0,
        **kwargs,
    ) -> "RateLimiter":
        """Build a limiter paced for the given account tier."""
        return cls(pacing_interval(tier, call_cost), **kwargs)

    @property
    def interval(self) -> float:
        return self._interval

    async def wait(self) -> None:
        """Sleep until the next call is permitted, then record it."""
        if self._last_call is not None:
            remaining = self._last_call + self._interval - self._clock()
            if remaining > 0:
                logger.debug("rate_limit_wait", seconds=round(remaining, 3))
                await self._sleep(remaining)
        self._last_call = self._clock()

    def estimate_duration(self, calls: int) -> float:
        """Wall-clock seconds needed for `calls` paced calls."""
        return max(0, calls) * self._interval

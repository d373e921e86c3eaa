"""
Fixed-interval pacing gate for outbound APNs calls.

The queue processor awaits the gate before every dispatch. The gate
guarantees at least `interval` seconds between consecutive acquisitions,
which keeps a sequential batch under Apple's per-connection rate limits
without a retry loop.
"""

import asyncio
import time
from typing import Awaitable, Callable


class FixedIntervalRateLimiter:
    """Enforce a minimum spacing between successive acquire() calls."""

    def __init__(
        self,
        interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if interval < 0:
            raise ValueError("interval must be >= 0")
        self.interval = interval
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None

    @classmethod
    def from_milliseconds(cls, interval_ms: int, **kwargs) -> "FixedIntervalRateLimiter":
        return cls(interval_ms / 1000.0, **kwargs)

    async def acquire(self) -> None:
        """Wait until the interval since the previous acquire has elapsed."""
        now = self._clock()
        if self._last is not None:
            wait = self.interval - (now - self._last)
            if wait > 0:
                await self._sleep(wait)
                now = self._clock()
        self._last = now

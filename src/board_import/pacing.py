"""Request pacing for API writes.

The board API enforces per-key rate limits, so every create call is
followed by a call to a pacer. Pacers are injected, which lets tests and
dry runs use ``NoPacing`` instead of real delays.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class Pacer(Protocol):
    """Anything that can be awaited between two requests."""

    async def pause(self) -> None: ...


class NoPacing:
    """Pacer that never waits."""

    async def pause(self) -> None:
        return None


class FixedIntervalPacer:
    """Sleep a fixed interval on every ``every``-th call.

    ``FixedIntervalPacer(0.15)`` sleeps after each request,
    ``FixedIntervalPacer(0.15, every=5)`` after every fifth.
    """

    def __init__(self, interval: float, every: int = 1, sleep: SleepFunc | None = None) -> None:
        if interval < 0:
            raise ValueError("interval must be >= 0")
        if every < 1:
            raise ValueError("every must be >= 1")
        self.interval = interval
        self.every = every
        self.calls = 0
        self._sleep = sleep or asyncio.sleep

    async def pause(self) -> None:
        self.calls += 1
        if self.interval and self.calls % self.every == 0:
            await self._sleep(self.interval)


class TokenBucketPacer:
    """Token bucket pacer for sustained request rates.

    Tokens are replenished at ``rate`` per second up to ``burst``; each
    call consumes one token, waiting until one is available.
    """

    def __init__(
        self,
        rate: float,
        burst: int = 5,
        clock: Callable[[], float] | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        if rate <= 0:
            raise ValueError("rate must be > 0")
        if burst < 1:
            raise ValueError("burst must be >= 1")
        self.rate = rate
        self.burst = burst
        self._clock = clock or time.monotonic
        self._sleep = sleep or asyncio.sleep
        self.tokens = float(burst)
        self._last = self._clock()

    def _refill(self) -> None:
        now = self._clock()
        self.tokens = min(self.burst, self.tokens + (now - self._last) * self.rate)
        self._last = now

    async def pause(self) -> None:
        self._refill()
        if self.tokens < 1.0:
            wait = (1.0 - self.tokens) / self.rate
            logger.debug(f"Rate limit reached, waiting {wait:.3f}s")
            await self._sleep(wait)
            self._refill()
        # The sleep may return early under a fake clock; never go below zero.
        self.tokens = max(0.0, self.tokens - 1.0)

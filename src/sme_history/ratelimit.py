"""Token-bucket rate limiter gating outbound LLM requests."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)


class RateLimiter:
    """Token bucket: ``capacity`` permits, one refilled every ``interval`` seconds.

    With ``capacity=1`` this spaces consecutive requests at least
    ``interval`` apart while letting the first one through immediately.
    ``interval=0`` disables limiting.

    Usage:
        limiter = RateLimiter(interval=2.0)
        await limiter.acquire()
        response = await client.generate_content(...)
    """

    def __init__(
        self,
        interval: float,
        capacity: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        name: str = "llm",
    ):
        if interval < 0:
            raise ValueError("interval must be >= 0")
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._interval = interval
        self._capacity = capacity
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated = clock()
        self._acquired = 0
        self._logger = logger.bind(limiter=name)

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def acquired(self) -> int:
        """Number of permits handed out so far."""
        return self._acquired

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._updated = now
        if self._interval > 0:
            self._tokens = min(self._capacity, self._tokens + elapsed / self._interval)

    async def acquire(self) -> float:
        """Wait for a permit; return the seconds spent waiting."""
        self._acquired += 1
        if self._interval == 0:
            return 0.0

        waited = 0.0
        self._refill()
        while self._tokens < 1:
            wait = (1 - self._tokens) * self._interval
            self._logger.debug("rate_limit_wait", seconds=round(wait, 3))
            await self._sleep(wait)
            waited += wait
            self._refill()
        self._tokens -= 1
        return waited

"""Minimum-interval rate limiter for upstream requests."""

import asyncio
import time
from collections.abc import Awaitable, Callable


class RateLimiter:
    """Enforce a minimum delay between consecutive requests.

    Every network call awaits `acquire()` first, including calls that end up
    returning an empty page or a 404. The interval is measured from the start
    of one request to the start of the next, so a response slower than
    `min_interval` is followed immediately by the next request.

    Args:
        min_interval: Minimum seconds between two acquisitions.
        clock: Monotonic clock returning seconds.
        sleep: Coroutine function used to wait.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.min_interval = max(0.0, min_interval)
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> float:
        """Wait until the next request may be sent.

        Returns:
            Seconds spent waiting.
        """
        async with self._lock:
            waited = 0.0
            if self._last is not None:
                waited = self._last + self.min_interval - self._clock()
                if waited > 0:
                    await self._sleep(waited)
                else:
                    waited = 0.0
            self._last = self._clock()
            return waited

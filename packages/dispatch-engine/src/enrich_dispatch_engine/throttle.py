"""Async fixed-delay throttle.

Spaces consecutive calls by a constant interval. There is no burst allowance
and no adaptive backoff: n calls take at least (n-1) × delay of wall time.
Destinations such as Clay webhooks publish a hard requests-per-second cap, and
a fixed gap is the simplest way to stay under it.

Usage:
    throttle = FixedDelayThrottle(delay=0.1)  # at most 10 calls/second
    await throttle.acquire()                  # blocks until the gap has passed
"""

import asyncio
import time


class FixedDelayThrottle:
    """Async throttle that enforces a minimum gap between acquisitions.

    The first acquire() returns immediately. Each later acquire() sleeps until
    `delay` seconds have passed since the previous one returned.
    """

    def __init__(self, delay: float) -> None:
        if delay < 0:
            raise ValueError("delay must be >= 0")
        self.delay = delay
        self._last: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until the gap since the previous acquisition has passed."""
        async with self._lock:
            if self._last is not None:
                wait_time = self.delay - (time.monotonic() - self._last)
                if wait_time > 0:
                    await asyncio.sleep(wait_time)
            self._last = time.monotonic()

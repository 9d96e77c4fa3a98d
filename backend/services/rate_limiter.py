"""Process-wide pacing for provider calls."""
import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Enforce a minimum delay between successive provider calls.

    One instance is built at startup and handed to every client that talks to
    the embedding or generation provider, so all of them share a single
    "last call" timestamp.
    """

    def __init__(
        self,
        min_interval_ms: int,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        """
        Initialize the rate limiter.

        Args:
            min_interval_ms: Minimum delay between two calls in milliseconds
            clock: Monotonic clock returning seconds
            sleep: Coroutine used to wait
        """
        if min_interval_ms < 0:
            raise ValueError("min_interval_ms cannot be negative")

        self.min_interval = min_interval_ms / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._last_call = float("-inf")
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until the next call is allowed, then claim the slot."""
        async with self._lock:
            wait = self._last_call + self.min_interval - self._clock()
            if wait > 0:
                logger.debug(f"Pacing provider call, waiting {wait:.3f}s")
                await self._sleep(wait)
            self._last_call = self._clock()

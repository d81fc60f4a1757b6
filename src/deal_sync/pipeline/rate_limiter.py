"""
Minimum-interval pacing for third-party API calls.

The clock and sleep functions are injectable so tests can drive pacing
without real wall-clock delays.
"""

import asyncio
import time
from typing import Awaitable, Callable

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


class RateLimiter:
    """
    Enforces a minimum interval between successive acquire() calls.

    The first call passes immediately; later calls wait out whatever remains
    of the interval since the previous call.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        if min_interval < 0:
            raise ValueError('min_interval must be >= 0')
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_call: float | None = None
        self._lock = asyncio.Lock()
        self.total_waited = 0.0

    async def acquire(self) -> None:
        """Wait until the next call is allowed, then mark it as made."""
        async with self._lock:
            if self._last_call is not None:
                remaining = self.min_interval - (self._clock() - self._last_call)
                if remaining > 0:
                    self.total_waited += remaining
                    await self._sleep(remaining)
            self._last_call = self._clock()

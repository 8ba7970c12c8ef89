"""Per-source call rate limiting.

Sliding one-minute window kept in process memory. Callers wait for a free
slot instead of failing, so the wait counts against the source timeout.
"""

import asyncio
import time
from collections import deque
from collections.abc import Callable


class SlidingWindowLimiter:
    """Allow at most ``calls_per_minute`` acquisitions in any 60s window."""

    WINDOW_SECONDS = 60.0

    def __init__(
        self,
        calls_per_minute: int,
        clock: Callable[[], float] = time.monotonic,
        window: float = WINDOW_SECONDS,
    ):
        if calls_per_minute < 1:
            raise ValueError("calls_per_minute must be at least 1")
        self.limit = calls_per_minute
        self.window = window
        self._clock = clock
        self._calls: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _prune(self, now: float) -> None:
        cutoff = now - self.window
        while self._calls and self._calls[0] <= cutoff:
            self._calls.popleft()

    def retry_after(self) -> float:
        """Seconds until the next slot frees up (0 if one is free now)."""
        now = self._clock()
        self._prune(now)
        if len(self._calls) < self.limit:
            return 0.0
        return max(0.0, self._calls[0] + self.window - now)

    async def acquire(self) -> None:
        # Lock held while sleeping so waiters are served in arrival order
        async with self._lock:
            while True:
                wait = self.retry_after()
                if wait <= 0:
                    self._calls.append(self._clock())
                    return
                await asyncio.sleep(wait)


class NoLimit:
    """Limiter used for sources without a configured rate limit."""

    def retry_after(self) -> float:
        return 0.0

    async def acquire(self) -> None:
        return None


def limiter_for(calls_per_minute: int) -> "SlidingWindowLimiter | NoLimit":
    if calls_per_minute and calls_per_minute > 0:
        return SlidingWindowLimiter(calls_per_minute)
    return NoLimit()

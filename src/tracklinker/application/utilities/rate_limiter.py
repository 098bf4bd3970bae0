"""Sliding-window rate limiting for external lookups.

Wraps an async operation so that at most ``max_calls`` operations start
within any ``window_seconds`` interval. Excess calls are delayed, never
rejected.

Usage:
    limiter = SlidingWindowRateLimiter(max_calls=10, window_seconds=60)
    resolution = await limiter(lambda: resolver.resolve(url))
"""

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable
import time
from typing import TypeVar

from tracklinker.config import get_logger, settings
from tracklinker.config.settings import LinkResolutionConfig

logger = get_logger(__name__).bind(service="rate_limiter")

T = TypeVar("T")


class SlidingWindowRateLimiter:
    """Delay calls so no more than ``max_calls`` start per window.

    Waiters are serialized through a lock, so concurrent callers cannot
    oversubscribe the window. The lock is released before the wrapped
    operation runs; only the start of each call is limited.
    """

    def __init__(
        self,
        max_calls: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_calls <= 0:
            raise ValueError(f"max_calls must be positive, got {max_calls}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")

        self.max_calls = max_calls
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep
        self._history: deque[float] = deque()
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> int:
        """Number of call timestamps still inside the window history."""
        return len(self._history)

    def _prune(self, now: float) -> None:
        while self._history and now - self._history[0] >= self.window_seconds:
            self._history.popleft()

    async def acquire(self) -> None:
        """Wait until a call may start and record its timestamp."""
        async with self._lock:
            while True:
                now = self._clock()
                self._prune(now)
                if len(self._history) < self.max_calls:
                    break

                wait_time = self.window_seconds - (now - self._history[0])
                logger.debug(
                    f"Rate limit window full, waiting {wait_time:.2f}s",
                    max_calls=self.max_calls,
                    window_seconds=self.window_seconds,
                )
                await self._sleep(max(wait_time, 0.0))

            self._history.append(self._clock())

    async def __call__(self, operation: Callable[[], Awaitable[T]]) -> T:
        await self.acquire()
        return await operation()


def link_resolution_limiter(
    has_api_key: bool, config: LinkResolutionConfig | None = None
) -> SlidingWindowRateLimiter:
    """Limiter sized for the link service's published per-minute quotas."""
    config = config or settings.link_resolution
    calls = config.calls_per_minute_with_key if has_api_key else config.calls_per_minute
    return SlidingWindowRateLimiter(max_calls=calls, window_seconds=60)

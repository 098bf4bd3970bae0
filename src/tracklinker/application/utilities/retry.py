"""Retry policy for external lookups, built on ``backoff``.

Only transient failures (network errors and rate limits) are retried. A
provider-suggested Retry-After stretches the wait. Authentication, mapping,
write errors and an exhausted daily quota surface on the first attempt.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import backoff
from attrs import define

from tracklinker.config import get_logger
from tracklinker.config.settings import RetryConfig
from tracklinker.domain.errors import QuotaExhaustedError, TransientError

logger = get_logger(__name__).bind(service="retry")

T = TypeVar("T")


@define(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff settings.

    Attributes:
        attempts: Total tries including the first one
        base_delay: Delay before the first retry (seconds)
        factor: Multiplier applied to the delay after each retry
        max_delay: Upper bound for a single delay (seconds)
        retry_on: Exception types that trigger a retry
        jitter: backoff jitter function, or None for exact delays
        sleep: Coroutine used for the extra wait a Retry-After hint asks for
    """

    attempts: int = 3
    base_delay: float = 0.5
    factor: float = 2.0
    max_delay: float = 30.0
    retry_on: tuple[type[BaseException], ...] = (TransientError,)
    jitter: Callable[[float], float] | None = backoff.full_jitter
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    @classmethod
    def from_settings(cls, config: RetryConfig) -> "RetryPolicy":
        return cls(
            attempts=config.attempts,
            base_delay=config.base_delay,
            factor=config.factor,
            max_delay=config.max_delay,
        )

    @classmethod
    def no_retry(cls) -> "RetryPolicy":
        return cls(attempts=1)

    async def _on_backoff(self, details: dict[str, Any]) -> None:
        wait = details["wait"]
        retry_after = getattr(details.get("exception"), "retry_after", None) or 0.0
        logger.warning(
            f"Backing off {details['target'].__name__} (attempt {details['tries']})",
            retry_delay=f"{max(wait, retry_after):.2f}s",
        )
        # backoff sleeps `wait` after this handler returns
        if retry_after > wait:
            await self.sleep(retry_after - wait)

    def _on_giveup(self, details: dict[str, Any]) -> None:
        exception = details.get("exception")
        logger.error(
            f"Giving up on {details['target'].__name__} after {details['tries']} attempt(s)",
            elapsed_time=f"{details['elapsed']:.2f}s",
            error=str(exception) if exception else "Unknown error",
            error_type=type(exception).__name__ if exception else "Unknown",
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        name: str = "operation",
    ) -> T:
        """Await ``operation()``, retrying transient failures.

        The last exception propagates once attempts are exhausted.
        """

        async def attempt() -> T:
            return await operation()

        attempt.__name__ = name

        decorated = backoff.on_exception(
            backoff.expo,
            self.retry_on,
            max_tries=max(1, self.attempts),
            giveup=lambda e: isinstance(e, QuotaExhaustedError),
            jitter=self.jitter,
            on_backoff=self._on_backoff,
            on_giveup=self._on_giveup,
            logger=None,
            base=self.factor,
            factor=self.base_delay,
            max_value=self.max_delay,
        )(attempt)
        return await decorated()

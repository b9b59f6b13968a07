import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from photomatch.retry.exceptions import PollTimeoutError, RetryExhaustedError

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with bounded uniform jitter."""

    max_attempts: int
    initial_delay: float
    max_delay: float
    jitter: float = 1.0

    def delay_for(self, retry_index: int) -> float:
        """Delay before retry number ``retry_index`` (0 for the first retry)."""
        base = min(self.initial_delay * (2**retry_index), self.max_delay)
        return base + random.uniform(0, self.jitter)


async def retry_async(
    operation: Callable[[int], Awaitable[T]],
    *,
    policy: RetryPolicy,
    is_retryable: Callable[[BaseException], bool],
    sleep: Sleep = asyncio.sleep,
    on_retry: Callable[[int, BaseException, float], None] | None = None,
) -> T:
    """Run ``operation(attempt)`` until it succeeds or the attempt budget runs out.

    Attempts are numbered from 1. Errors rejected by ``is_retryable`` propagate
    immediately; retryable errors on the last attempt raise RetryExhaustedError.
    """
    attempt = 1
    while True:
        try:
            return await operation(attempt)
        except Exception as exc:
            if not is_retryable(exc):
                raise
            if attempt >= policy.max_attempts:
                raise RetryExhaustedError(attempt, exc) from exc
            delay = policy.delay_for(attempt - 1)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
            await sleep(delay)
            attempt += 1


async def poll_until(
    probe: Callable[[], Awaitable[T]],
    *,
    attempts: int,
    interval: float,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Call ``probe`` up to ``attempts`` times and return its first truthy result."""
    for attempt in range(1, attempts + 1):
        result = await probe()
        if result:
            return result
        if attempt < attempts:
            await sleep(interval)
    raise PollTimeoutError(f"Condition not met after {attempts} attempts")

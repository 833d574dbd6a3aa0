"""
Exponential backoff around a single awaitable operation.
"""

import asyncio
from typing import Awaitable, Callable, TypeVar

from shared.logging import get_logger

log = get_logger("llm", "retry")

T = TypeVar("T")


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
    label: str = "operation",
) -> T:
    """
    Await `operation()` up to `max_retries` times.

    Before retry n (0-based attempt that just failed) waits
    initial_delay * 2**n seconds. No wait follows the final attempt; its
    error is re-raised.
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    last_error: BaseException | None = None
    for attempt in range(max_retries):
        try:
            return await operation()
        except Exception as e:
            last_error = e
            if attempt == max_retries - 1:
                log.error("llm.retry.exhausted",
                          label=label,
                          attempts=max_retries,
                          error=str(e),
                          error_class=type(e).__name__)
                break
            delay = initial_delay * (2 ** attempt)
            log.warning("llm.retry.attempt_failed",
                        label=label,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        retry_in_seconds=delay,
                        error=str(e))
            await asyncio.sleep(delay)

    raise last_error

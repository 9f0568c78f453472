"""Shared concurrency primitives for the ingestion pipeline.

Two patterns are exposed:

1. **throttled_gather** -- a drop-in replacement for ``asyncio.gather`` that
   wraps each awaitable in a semaphore acquire/release.  The document
   processor uses it to keep at most ``batch_size`` embedding requests in
   flight for one document.

2. **retry_with_backoff** -- runs an async operation, retrying failures
   that a caller-supplied predicate classifies as retryable, sleeping
   ``base_delay * 2 ** (attempt - 1)`` seconds (capped at ``max_delay``)
   between attempts.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from ragingest.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


async def throttled_gather(
    coros: list[Awaitable[_T]],
    semaphore: asyncio.Semaphore,
    return_exceptions: bool = False,
) -> list[_T | BaseException]:
    """Run awaitables concurrently, at most ``semaphore`` slots at a time.

    Parameters
    ----------
    coros:
        Awaitable objects to execute concurrently.
    semaphore:
        Semaphore bounding how many awaitables execute simultaneously.
    return_exceptions:
        If ``True``, exceptions are returned in the results list rather
        than being raised.  Mirrors ``asyncio.gather`` semantics.

    Returns
    -------
    list
        Results in the same order as the input awaitables, regardless of
        completion order.
    """

    async def _wrapped(coro: Awaitable[_T]) -> _T:
        async with semaphore:
            return await coro

    tasks = [_wrapped(c) for c in coros]
    return await asyncio.gather(*tasks, return_exceptions=return_exceptions)


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Return the sleep before retry number *attempt* (1-based)."""
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[_T]],
    *,
    max_retries: int,
    base_delay: float,
    max_delay: float,
    is_retryable: Callable[[BaseException], bool],
    on_retry: Callable[[int, BaseException], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> _T:
    """Call *operation* until it succeeds or retries are exhausted.

    The operation runs once, then up to *max_retries* more times.  An
    exception for which *is_retryable* returns ``False`` is re-raised
    immediately.  After the final attempt the last exception is re-raised
    unchanged, so callers can inspect its type.

    Parameters
    ----------
    operation:
        Zero-argument coroutine factory; called once per attempt.
    max_retries:
        Additional attempts after the first one.
    base_delay, max_delay:
        Exponential backoff parameters in seconds.
    is_retryable:
        Classifies an exception as transient.
    on_retry:
        Optional hook invoked as ``on_retry(attempt, exc)`` before sleeping.
    sleep:
        Injected sleep coroutine (tests pass a no-op).
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable(exc) or attempt > max_retries:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            if on_retry is not None:
                on_retry(attempt, exc)
            _logger.debug("retry_scheduled", attempt=attempt, delay_s=delay, error=str(exc))
            await sleep(delay)

"""Retry-with-exponential-backoff helper shared by every transient network call.

The delay before attempt ``n`` (1-based, ``n >= 2``) is
``base_delay * 2 ** (n - 2)``: with ``base_delay=1.0`` the waits are
1s, 2s, 4s.  Only exceptions accepted by ``is_transient`` are retried;
anything else propagates immediately, and the last transient exception
propagates once ``max_attempts`` is exhausted.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from tenantrag.utils.errors import VectorStoreError

_T = TypeVar("_T")

logger = structlog.get_logger(logger_name=__name__)

Sleeper = Callable[[float], Awaitable[None]]


def is_transient_vector_error(exc: BaseException) -> bool:
    """Default predicate: vector store errors flagged as transient."""
    return isinstance(exc, VectorStoreError) and exc.transient


def backoff_delay(attempt: int, base_delay: float) -> float:
    """Return the wait before retry number *attempt* (1 = first retry)."""
    return base_delay * (2 ** (attempt - 1))


async def retry_with_backoff(
    operation: Callable[[], Awaitable[_T]],
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    is_transient: Callable[[BaseException], bool] = is_transient_vector_error,
    sleep: Sleeper = asyncio.sleep,
    operation_name: str = "operation",
) -> _T:
    """Await ``operation()`` until it succeeds or retries are exhausted.

    Parameters
    ----------
    operation:
        Zero-argument coroutine factory.  Called once per attempt so each
        attempt gets a fresh coroutine.
    max_attempts:
        Total number of attempts, including the first one.
    base_delay:
        Seconds to wait before the first retry; doubles on each retry.
    is_transient:
        Predicate deciding whether an exception is worth retrying.
    sleep:
        Awaitable sleep function, injectable so tests run instantly.
    operation_name:
        Label used in log events.

    Returns
    -------
    _T
        Whatever ``operation`` returns on the first successful attempt.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not is_transient(exc):
                logger.error(
                    "retry_non_transient_failure",
                    operation=operation_name,
                    attempt=attempt,
                    error=str(exc),
                )
                raise
            if attempt >= max_attempts:
                logger.error(
                    "retry_attempts_exhausted",
                    operation=operation_name,
                    attempts=attempt,
                    error=str(exc),
                )
                raise

            delay = backoff_delay(attempt, base_delay)
            logger.warning(
                "retry_transient_failure",
                operation=operation_name,
                attempt=attempt,
                max_attempts=max_attempts,
                delay_seconds=delay,
                error=str(exc),
            )
            await sleep(delay)
            attempt += 1

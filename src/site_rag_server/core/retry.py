"""
Retry Helper

Generic retry-with-exponential-backoff wrapper for transient upstream calls
(embedding requests, model generation). Attempts are bounded: a call is made
at most ``max_retries + 1`` times and the last error is re-raised.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, TypeVar

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger("rag.retry")

T = TypeVar("T")

RETRYABLE_STATUS_CODES = {408, 429, 500, 502, 503, 504}


def is_transient_error(exc: BaseException) -> bool:
    """
    Return True for network errors and retryable HTTP status codes.

    Client errors such as 400/401/404 are never retried.
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES
    return isinstance(exc, (httpx.TransportError, TimeoutError))


async def with_retry(
    fn: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    retry_on: Optional[Callable[[BaseException], bool]] = None,
    request_id: Optional[str] = None,
) -> T:
    """
    Await ``fn()`` retrying transient failures with exponential backoff.

    Parameters
    ----------
    fn : Callable[[], Awaitable[T]]
        Zero-argument coroutine factory. Called once per attempt.
    max_retries : int
        Number of retries after the first attempt.
    base_delay : float
        Initial backoff in seconds; doubles on each retry.
    max_delay : float
        Upper bound for a single backoff sleep.
    retry_on : Optional[Callable[[BaseException], bool]]
        Predicate deciding whether an error is retryable.
        Defaults to ``is_transient_error``.
    request_id : Optional[str]
        Included in log lines for correlation.

    Returns
    -------
    T
        The first successful result.

    Raises
    ------
    Exception
        The last error once attempts are exhausted, or the first
        non-retryable error.
    """
    predicate = retry_on or is_transient_error

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(1, max_retries + 1)),
        wait=wait_exponential(multiplier=base_delay, min=base_delay, max=max_delay),
        retry=retry_if_exception(predicate),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            if attempt.retry_state.attempt_number > 1:
                logger.info(
                    "Retry attempt %d for request %s",
                    attempt.retry_state.attempt_number,
                    request_id or "-",
                )
            return await fn()

    # AsyncRetrying with reraise=True either returns or raises above.
    raise RuntimeError("retry loop exited without a result")

"""Retry logic for talking to the controller over flaky links."""
import logging
from typing import Callable

import httpx
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

logger = logging.getLogger(__name__)


# Transient transport failures worth another attempt.
# HTTP status errors are not retried.
RETRYABLE_EXCEPTIONS = (
    httpx.TransportError,
    ConnectionRefusedError,
    ConnectionResetError,
    TimeoutError,
)


def with_retry(
    max_attempts: int = 3,
    min_wait: float = 1,
    max_wait: float = 10,
    exceptions: tuple = RETRYABLE_EXCEPTIONS,
) -> Callable:
    """Retry a sync or async callable with exponential backoff.

    tenacity picks the async retry loop for coroutine functions, so the same
    decorator covers ``login()`` and plain helpers alike. The last exception is
    re-raised once the attempts run out.

    Usage:
        @with_retry(max_attempts=3, min_wait=1, max_wait=10)
        async def login(self):
            ...
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(exceptions),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

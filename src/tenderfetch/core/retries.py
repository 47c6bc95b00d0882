"""
Retry policies built on tenacity.

Notification transports retry dropped connections; the Drive client retries
rate limits and server errors. Both back off exponentially and re-raise the
last error once the attempts are used up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random_exponential,
)
from tenacity.retry import retry_base

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempts and backoff for one kind of remote call."""

    attempts: int = 3
    min_wait: float = 1.0  # seconds
    max_wait: float = 10.0  # seconds
    jitter: bool = True

    def _options(self, retry: retry_base, log: logging.Logger | None) -> dict[str, Any]:
        if self.jitter:
            wait = wait_random_exponential(min=self.min_wait, max=self.max_wait)
        else:
            wait = wait_exponential(min=self.min_wait, max=self.max_wait)
        return {
            "stop": stop_after_attempt(self.attempts),
            "wait": wait,
            "retry": retry,
            "before_sleep": before_sleep_log(log or logger, logging.WARNING),
            "reraise": True,
        }

    def retrying(self, retry: retry_base, log: logging.Logger | None = None) -> Retrying:
        return Retrying(**self._options(retry, log))

    def async_retrying(self, retry: retry_base, log: logging.Logger | None = None) -> AsyncRetrying:
        return AsyncRetrying(**self._options(retry, log))


NOTIFY_POLICY = RetryPolicy()
MIRROR_POLICY = RetryPolicy(jitter=False)


def with_retry(
    *exceptions: type[BaseException],
    policy: RetryPolicy = NOTIFY_POLICY,
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Retry an async function while it raises one of ``exceptions``.

        @with_retry(httpx.TransportError)
        async def _post(self, payload): ...
    """

    def decorator(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            async for attempt in policy.async_retrying(retry_if_exception_type(exceptions)):
                with attempt:
                    return await fn(*args, **kwargs)

        return wrapper

    return decorator


def call_with_retry(
    fn: Callable[..., T],
    should_retry: Callable[[BaseException], bool],
    *args: Any,
    policy: RetryPolicy = MIRROR_POLICY,
    log: logging.Logger | None = None,
    **kwargs: Any,
) -> T:
    """Call a blocking function, retrying while ``should_retry(error)`` holds."""
    for attempt in policy.retrying(retry_if_exception(should_retry), log):
        with attempt:
            return fn(*args, **kwargs)

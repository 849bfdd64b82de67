"""Bounded retry with exponential backoff for async operations.

Learn: The cache layer and the update bus are lenient: they
swallow failures and return defaults. with_retry is the strict piece under
them: it retries transient failures and, once retries run out (or the error
is not worth retrying), re-raises the last error to the caller.

Algorithm:
    attempt operation()
    on failure, if attempt < max_retries and the error is retryable:
        sleep current_delay ms, current_delay *= backoff_factor, try again
    otherwise re-raise

No jitter and no circuit breaker: callers are low-QPS dashboard refreshes.

Usage:
    value = await with_retry(lambda: kv.get(key), RetryOptions(max_retries=2))
"""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from smartpro.config import Settings

logger = structlog.get_logger()

T = TypeVar("T")


class AttemptTimeoutError(TimeoutError):
    """Raised when a single attempt exceeds RetryOptions.attempt_timeout."""


@dataclass(frozen=True)
class RetryAttempt:
    """Bookkeeping for one failed attempt. Lives only inside with_retry."""
    attempt: int  # 1-based number of the attempt that failed
    delay_ms: float  # wait before the next attempt
    last_error: BaseException


@dataclass(frozen=True)
class RetryOptions:
    max_retries: int = 3
    delay_ms: float = 300
    backoff_factor: float = 1.5
    # Substrings of the error message worth retrying. Empty = retry everything.
    retryable_errors: tuple[str, ...] = ()
    attempt_timeout: Optional[float] = None  # seconds per attempt
    on_retry: Optional[Callable[[RetryAttempt], None]] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryOptions":
        return cls(
            max_retries=settings.retry_max_retries,
            delay_ms=settings.retry_delay_ms,
            backoff_factor=settings.retry_backoff_factor,
            attempt_timeout=settings.retry_attempt_timeout_seconds,
        )


def is_retryable(error: BaseException, options: RetryOptions) -> bool:
    """Decide whether a failed attempt should be retried.

    Errors that know their own kind (MediumError.is_retryable) are trusted
    first: a permanent failure is never retried, whatever the filters say.
    """
    kind_check = getattr(error, "is_retryable", None)
    if callable(kind_check) and not kind_check():
        return False
    if not options.retryable_errors:
        return True
    message = str(error)
    return any(fragment in message for fragment in options.retryable_errors)


async def _attempt(
    operation: Callable[[], Awaitable[T]], timeout: Optional[float]
) -> T:
    if timeout is None:
        return await operation()
    try:
        return await asyncio.wait_for(operation(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise AttemptTimeoutError(f"timeout: attempt exceeded {timeout:.2f}s") from e


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    options: Optional[RetryOptions] = None,
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run operation(), retrying per options. Re-raises the last error."""
    options = options or RetryOptions()
    current_delay = float(options.delay_ms)
    attempt = 0

    while True:
        try:
            result = await _attempt(operation, options.attempt_timeout)
            if attempt:
                logger.debug("retry.succeeded", attempt=attempt + 1)
            return result
        except Exception as e:
            if attempt >= options.max_retries or not is_retryable(e, options):
                raise

            record = RetryAttempt(attempt=attempt + 1, delay_ms=current_delay, last_error=e)
            logger.warning(
                "retry.attempt_failed",
                attempt=record.attempt,
                max_attempts=options.max_retries + 1,
                delay_ms=round(current_delay, 1),
                error=str(e),
            )
            if options.on_retry is not None:
                options.on_retry(record)

            await sleep(current_delay / 1000)
            current_delay *= options.backoff_factor
            attempt += 1

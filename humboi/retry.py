"""
Retry executor - run an operation with classified-failure retry and backoff.

Usage:
    from humboi.retry import with_retry

    conn = with_retry(lambda: client.connect("inventory"))

Each invocation of the operation becomes an Attempt value (result or
failure). The retry decision is a pure function of the failure and the
attempt number:

- policy.is_retryable(failure) false -> re-raise the original exception
  (exceptions that are not a ClassifiedFailure count as OTHER)
- policy.backoff(attempt) is None -> re-raise the original exception
- otherwise sleep for the delay and try again

The executor places no cap of its own on attempts; the policy's backoff
schedule is the only bound. Exceptions are always re-raised unchanged.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from humboi.errors import ClassifiedFailure, FailureCategory
from humboi.errors import is_retryable as default_is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")

BackoffFn = Callable[[int], Optional[timedelta]]
RetryPredicate = Callable[[ClassifiedFailure], bool]

DEFAULT_MAX_RETRIES = 10
DEFAULT_BACKOFF_STEP = timedelta(milliseconds=200)


def linear_backoff(
    step: timedelta = DEFAULT_BACKOFF_STEP,
    max_retries: int = DEFAULT_MAX_RETRIES,
) -> BackoffFn:
    """
    Build a linear backoff schedule: step * attempt for attempts 1..max_retries.

    Returns None once attempt exceeds max_retries.
    """
    def backoff(attempt: int) -> Optional[timedelta]:
        if 1 <= attempt <= max_retries:
            return step * attempt
        return None
    return backoff


@dataclass(frozen=True)
class RetryPolicy:
    """Retryability predicate plus backoff schedule."""
    is_retryable: RetryPredicate = default_is_retryable
    backoff: BackoffFn = linear_backoff()


DEFAULT_RETRY_POLICY = RetryPolicy()


@dataclass(frozen=True)
class Attempt(Generic[T]):
    """Outcome of one invocation: a value or the raised exception."""
    number: int
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def failure(self) -> Optional[ClassifiedFailure]:
        """
        The error as a ClassifiedFailure for the retry decision, None on success.

        Exceptions outside the taxonomy count as OTHER; mapping library errors
        into categories is the store boundary's job.
        """
        if self.error is None:
            return None
        if isinstance(self.error, ClassifiedFailure):
            return self.error
        return ClassifiedFailure(
            FailureCategory.OTHER, str(self.error) or type(self.error).__name__, cause=self.error
        )


def _run_once(op: Callable[[], T], number: int) -> Attempt[T]:
    try:
        return Attempt(number, value=op())
    except Exception as e:
        return Attempt(number, error=e)


def next_delay(attempt: Attempt[Any], policy: RetryPolicy) -> Optional[timedelta]:
    """
    Decide whether a failed attempt is retried.

    Returns:
        The delay before the next attempt, or None to stop.
    """
    failure = attempt.failure
    if failure is None or not policy.is_retryable(failure):
        return None
    return policy.backoff(attempt.number)


def _give_up(attempt: Attempt[Any], op: Callable) -> None:
    failure = attempt.failure
    if failure is not None and failure.retryable:
        logger.error(
            f"{_op_name(op)} failed after {attempt.number} attempt(s): "
            f"[{failure.category.value}] {failure.message}"
        )


def _op_name(op: Callable) -> str:
    return getattr(op, "__qualname__", None) or repr(op)


def with_retry(
    op: Callable[[], T],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call op, retrying on failures the policy considers retryable.

    Args:
        op: Zero-argument operation
        policy: RetryPolicy (default: transient categories, linear 200ms steps,
            10 retries)
        sleep: Sleep function taking seconds (injectable for tests)

    Returns:
        The first successful result of op()

    Raises:
        Exception: The last failure, unchanged, when it is not retryable or
            the backoff schedule is exhausted
    """
    number = 1
    while True:
        attempt = _run_once(op, number)
        if attempt.ok:
            return attempt.value  # type: ignore[return-value]

        delay = next_delay(attempt, policy)
        if delay is None:
            _give_up(attempt, op)
            raise attempt.error  # type: ignore[misc]

        logger.warning(
            f"Attempt {number} of {_op_name(op)} failed: {attempt.failure.message}. "
            f"Retrying in {delay.total_seconds():.1f}s..."
        )
        sleep(delay.total_seconds())
        number += 1


async def with_retry_async(
    op: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Async variant of with_retry.

    The backoff delay is awaited, so other tasks on the event loop keep
    running while this operation waits.
    """
    number = 1
    while True:
        try:
            attempt: Attempt[T] = Attempt(number, value=await op())
        except Exception as e:
            attempt = Attempt(number, error=e)
        if attempt.ok:
            return attempt.value  # type: ignore[return-value]

        delay = next_delay(attempt, policy)
        if delay is None:
            _give_up(attempt, op)
            raise attempt.error  # type: ignore[misc]

        logger.warning(
            f"Attempt {number} of {_op_name(op)} failed: {attempt.failure.message}. "
            f"Retrying in {delay.total_seconds():.1f}s..."
        )
        await sleep(delay.total_seconds())
        number += 1

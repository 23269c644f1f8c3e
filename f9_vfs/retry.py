"""Retry policies for remote calls.

A policy is any callable that takes a zero-argument operation and returns its
result. Only :class:`~f9_vfs.interfaces.RemoteOperationError` is retried;
validation, precondition and not-found errors pass straight through. After the
last attempt the final error is re-raised unchanged.

Example:
    >>> from f9_vfs.retry import ExponentialBackoff
    >>> policy = ExponentialBackoff(attempts=4, base_delay=0.2)
    >>> size = policy(lambda: client.head("bucket", "key").size)

"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Protocol, TypeVar

from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_fixed,
)

from .interfaces import RemoteOperationError

if TYPE_CHECKING:
    from tenacity import RetryCallState
    from tenacity.wait import wait_base

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RetryPolicy(Protocol):
    """Callable that runs an operation with retries."""

    def __call__(self, operation: Callable[[], T]) -> T: ...


def no_retry(operation: Callable[[], T]) -> T:
    """Run the operation exactly once."""
    return operation()


def _log_before_sleep(attempts: int) -> Callable[[RetryCallState], None]:
    def log(retry_state: RetryCallState) -> None:
        logger.warning(
            "Remote call failed (attempt %d of %d), retrying in %.2fs: %s",
            retry_state.attempt_number,
            attempts,
            retry_state.next_action.sleep if retry_state.next_action else 0.0,
            retry_state.outcome.exception() if retry_state.outcome else None,
        )

    return log


def _retrying(
    attempts: int,
    wait: wait_base,
    sleep: Callable[[float], None],
) -> Retrying:
    return Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait,
        retry=retry_if_exception_type(RemoteOperationError),
        before_sleep=_log_before_sleep(attempts),
        sleep=sleep,
        reraise=True,
    )


@dataclass(frozen=True)
class FixedRetry:
    """Retry a fixed number of times with a constant delay between attempts."""

    attempts: int = 3
    delay: float = 0.5
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        if self.attempts < 1:
            msg = "attempts must be at least 1"
            raise ValueError(msg)

    def __call__(self, operation: Callable[[], T]) -> T:
        retrying = _retrying(self.attempts, wait_fixed(self.delay), self.sleep)
        return retrying(operation)


@dataclass(frozen=True)
class ExponentialBackoff:
    """Retry with delays of ``base_delay * factor**n``, capped at ``max_delay``."""

    attempts: int = 5
    base_delay: float = 0.1
    factor: float = 2.0
    max_delay: float = 10.0
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        if self.attempts < 1:
            msg = "attempts must be at least 1"
            raise ValueError(msg)

    def __call__(self, operation: Callable[[], T]) -> T:
        wait = wait_exponential(
            multiplier=self.base_delay,
            exp_base=self.factor,
            max=self.max_delay,
        )
        return _retrying(self.attempts, wait, self.sleep)(operation)


def policy_from_attempts(attempts: int) -> RetryPolicy:
    """Return a backoff policy for ``attempts`` tries, or :func:`no_retry` for one."""
    if attempts <= 1:
        return no_retry
    return ExponentialBackoff(attempts=attempts)

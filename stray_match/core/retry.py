"""
Retry policies.

A policy states how many attempts to make, how long to wait before each
one, and whether callers should fail open or closed once it gives up.
``retry_call`` runs a function under a policy using tenacity.
"""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Tuple, Type, TypeVar

from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_base

from stray_match.logging_config import get_logger

from .errors import RetriesExhausted

logger = get_logger(__name__)

T = TypeVar("T")


class FailureMode(Enum):
    """What a caller does once a policy is exhausted."""
    FAIL_OPEN = "fail_open"
    FAIL_CLOSED = "fail_closed"


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with an explicit backoff schedule.

    ``backoff[i]`` is the delay in seconds before attempt ``i + 1``; the
    last entry repeats if there are more attempts than entries.
    """
    max_attempts: int
    backoff: Tuple[float, ...] = (0.0,)
    failure_mode: FailureMode = FailureMode.FAIL_CLOSED
    retry_on: Tuple[Type[BaseException], ...] = (Exception,)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if not self.backoff:
            raise ValueError("backoff must have at least one entry")
        if any(delay < 0 for delay in self.backoff):
            raise ValueError("backoff delays cannot be negative")

    def delay_before(self, attempt_number: int) -> float:
        index = min(max(attempt_number, 1), len(self.backoff)) - 1
        return self.backoff[index]


# 0ms / 200ms / 500ms, deny on exhaustion
COUNT_QUERY_POLICY = RetryPolicy(
    max_attempts=3,
    backoff=(0.0, 0.2, 0.5),
    failure_mode=FailureMode.FAIL_CLOSED,
)


class wait_schedule(wait_base):
    """tenacity wait strategy that follows a policy's backoff schedule."""

    def __init__(self, policy: RetryPolicy):
        self.policy = policy

    def __call__(self, retry_state) -> float:
        return self.policy.delay_before(retry_state.attempt_number + 1)


def _log_retry(retry_state) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(f"Attempt {retry_state.attempt_number} failed, retrying: {error}")


def retry_call(
    policy: RetryPolicy,
    fn: Callable[..., T],
    *args: Any,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any
) -> T:
    """Call ``fn`` under ``policy``.

    Exceptions outside ``policy.retry_on`` propagate immediately.

    Raises:
        RetriesExhausted: If every attempt failed; carries the policy's
            failure mode and the last error
    """
    initial_delay = policy.delay_before(1)
    if initial_delay > 0:
        sleep(initial_delay)

    retrying = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_schedule(policy),
        retry=retry_if_exception_type(policy.retry_on),
        before_sleep=_log_retry,
        sleep=sleep,
        reraise=False,
    )
    try:
        return retrying(fn, *args, **kwargs)
    except RetryError as e:
        last_error = e.last_attempt.exception()
        raise RetriesExhausted(policy.failure_mode, e.last_attempt.attempt_number, last_error) from last_error

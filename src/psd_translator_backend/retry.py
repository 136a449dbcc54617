"""
Backoff policy shared by the vendor request primitive and the job poller.

A ``BackoffPolicy`` only describes *when* to retry and *how long* to wait;
the retry loops themselves live with the callers. The vendor client feeds
the policy into tenacity, while the poller drives its own status loop.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx
from tenacity import RetryCallState

logger = logging.getLogger(__name__)

RETRYABLE_STATUSES = frozenset({429})


def is_retryable_status(status: int) -> bool:
    return status in RETRYABLE_STATUSES or 500 <= status < 600


class RetryableResponseError(Exception):
    """Internal signal raised for a 429/5xx response that should be retried."""

    def __init__(self, response: httpx.Response) -> None:
        super().__init__(f"Retryable response: {response.status_code}")
        self.response = response
        self.retry_after = parse_retry_after(response.headers.get("retry-after"))


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a ``retry-after`` header given in seconds; HTTP dates are ignored."""
    if not value:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return max(seconds, 0.0)


def _default_retryable(exc: BaseException) -> bool:
    # Protocol and proxy misconfiguration never succeed on retry
    return isinstance(exc, (RetryableResponseError, httpx.TimeoutException, httpx.NetworkError))


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff description.

    Attributes:
        max_attempts: Total number of tries, including the first one
        base_delay: Delay before the first retry, in seconds
        multiplier: Growth factor applied per retry
        max_delay: Upper bound for any single delay
        retryable: Predicate deciding whether an exception is transient
    """

    max_attempts: int
    base_delay: float
    multiplier: float
    max_delay: float
    retryable: Callable[[BaseException], bool] = field(default=_default_retryable, compare=False)

    def delay_for(self, retry_number: int) -> float:
        """Delay before the ``retry_number``-th retry (0-based)."""
        return min(self.base_delay * (self.multiplier ** retry_number), self.max_delay)

    def grow(self, current: float) -> float:
        """Next delay after ``current`` for loops that grow the delay in place."""
        return min(current * self.multiplier, self.max_delay)

    # tenacity hooks

    def should_retry(self, retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        return self.retryable(outcome.exception())

    def wait(self, retry_state: RetryCallState) -> float:
        """Honor a ``retry-after`` header when present, else back off exponentially."""
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RetryableResponseError) and exc.retry_after is not None:
            return exc.retry_after
        return self.delay_for(retry_state.attempt_number - 1)

    def log_retry(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            f"Retrying after {exc!s} (attempt {retry_state.attempt_number}/{self.max_attempts}, "
            f"waiting {delay:.1f}s)"
        )

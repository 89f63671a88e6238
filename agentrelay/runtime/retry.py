"""Retry policy for provider calls.

Only ``ProviderError``s flagged ``retryable`` (rate limits, timeouts,
connection failures, 5xx) are retried; everything else surfaces on the
first attempt. Exhausted retries re-raise the last error unchanged.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt, wait_exponential

from agentrelay.config.settings import RetrySettings
from agentrelay.utils.error_handler import ProviderError

LOGGER = logging.getLogger(__name__)


def is_retryable(error: BaseException) -> bool:
    return isinstance(error, ProviderError) and error.retryable


def _log_before_sleep(state: RetryCallState) -> None:
    error = state.outcome.exception() if state.outcome is not None else None
    wait = state.next_action.sleep if state.next_action is not None else 0
    LOGGER.warning(f"Model call failed (attempt {state.attempt_number}), retrying in {wait:.1f}s: {error}")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff for retryable provider errors."""

    max_attempts: int = 3
    min_wait: float = 1.0
    max_wait: float = 10.0
    multiplier: float = 1.0

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.max_attempts,
            min_wait=settings.min_wait,
            max_wait=settings.max_wait,
            multiplier=settings.multiplier,
        )

    def retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max(1, self.max_attempts)),
            wait=wait_exponential(multiplier=self.multiplier, min=self.min_wait, max=self.max_wait),
            retry=retry_if_exception(is_retryable),
            before_sleep=_log_before_sleep,
        )


NO_RETRY = RetryPolicy(max_attempts=1, min_wait=0.0, max_wait=0.0, multiplier=0.0)

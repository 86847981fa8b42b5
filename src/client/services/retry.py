"""
Retry policy with exponential backoff for mailbox API calls.

Only rate limiting is considered transient: such failures are retried
after ``min(base_delay * 2 ** attempt, max_delay)`` seconds. Every other
failure is returned to the caller immediately.
"""

import logging
import threading
from typing import Callable, Optional, TypeVar

from common.exceptions import (
    OperationCancelledError,
    RateLimitError,
    RetryExhaustedError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Waits for ``delay`` seconds; returns True if the cancel event fired first.
WaitFunction = Callable[[float, Optional[threading.Event]], bool]


def is_rate_limited(error: Exception) -> bool:
    """Check whether an error signals that the API is rate limiting us."""
    if isinstance(error, RateLimitError):
        return True
    return getattr(error, "status_code", None) == 429


def _default_wait(delay: float, cancel_event: Optional[threading.Event]) -> bool:
    if cancel_event is None:
        threading.Event().wait(delay)
        return False
    return cancel_event.wait(delay)


class RetryPolicy:
    """Bounded-attempt exponential backoff."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 10.0,
        wait: Optional[WaitFunction] = None,
    ) -> None:
        """
        Initialize the retry policy.

        Args:
            max_attempts: Total number of attempts, including the first.
            base_delay: Delay before the first retry in seconds.
            max_delay: Upper bound for any single delay.
            wait: Sleep function, replaceable for tests.
        """
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._wait = wait or _default_wait

    def delay_for(self, attempt: int) -> float:
        """
        Calculate the delay after a failed attempt.

        Args:
            attempt: Zero-based index of the attempt that failed.

        Returns:
            Delay in seconds.
        """
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def run(
        self,
        operation: Callable[[], T],
        cancel_event: Optional[threading.Event] = None,
    ) -> T:
        """
        Call ``operation`` until it succeeds or the policy gives up.

        Args:
            operation: Zero-argument callable performing one attempt.
            cancel_event: When set, pending waits abort immediately.

        Returns:
            The operation's result.

        Raises:
            OperationCancelledError: If cancelled before or while waiting.
            RetryExhaustedError: If every attempt was rate limited.
            Exception: Any non rate-limit error raised by the operation.
        """
        for attempt in range(self.max_attempts):
            if cancel_event is not None and cancel_event.is_set():
                raise OperationCancelledError()

            try:
                return operation()
            except Exception as e:
                if not is_rate_limited(e):
                    raise
                if attempt == self.max_attempts - 1:
                    raise RetryExhaustedError(self.max_attempts, e)

                delay = self.delay_for(attempt)
                logger.info(
                    "Rate limited, retry in %.1f seconds (attempt %d/%d)",
                    delay,
                    attempt + 1,
                    self.max_attempts,
                )
                if self._wait(delay, cancel_event):
                    raise OperationCancelledError()

        raise RetryExhaustedError(
            self.max_attempts, RuntimeError("Unexpected retry loop exit")
        )

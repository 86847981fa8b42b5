"""
Tests for the retry policy.
"""

import threading

import pytest

from client.services.retry import RetryPolicy, is_rate_limited
from common.exceptions import (
    APIError,
    NetworkError,
    OperationCancelledError,
    RateLimitError,
    RetryExhaustedError,
)


class Flaky:
    """Callable failing with the given errors before succeeding."""

    def __init__(self, *errors, result="ok"):
        self.errors = list(errors)
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.result


# =============================================================================
# Rate Limit Detection
# =============================================================================

class TestRateLimitDetection:
    """Tests for classifying errors."""

    def test_rate_limit_error(self):
        assert is_rate_limited(RateLimitError("get messages"))

    def test_status_code_429(self):
        assert is_rate_limited(APIError("Too many requests", 429))

    def test_message_text_is_not_a_signal(self):
        assert not is_rate_limited(RuntimeError("Rate Limit reached"))
        assert not is_rate_limited(
            APIError("Failed to delete message", 500, {"body": "trace 84291"})
        )

    def test_other_errors(self):
        assert not is_rate_limited(APIError("Server error", 500))
        assert not is_rate_limited(NetworkError("connection refused"))


# =============================================================================
# Backoff
# =============================================================================

class TestRetryPolicy:
    """Tests for bounded exponential backoff."""

    def test_delays_are_capped(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=10.0)
        assert [policy.delay_for(n) for n in range(5)] == [1.0, 2.0, 4.0, 8.0, 10.0]

    def test_success_after_two_rate_limits(self, no_wait_policy):
        operation = Flaky(RateLimitError("list"), RateLimitError("list"))

        assert no_wait_policy.run(operation) == "ok"
        assert operation.calls == 3
        assert no_wait_policy.delays == [1.0, 2.0]
        assert no_wait_policy.delays == sorted(no_wait_policy.delays)

    def test_other_error_is_not_retried(self, no_wait_policy):
        operation = Flaky(APIError("Server error", 500))

        with pytest.raises(APIError):
            no_wait_policy.run(operation)
        assert operation.calls == 1
        assert no_wait_policy.delays == []

    def test_gives_up_after_ceiling(self, no_wait_policy):
        operation = Flaky(*[RateLimitError("list") for _ in range(3)])

        with pytest.raises(RetryExhaustedError) as exc_info:
            no_wait_policy.run(operation)
        assert operation.calls == 3
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.last_error, RateLimitError)

    def test_cancel_before_first_attempt(self):
        cancel = threading.Event()
        cancel.set()
        operation = Flaky()

        with pytest.raises(OperationCancelledError):
            RetryPolicy().run(operation, cancel)
        assert operation.calls == 0

    def test_cancel_aborts_wait(self):
        cancel = threading.Event()
        policy = RetryPolicy(wait=lambda delay, event: True)
        operation = Flaky(RateLimitError("list"))

        with pytest.raises(OperationCancelledError):
            policy.run(operation, cancel)
        assert operation.calls == 1

    def test_default_wait_returns_when_cancelled(self):
        cancel = threading.Event()

        def operation():
            cancel.set()
            raise RateLimitError("list")

        with pytest.raises(OperationCancelledError):
            RetryPolicy(base_delay=30.0).run(operation, cancel)

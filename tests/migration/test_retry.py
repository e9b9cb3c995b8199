"""Tests for the retry combinator."""

from __future__ import annotations

import pytest

from otcsmigrate.client.api import AuthenticationError
from otcsmigrate.migration.retry import backoff_delays, retry_with_backoff


class Flaky:
    """Callable failing a fixed number of times before succeeding."""

    def __init__(self, failures: int, error: Exception | None = None) -> None:
        self.failures = failures
        self.error = error or OSError("connection reset")
        self.calls = 0

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return "ok"


class TestBackoffDelays:
    """Tests for backoff_delays()."""

    def test_doubling(self) -> None:
        """Delays should start at one second and double."""
        assert backoff_delays(4) == [1.0, 2.0, 4.0]

    def test_capped(self) -> None:
        """Delays should not exceed max_backoff."""
        assert backoff_delays(5, max_backoff=3.0) == [1.0, 2.0, 3.0, 3.0]

    def test_single_attempt(self) -> None:
        """Zero or one attempt means no delays."""
        assert backoff_delays(0) == []
        assert backoff_delays(1) == []


class TestRetryWithBackoff:
    """Tests for retry_with_backoff()."""

    def test_success_first_try(self) -> None:
        """A successful call should not sleep."""
        sleeps: list[float] = []
        outcome = retry_with_backoff(Flaky(0), sleep=sleeps.append)
        assert outcome.value == "ok"
        assert outcome.attempts == 1
        assert sleeps == []

    def test_recovers_after_failures(self) -> None:
        """Transient failures should be retried with backoff."""
        sleeps: list[float] = []
        func = Flaky(2)
        outcome = retry_with_backoff(func, max_attempts=3, sleep=sleeps.append)
        assert outcome.attempts == 3
        assert func.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_exhausted_raises_last_error(self) -> None:
        """After the last attempt the error should propagate."""
        sleeps: list[float] = []
        func = Flaky(10)
        with pytest.raises(OSError, match="connection reset"):
            retry_with_backoff(func, max_attempts=3, sleep=sleeps.append)
        assert func.calls == 3
        assert sleeps == [1.0, 2.0]

    def test_authentication_not_retried(self) -> None:
        """A lost session should fail immediately."""
        sleeps: list[float] = []
        func = Flaky(10, AuthenticationError("ticket expired", 401))
        with pytest.raises(AuthenticationError):
            retry_with_backoff(func, max_attempts=5, sleep=sleeps.append)
        assert func.calls == 1
        assert sleeps == []

    def test_zero_attempts_runs_once(self) -> None:
        """max_attempts below one should still run the call once."""
        func = Flaky(10)
        with pytest.raises(OSError):
            retry_with_backoff(func, max_attempts=0, sleep=lambda s: None)
        assert func.calls == 1

    def test_non_matching_exception_propagates(self) -> None:
        """Exceptions outside retryable_exceptions should not be retried."""
        func = Flaky(10, ValueError("bad"))
        with pytest.raises(ValueError):
            retry_with_backoff(
                func, max_attempts=3, retryable_exceptions=(OSError,), sleep=lambda s: None
            )
        assert func.calls == 1

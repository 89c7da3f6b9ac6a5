"""Tests for the retry policy."""

import pytest
from unittest.mock import Mock

from repo_migrate.api.retry import RetryContext, RetryPolicy


class TestRetryPolicy:
    """Test retry policy decisions."""

    def test_defaults(self):
        """Test default attempts and interval."""
        policy = RetryPolicy()

        assert policy.max_attempts == 3
        assert policy.retry_interval == 1.0

    @pytest.mark.parametrize('status', [500, 502, 503, 504, None])
    def test_retryable_statuses(self, status):
        """Test 5xx and network failures are retryable."""
        assert RetryPolicy.retryable(status) is True

    @pytest.mark.parametrize('status', [200, 400, 401, 403, 404, 409])
    def test_non_retryable_statuses(self, status):
        """Test other statuses are not retryable."""
        assert RetryPolicy.retryable(status) is False

    def test_should_retry_respects_attempts(self):
        """Test retries stop once attempts are used up."""
        policy = RetryPolicy(max_attempts=2)

        assert policy.should_retry(RetryContext(attempt=1, last_status=503)) is True
        assert policy.should_retry(RetryContext(attempt=2, last_status=503)) is False
        assert policy.should_retry(RetryContext(attempt=1, last_status=404)) is False

    def test_linear_backoff(self):
        """Test delay grows linearly with the attempt number."""
        sleep = Mock()
        policy = RetryPolicy(retry_interval=2.0, sleep=sleep)

        assert policy.delay(RetryContext(attempt=1)) == 2.0
        assert policy.delay(RetryContext(attempt=3)) == 6.0

        policy.wait(RetryContext(attempt=2))
        sleep.assert_called_once_with(4.0)

    def test_zero_interval_never_sleeps(self):
        """Test a zero interval skips sleeping."""
        sleep = Mock()
        RetryPolicy(retry_interval=0, sleep=sleep).wait(RetryContext(attempt=2))

        sleep.assert_not_called()

    def test_invalid_settings(self):
        """Test invalid settings are rejected."""
        with pytest.raises(ValueError):
            RetryPolicy(max_attempts=0)
        with pytest.raises(ValueError):
            RetryPolicy(retry_interval=-1)

    def test_context_elapsed(self):
        """Test elapsed time is never negative."""
        assert RetryContext().elapsed >= 0

"""Tests for the retry policy."""

from gitlab_move.migration.retry import RetryPolicy
from gitlab_move.models.record import ErrorCategory


class TestRetryPolicy:
    """Test per-category retry limits and backoff."""

    def setup_method(self):
        """Set up test fixtures."""
        self.policy = RetryPolicy()

    def test_default_limits(self):
        """Test the default limit of every category."""
        assert self.policy.max_retries(ErrorCategory.NETWORK) == 3
        assert self.policy.max_retries(ErrorCategory.API_OPERATION) == 2
        assert self.policy.max_retries(ErrorCategory.TRANSFER_OPERATION) == 1
        assert self.policy.max_retries(ErrorCategory.UNKNOWN) == 1
        assert self.policy.max_retries(ErrorCategory.PERMISSION) == 0
        assert self.policy.max_retries(ErrorCategory.VALIDATION) == 0
        assert self.policy.max_retries(ErrorCategory.FILESYSTEM) == 0

    def test_network_retried_twice(self):
        """Test the third network failure is terminal."""
        assert self.policy.should_retry(ErrorCategory.NETWORK, 1)
        assert self.policy.should_retry(ErrorCategory.NETWORK, 2)
        assert not self.policy.should_retry(ErrorCategory.NETWORK, 3)

    def test_never_retried_categories(self):
        """Test permission, validation and filesystem failures are terminal."""
        for category in (
            ErrorCategory.PERMISSION,
            ErrorCategory.VALIDATION,
            ErrorCategory.FILESYSTEM,
        ):
            assert not self.policy.should_retry(category, 1)

    def test_transfer_and_unknown_fail_on_first(self):
        """Test a limit of one never allows a second attempt."""
        assert not self.policy.should_retry(ErrorCategory.TRANSFER_OPERATION, 1)
        assert not self.policy.should_retry(ErrorCategory.UNKNOWN, 1)

    def test_backoff(self):
        """Test exponential backoff capped at eight seconds."""
        delays = [self.policy.delay(n) for n in range(6)]

        assert delays == [1.0, 2.0, 4.0, 8.0, 8.0, 8.0]

    def test_ceiling(self):
        """Test the ceiling is the largest limit."""
        assert self.policy.ceiling == 3

    def test_override(self):
        """Test overriding one category keeps the others."""
        policy = RetryPolicy(
            max_retries={ErrorCategory.PERMISSION: 4}, base_delay=0.5, max_delay=1.0
        )

        assert policy.max_retries(ErrorCategory.PERMISSION) == 4
        assert policy.max_retries(ErrorCategory.NETWORK) == 3
        assert policy.ceiling == 4
        assert policy.delay(0) == 0.5
        assert policy.delay(3) == 1.0

"""Retry policy for failed pipeline steps."""

from typing import Dict, Optional

from ..models.record import ErrorCategory


DEFAULT_MAX_RETRIES: Dict[ErrorCategory, int] = {
    ErrorCategory.NETWORK: 3,
    ErrorCategory.API_OPERATION: 2,
    ErrorCategory.TRANSFER_OPERATION: 1,
    ErrorCategory.PERMISSION: 0,
    ErrorCategory.VALIDATION: 0,
    ErrorCategory.FILESYSTEM: 0,
    ErrorCategory.UNKNOWN: 1,
}


class RetryPolicy:
    """Per-category retry limits with capped exponential backoff.

    The caller increments its retry counter before asking, so with a limit of
    3 a network failure is retried after the first and second failure and is
    terminal on the third.
    """

    def __init__(
        self,
        max_retries: Optional[Dict[ErrorCategory, int]] = None,
        base_delay: float = 1.0,
        max_delay: float = 8.0,
    ):
        """Initialize retry policy.

        Args:
            max_retries: Override of the per-category limits
            base_delay: Delay before the first retry in seconds
            max_delay: Upper bound of any delay in seconds
        """
        self.limits = dict(DEFAULT_MAX_RETRIES)
        if max_retries:
            self.limits.update(max_retries)
        self.base_delay = base_delay
        self.max_delay = max_delay

    def max_retries(self, category: ErrorCategory) -> int:
        """Return the retry limit of a category."""
        return self.limits.get(category, self.limits[ErrorCategory.UNKNOWN])

    @property
    def ceiling(self) -> int:
        """Largest retry limit of any category."""
        return max(self.limits.values())

    def should_retry(self, category: ErrorCategory, retry_count: int) -> bool:
        """Decide whether another attempt is allowed.

        Args:
            category: Category of the latest failure
            retry_count: Failures counted so far, including the latest

        Returns:
            True if the entity may be retried
        """
        return retry_count < self.max_retries(category)

    def delay(self, retry_count: int) -> float:
        """Return the backoff delay in seconds for a retry count."""
        return min(self.base_delay * (2 ** max(retry_count, 0)), self.max_delay)

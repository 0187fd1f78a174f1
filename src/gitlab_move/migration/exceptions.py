"""Migration exceptions."""

from typing import Optional

from ..models.record import ErrorCategory, StepName


class MigrationError(Exception):
    """Base exception for migration errors."""

    pass


class ConfigurationError(MigrationError):
    """Invalid or unreadable configuration."""

    pass


class StateFileError(MigrationError):
    """The migration state file cannot be read or written."""

    pass


class StepFailedError(MigrationError):
    """A pipeline step failed and may be retried by policy."""

    def __init__(
        self,
        step: StepName,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
    ):
        """Initialize step failure.

        Args:
            step: Step that failed
            message: Raw failure description
            category: Classified error category
        """
        super().__init__(message)
        self.step = step
        self.message = message
        self.category = category


class TerminalStepError(StepFailedError):
    """A step failure that must never be retried."""

    def __init__(
        self,
        step: StepName,
        message: str,
        category: Optional[ErrorCategory] = None,
    ):
        super().__init__(step, message, category or ErrorCategory.VALIDATION)

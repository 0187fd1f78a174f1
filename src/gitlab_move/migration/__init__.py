"""Migration state machine, persistence and policies."""

from .classifier import classify, describe_failure
from .downgrade import is_downgradable
from .engine import MigrationEngine, PrecheckResult
from .exceptions import (
    ConfigurationError,
    MigrationError,
    StateFileError,
    StepFailedError,
    TerminalStepError,
)
from .operations import GitLabOperations, MigrationOperations
from .orchestrator import MigrationOrchestrator, MigrationSummary
from .retry import RetryPolicy
from .store import MigrationRecordStore

__all__ = [
    'classify',
    'describe_failure',
    'is_downgradable',
    'MigrationEngine',
    'PrecheckResult',
    'MigrationError',
    'ConfigurationError',
    'StateFileError',
    'StepFailedError',
    'TerminalStepError',
    'MigrationOperations',
    'GitLabOperations',
    'MigrationOrchestrator',
    'MigrationSummary',
    'RetryPolicy',
    'MigrationRecordStore',
]

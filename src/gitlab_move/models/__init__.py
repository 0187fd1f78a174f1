"""Data models for repositories and their migration records."""

from .record import (
    ErrorCategory,
    MigrationRecord,
    MigrationStep,
    StepName,
    StepStatus,
)
from .repository import DestinationCheck, Repository, TransferResult

__all__ = [
    'ErrorCategory',
    'MigrationRecord',
    'MigrationStep',
    'StepName',
    'StepStatus',
    'DestinationCheck',
    'Repository',
    'TransferResult',
]

"""Step ledger: one entry per step name, updated in place."""

from datetime import datetime
from typing import List, Optional

from ..models.record import (
    TERMINAL_STATUSES,
    ErrorCategory,
    MigrationRecord,
    MigrationStep,
    StepName,
    StepStatus,
)


def _duration_ms(start: Optional[datetime], end: datetime) -> int:
    if start is None:
        return 0
    return max(int((end - start).total_seconds() * 1000), 0)


def find_step(steps: List[MigrationStep], name: StepName) -> Optional[MigrationStep]:
    """Find the ledger entry of a step."""
    for step in steps:
        if step.name == name:
            return step
    return None


def record_step(
    record: MigrationRecord,
    name: StepName,
    status: StepStatus,
    error: Optional[str] = None,
    category: Optional[ErrorCategory] = None,
    warnings: Optional[List[str]] = None,
    now: Optional[datetime] = None,
) -> MigrationStep:
    """Record a step status on a migration record.

    An existing entry is updated in place and keeps its start time; a new
    entry is appended. Entering ``completed``, ``failed`` or ``warning``
    fixes the end time and the duration.

    Args:
        record: Record owning the ledger
        name: Step name
        status: New step status
        error: Error message, cleared when omitted
        category: Error category, cleared when omitted
        warnings: Replacement warnings, previous ones kept when omitted
        now: Timestamp to use, defaults to the current time

    Returns:
        The updated or appended step
    """
    now = now or datetime.now()
    step = find_step(record.steps, name)

    if step is None:
        step = MigrationStep(
            name=name,
            status=status,
            started_at=now if status == StepStatus.IN_PROGRESS else None,
            error=error,
            error_category=category,
            warnings=list(warnings or []),
        )
        if status in TERMINAL_STATUSES:
            step.finished_at = now
            step.duration_ms = 0
        record.steps.append(step)
    else:
        step.status = status
        step.started_at = step.started_at or now
        step.error = error
        step.error_category = category
        if warnings is not None:
            step.warnings = list(warnings)
        if status in TERMINAL_STATUSES:
            step.finished_at = now
            step.duration_ms = _duration_ms(step.started_at, now)
        elif status == StepStatus.IN_PROGRESS:
            step.finished_at = None
            step.duration_ms = None

    record.touch()
    return step


def has_finished(record: MigrationRecord, name: StepName) -> bool:
    """Whether the ledger shows the step completed, possibly with warnings."""
    step = find_step(record.steps, name)
    return step is not None and step.is_done

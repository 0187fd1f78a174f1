"""Migration record models persisted between runs."""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ErrorCategory(str, Enum):
    """Error categories used for reporting and retry decisions."""

    TRANSFER_OPERATION = 'transfer_operation'
    API_OPERATION = 'api_operation'
    NETWORK = 'network'
    PERMISSION = 'permission'
    VALIDATION = 'validation'
    FILESYSTEM = 'filesystem'
    UNKNOWN = 'unknown'


class StepStatus(str, Enum):
    """Status of a single pipeline step."""

    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    FAILED = 'failed'
    SKIPPED = 'skipped'
    WARNING = 'warning'


# Statuses that close a step and fix its duration
TERMINAL_STATUSES = (StepStatus.COMPLETED, StepStatus.FAILED, StepStatus.WARNING)

# Statuses meaning the step's work is done
DONE_STATUSES = (StepStatus.COMPLETED, StepStatus.WARNING)


class StepName(str, Enum):
    """Pipeline steps, in execution order."""

    CHECK_DESTINATION = 'check-destination'
    FETCH_SOURCE = 'fetch-source'
    CREATE_DESTINATION = 'create-destination'
    UPDATE_METADATA = 'update-metadata'
    TRANSFER_CONTENT = 'transfer-content'
    VERIFY_FINAL = 'verify-final'


PIPELINE = [
    StepName.CHECK_DESTINATION,
    StepName.FETCH_SOURCE,
    StepName.CREATE_DESTINATION,
    StepName.UPDATE_METADATA,
    StepName.TRANSFER_CONTENT,
    StepName.VERIFY_FINAL,
]

# Milestone flag set by each step; check-destination has none
MILESTONES = {
    StepName.FETCH_SOURCE: 'source_fetched',
    StepName.CREATE_DESTINATION: 'destination_created',
    StepName.UPDATE_METADATA: 'metadata_updated',
    StepName.TRANSFER_CONTENT: 'content_transferred',
    StepName.VERIFY_FINAL: 'final_verified',
}


class MigrationStep(BaseModel):
    """One tracked execution of a pipeline step."""

    name: StepName = Field(..., description='Step name')
    status: StepStatus = Field(..., description='Step status')
    started_at: Optional[datetime] = Field(default=None, description='Start time')
    finished_at: Optional[datetime] = Field(default=None, description='End time')
    duration_ms: Optional[int] = Field(default=None, description='Duration in ms')
    error: Optional[str] = Field(default=None, description='Error message')
    error_category: Optional[ErrorCategory] = Field(
        default=None, description='Error category'
    )
    warnings: List[str] = Field(default_factory=list, description='Warnings')

    @property
    def is_done(self) -> bool:
        """Whether the step finished its work, possibly with warnings."""
        return self.status in DONE_STATUSES


class MigrationRecord(BaseModel):
    """Durable migration state of one repository."""

    # Identity
    name: str = Field(..., description='Repository name')
    description: str = Field(default='', description='Repository description')
    source_url: str = Field(default='', description='Source repository URL')
    destination_group: str = Field(default='', description='Destination group URL')
    destination_url: str = Field(default='', description='Destination clone URL')

    # Timing
    started_at: Optional[datetime] = Field(default=None, description='Start time')
    finished_at: Optional[datetime] = Field(default=None, description='End time')
    duration_seconds: Optional[float] = Field(
        default=None, description='Wall time of the last completed run'
    )

    # Milestones
    source_fetched: bool = Field(default=False, description='Source mirrored locally')
    destination_created: bool = Field(
        default=False, description='Destination project exists'
    )
    metadata_updated: bool = Field(
        default=False, description='Destination description updated'
    )
    content_transferred: bool = Field(
        default=False, description='Mirror pushed to destination'
    )
    final_verified: bool = Field(
        default=False, description='Destination cloned back successfully'
    )

    # Failure state
    failure_reason: str = Field(default='', description='Unresolved failure reason')
    error_category: Optional[ErrorCategory] = Field(
        default=None, description='Category of the last failure'
    )
    retry_count: int = Field(default=0, description='Retries used in the current run')

    steps: List[MigrationStep] = Field(default_factory=list, description='Step ledger')
    warnings: List[str] = Field(
        default_factory=list, description='Accumulated warnings'
    )

    local_path: Optional[str] = Field(
        default=None, description='Local mirror produced by fetch-source'
    )
    last_updated: datetime = Field(
        default_factory=datetime.now, description='Last modification time'
    )

    @property
    def is_complete(self) -> bool:
        """Whether the pipeline finished with no unresolved failure."""
        return self.final_verified and not self.failure_reason

    @property
    def is_failed(self) -> bool:
        """Whether the record carries an unresolved failure."""
        return bool(self.failure_reason)

    @property
    def is_terminal(self) -> bool:
        """Whether the record reflects a final outcome, good or bad."""
        return self.final_verified or self.is_failed

    def milestone(self, step: StepName) -> bool:
        """Return the milestone flag for a step (False for check-destination)."""
        attribute = MILESTONES.get(step)
        return bool(attribute and getattr(self, attribute))

    def mark_milestone(self, step: StepName) -> None:
        """Set the milestone flag of a step. Flags are never cleared."""
        attribute = MILESTONES.get(step)
        if attribute:
            setattr(self, attribute, True)

    def next_step(self) -> Optional[StepName]:
        """Return the step a resumed run starts its real work at."""
        if not self.source_fetched and not self.destination_created:
            return StepName.CHECK_DESTINATION
        for step in PIPELINE[1:]:
            if not self.milestone(step):
                return step
        return None

    def get_step(self, name: StepName) -> Optional[MigrationStep]:
        """Find a step entry by name."""
        for step in self.steps:
            if step.name == name:
                return step
        return None

    def add_warning(self, warning: str) -> bool:
        """Append a warning unless already recorded.

        Returns:
            True if the warning was new
        """
        if warning in self.warnings:
            return False
        self.warnings.append(warning)
        return True

    def touch(self) -> None:
        """Update the last modification time."""
        self.last_updated = datetime.now()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to plain data (enums as values, datetimes as ISO strings)."""
        return json.loads(self.json())

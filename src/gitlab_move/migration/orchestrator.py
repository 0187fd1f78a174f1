"""Migration orchestrator driving repositories through the pipeline."""

import asyncio
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, List, Optional, Set

from loguru import logger
from pydantic import BaseModel, Field

from ..models.record import ErrorCategory, MigrationRecord, StepName, StepStatus
from ..models.repository import DestinationCheck, Repository
from . import downgrade, ledger
from .classifier import classify, describe_failure
from .exceptions import StepFailedError, TerminalStepError
from .operations import MigrationOperations
from .retry import RetryPolicy
from .store import MigrationRecordStore


ConfirmReuse = Callable[[Repository, DestinationCheck], bool]


class FailureEntry(BaseModel):
    """A repository that needs a manual fix."""

    name: str = Field(..., description='Repository name')
    reason: str = Field(..., description='Final failure reason')
    category: Optional[ErrorCategory] = Field(default=None, description='Category')


class WarningEntry(BaseModel):
    """A repository that succeeded with noise."""

    name: str = Field(..., description='Repository name')
    warnings: List[str] = Field(default_factory=list, description='Warnings')


class MigrationSummary(BaseModel):
    """Summary of migration results."""

    total: int = Field(default=0, description='Repositories processed')
    succeeded: int = Field(default=0, description='Successful migrations')
    failed: int = Field(default=0, description='Failed migrations')
    warned: int = Field(
        default=0, description='Successful repositories with warnings'
    )
    success_rate: float = Field(default=0.0, description='Success percentage')

    # Timing
    started_at: Optional[datetime] = Field(
        default=None, description='Migration start time'
    )
    completed_at: Optional[datetime] = Field(
        default=None, description='Migration completion time'
    )

    failures: List[FailureEntry] = Field(default_factory=list)
    warnings: List[WarningEntry] = Field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        """Whether any repository failed."""
        return self.failed > 0


class ResumeEntry(BaseModel):
    """Unfinished repository and where a new run picks it up."""

    name: str = Field(..., description='Repository name')
    next_step: Optional[StepName] = Field(default=None, description='Next step')
    can_resume: bool = Field(default=True, description='Retryable without a fix')
    retry_count: int = Field(default=0, description='Retries used by the last run')
    failure_reason: str = Field(default='', description='Last failure reason')
    error_category: Optional[ErrorCategory] = Field(default=None)


class MigrationOrchestrator:
    """Drives each repository through the migration pipeline.

    Every repository is processed to success or final failure before the next
    one starts. Progress is kept in the record store, so a new run resumes
    each repository at its first unfinished milestone.
    """

    def __init__(
        self,
        operations: MigrationOperations,
        store: MigrationRecordStore,
        retry_policy: Optional[RetryPolicy] = None,
        confirm_reuse: Optional[ConfirmReuse] = None,
        skip_verify: bool = False,
        destination_group: str = '',
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ):
        """Initialize migration orchestrator.

        Args:
            operations: External operations
            store: Record store, already loaded
            retry_policy: Retry policy
            confirm_reuse: Asked before reusing an existing empty destination;
                reuse is declined when missing
            skip_verify: Skip the verification clone
            destination_group: Destination group URL stored on new records
            sleep: Coroutine function used for backoff waits
        """
        self.operations = operations
        self.store = store
        self.retry_policy = retry_policy or RetryPolicy()
        self.confirm_reuse = confirm_reuse
        self.skip_verify = skip_verify
        self.destination_group = destination_group
        self.sleep = sleep or asyncio.sleep
        self.logger = logger.bind(component='MigrationOrchestrator')

        self._processed: List[str] = []
        self._started_at: Optional[datetime] = None
        self._reuse_confirmed: Set[str] = set()

    async def run_pipeline(self, repositories: List[Repository]) -> MigrationSummary:
        """Migrate repositories one after another.

        A failed repository never stops the run.

        Args:
            repositories: Repositories to migrate, in order

        Returns:
            Migration summary of the processed repositories
        """
        self._started_at = datetime.now()
        self._processed = []
        total = len(repositories)

        self.logger.info(f'Starting migration of {total} repositories')
        self._sweep_mirrors()

        try:
            for index, repository in enumerate(repositories, 1):
                self.logger.info(f'[{index}/{total}] Migrating {repository.name}')
                await self.migrate_repository(repository)
        finally:
            self.store.flush()

        summary = self.report()
        self.logger.info(
            f'Migration finished: {summary.succeeded} succeeded, '
            f'{summary.failed} failed, {summary.warned} with warnings'
        )
        return summary

    async def migrate_repository(self, repository: Repository) -> MigrationRecord:
        """Migrate one repository to success or final failure.

        Args:
            repository: Repository to migrate

        Returns:
            Updated migration record
        """
        record = self.store.get_or_create(repository, self.destination_group)
        self._reuse_confirmed.discard(repository.name)
        if repository.name not in self._processed:
            self._processed.append(repository.name)

        if record.is_complete:
            self.logger.info(f'{repository.name} already migrated, skipping')
            return record

        if record.failure_reason:
            self.logger.info(
                f'Retrying {repository.name} after previous failure: '
                f'{record.failure_reason}'
            )

        record.description = repository.description
        record.source_url = repository.source_url
        record.destination_group = self.destination_group or record.destination_group
        record.failure_reason = ''
        record.error_category = None
        record.retry_count = 0
        record.started_at = datetime.now()
        record.finished_at = None
        self.store.update(record)

        clock = time.monotonic()

        while record.retry_count <= self.retry_policy.ceiling:
            try:
                await self._advance(repository, record)
            except TerminalStepError as e:
                self._fail(record, e, clock)
                break
            except StepFailedError as e:
                record.retry_count += 1
                if not self.retry_policy.should_retry(e.category, record.retry_count):
                    self._fail(record, e, clock)
                    break

                delay = self.retry_policy.delay(record.retry_count - 1)
                record.failure_reason = describe_failure(e.message, e.category)
                record.error_category = e.category
                self.store.update(record)
                self.logger.warning(
                    f'{repository.name}: {e.step.value} failed '
                    f'({e.category.value}), retry {record.retry_count} '
                    f'in {delay:g}s'
                )

                await self.sleep(delay)

                record.failure_reason = ''
                self.store.update(record)
            else:
                self._succeed(record, clock)
                break

        return record

    async def _advance(self, repository: Repository, record: MigrationRecord) -> None:
        """Run every unfinished step of a repository, in pipeline order."""
        check = None
        if not record.destination_created:
            check = await self._check_destination(repository, record)
        else:
            self._mark_skipped(record, StepName.CHECK_DESTINATION)

        # Re-fetch when the mirror vanished before its content was pushed
        mirror_usable = record.content_transferred or self.operations.has_local(
            record.local_path
        )
        if record.source_fetched and mirror_usable:
            self._mark_skipped(record, StepName.FETCH_SOURCE)
        else:
            if record.source_fetched:
                self.logger.warning(
                    f'Local mirror of {repository.name} is missing, fetching again'
                )
            await self._run_step(
                record,
                StepName.FETCH_SOURCE,
                lambda: self.operations.fetch_source(repository),
                apply=lambda path: setattr(record, 'local_path', path),
            )

        if record.destination_created:
            self._mark_skipped(record, StepName.CREATE_DESTINATION)
        elif check is not None and check.exists:
            self._reuse_destination(record, check)
        else:
            await self._run_step(
                record,
                StepName.CREATE_DESTINATION,
                lambda: self.operations.create_destination(repository),
                apply=lambda url: setattr(record, 'destination_url', url or ''),
            )

        if record.metadata_updated:
            self._mark_skipped(record, StepName.UPDATE_METADATA)
        else:
            await self._run_step(
                record,
                StepName.UPDATE_METADATA,
                lambda: self.operations.update_metadata(repository),
            )

        if record.content_transferred:
            self._mark_skipped(record, StepName.TRANSFER_CONTENT)
        else:
            await self._run_step(
                record,
                StepName.TRANSFER_CONTENT,
                lambda: self.operations.transfer_content(
                    record.local_path, record.destination_url
                ),
            )
        if record.local_path:
            self._discard_mirror(record)

        if record.final_verified:
            self._mark_skipped(record, StepName.VERIFY_FINAL)
        elif self.skip_verify:
            self.logger.info(f'Skipping verification clone of {repository.name}')
            record.mark_milestone(StepName.VERIFY_FINAL)
            self.store.record_step(record, StepName.VERIFY_FINAL, StepStatus.SKIPPED)
        else:
            await self._run_step(
                record,
                StepName.VERIFY_FINAL,
                lambda: self.operations.verify_final(
                    record.destination_url, repository
                ),
            )

    async def _check_destination(
        self, repository: Repository, record: MigrationRecord
    ) -> DestinationCheck:
        """Look up the destination and refuse to overwrite existing content.

        Raises:
            TerminalStepError: For a non-empty destination or declined reuse
            StepFailedError: If the lookup itself fails
        """
        step = StepName.CHECK_DESTINATION
        self.store.record_step(record, step, StepStatus.IN_PROGRESS)

        try:
            check = await self.operations.check_destination(repository)
        except Exception as e:
            raise self._step_failure(record, step, e) from e

        if check.exists and not check.is_empty:
            message = (
                f'Destination repository {repository.name} already exists '
                'and is not empty'
            )
            self._record_terminal(record, step, message)
            raise TerminalStepError(step, message, ErrorCategory.VALIDATION)

        if check.exists and repository.name not in self._reuse_confirmed:
            confirmed = bool(
                self.confirm_reuse and self.confirm_reuse(repository, check)
            )
            if not confirmed:
                message = (
                    f'Reuse of existing empty destination repository '
                    f'{repository.name} was not confirmed'
                )
                self._record_terminal(record, step, message)
                raise TerminalStepError(step, message, ErrorCategory.VALIDATION)
            # Asked once per run of the repository, retries reuse the answer
            self._reuse_confirmed.add(repository.name)
            self.logger.info(
                f'Reusing existing empty destination {check.destination_url}'
            )

        self.store.record_step(record, step, StepStatus.COMPLETED)
        return check

    def _reuse_destination(self, record: MigrationRecord, check: DestinationCheck):
        """Treat a confirmed empty destination as created."""
        step = StepName.CREATE_DESTINATION
        self.store.record_step(record, step, StepStatus.IN_PROGRESS)
        record.destination_url = check.destination_url or ''
        record.mark_milestone(step)
        self.store.record_step(record, step, StepStatus.COMPLETED)

    async def _run_step(
        self,
        record: MigrationRecord,
        step: StepName,
        action: Callable[[], Awaitable[Any]],
        apply: Optional[Callable[[Any], None]] = None,
    ) -> Any:
        """Run one step operation and record its outcome.

        Failures of the transfer and verification steps that match known
        benign noise are recorded as warnings and count as done.

        Args:
            record: Migration record
            step: Step being run
            action: Operation to await
            apply: Stores the operation result on the record

        Returns:
            Operation result, None when a failure was downgraded

        Raises:
            StepFailedError: If the operation failed
        """
        self.store.record_step(record, step, StepStatus.IN_PROGRESS)

        try:
            result = await action()
        except Exception as e:
            message = str(e) or e.__class__.__name__
            if downgrade.applies_to(step) and downgrade.is_downgradable(message):
                warning = downgrade.warning_text(step, message)
                record.mark_milestone(step)
                self.store.add_warning(record, warning)
                self.store.record_step(
                    record, step, StepStatus.WARNING, warnings=[warning]
                )
                self.logger.warning(f'{record.name}: {warning}')
                return None
            raise self._step_failure(record, step, e) from e

        if apply is not None:
            apply(result)
        record.mark_milestone(step)

        warnings = [
            downgrade.warning_text(step, w) for w in getattr(result, 'warnings', [])
        ]
        for warning in warnings:
            self.store.add_warning(record, warning)
            self.logger.warning(f'{record.name}: {warning}')

        status = StepStatus.WARNING if warnings else StepStatus.COMPLETED
        self.store.record_step(record, step, status, warnings=warnings or None)
        self.logger.debug(f'{record.name}: {step.value} {status.value}')
        return result

    def _step_failure(
        self, record: MigrationRecord, step: StepName, error: Exception
    ) -> StepFailedError:
        """Record a failed step and build the error for the retry loop."""
        message = str(error) or error.__class__.__name__
        category = classify(message)
        self.store.record_step(
            record, step, StepStatus.FAILED, error=message, category=category
        )
        self.logger.error(f'{record.name}: {step.value} failed: {message}')
        return StepFailedError(step, message, category)

    def _record_terminal(self, record: MigrationRecord, step: StepName, message: str):
        self.store.record_step(
            record,
            step,
            StepStatus.FAILED,
            error=message,
            category=ErrorCategory.VALIDATION,
        )
        self.logger.error(f'{record.name}: {message}')

    def _mark_skipped(self, record: MigrationRecord, step: StepName) -> None:
        """Record a step as skipped unless it already finished."""
        if not ledger.has_finished(record, step):
            self.store.record_step(record, step, StepStatus.SKIPPED)

    def _discard_mirror(self, record: MigrationRecord) -> None:
        """Remove the local mirror once its content is pushed."""
        if not record.content_transferred:
            return
        try:
            self.operations.discard_local(record.local_path)
        except OSError as e:
            self.store.add_warning(
                record, f'cleanup: could not remove {record.local_path}: {e}'
            )
            self.logger.warning(f'Could not remove mirror {record.local_path}: {e}')
            return
        record.local_path = None
        self.store.update(record)

    def _sweep_mirrors(self) -> None:
        """Remove mirrors left by interrupted runs or unconfigured repositories."""
        keep = [
            record.local_path for record in self.store.ordered() if record.local_path
        ]
        try:
            removed = self.operations.sweep_local(keep)
        except OSError as e:
            self.logger.warning(f'Could not remove leftover mirrors: {e}')
            return
        if removed:
            self.logger.info(f'Removed {len(removed)} leftover mirror(s)')

    def _succeed(self, record: MigrationRecord, clock: float) -> None:
        record.failure_reason = ''
        record.error_category = None
        record.finished_at = datetime.now()
        record.duration_seconds = round(time.monotonic() - clock, 3)
        self.store.update(record)

        if record.warnings:
            self.logger.warning(
                f'{record.name} migrated with {len(record.warnings)} warning(s)'
            )
        else:
            self.logger.info(f'{record.name} migrated successfully')

    def _fail(self, record: MigrationRecord, error: StepFailedError, clock: float):
        record.failure_reason = describe_failure(error.message, error.category)
        record.error_category = error.category
        record.finished_at = datetime.now()
        record.duration_seconds = round(time.monotonic() - clock, 3)
        self.store.update(record)
        self.logger.error(f'{record.name} failed: {record.failure_reason}')

    def report(self, names: Optional[List[str]] = None) -> MigrationSummary:
        """Summarize the outcome of the processed repositories.

        Args:
            names: Repositories to summarize, defaults to those processed by
                the last run, or every stored record

        Returns:
            Migration summary
        """
        if names is None:
            names = self._processed or list(self.store.entity_names)
        records = [self.store.get(name) for name in names]
        return summarize(
            [record for record in records if record is not None], self._started_at
        )

    def resume_plan(self) -> List[ResumeEntry]:
        """List unfinished or failed records and where they resume."""
        return build_resume_plan(self.store.ordered(), self.retry_policy)


def summarize(
    records: List[MigrationRecord], started_at: Optional[datetime] = None
) -> MigrationSummary:
    """Aggregate records into a migration summary."""
    failures = [
        FailureEntry(name=r.name, reason=r.failure_reason, category=r.error_category)
        for r in records
        if r.is_failed
    ]
    warnings = [
        WarningEntry(name=r.name, warnings=list(r.warnings))
        for r in records
        if r.warnings and r.is_complete
    ]
    total = len(records)
    succeeded = sum(1 for r in records if r.is_complete)

    return MigrationSummary(
        total=total,
        succeeded=succeeded,
        failed=len(failures),
        warned=len(warnings),
        success_rate=round(succeeded / total * 100, 1) if total else 0.0,
        started_at=started_at,
        completed_at=datetime.now(),
        failures=failures,
        warnings=warnings,
    )


def build_resume_plan(
    records: List[MigrationRecord], retry_policy: RetryPolicy
) -> List[ResumeEntry]:
    """List unfinished or failed records with the step a new run starts at.

    A failure can resume without a manual fix when its category is retried
    at all by the policy.
    """
    plan = []
    for record in records:
        if record.is_complete:
            continue
        next_step = record.next_step()
        if next_step is None and not record.is_failed:
            continue
        category = record.error_category or ErrorCategory.UNKNOWN
        plan.append(
            ResumeEntry(
                name=record.name,
                next_step=next_step,
                can_resume=(
                    not record.is_failed or retry_policy.max_retries(category) > 0
                ),
                retry_count=record.retry_count,
                failure_reason=record.failure_reason,
                error_category=record.error_category,
            )
        )
    return plan

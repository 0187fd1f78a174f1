"""Durable, debounced storage of migration records."""

import asyncio
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

import yaml
from loguru import logger
from pydantic import ValidationError

from ..models.record import ErrorCategory, MigrationRecord, StepName, StepStatus
from ..models.repository import Repository
from . import ledger
from .exceptions import StateFileError


STATE_FORMAT_VERSION = 1

BACKUP_TIMESTAMP_FORMAT = '%Y%m%dT%H%M%S%f'


class MigrationRecordStore:
    """Name to record mapping persisted as a YAML state file.

    Only configured repositories are kept: records of repositories removed
    from the configuration are dropped on load, and the file always lists
    records in configuration order. Mutations schedule a debounced save;
    ``flush`` writes pending changes immediately.
    """

    def __init__(
        self,
        path: Union[str, Path],
        entity_names: Iterable[str],
        debounce_seconds: float = 2.0,
        backup_retention: int = 5,
    ):
        """Initialize record store.

        Args:
            path: State file path
            entity_names: Configured repository names, in configuration order
            debounce_seconds: Delay collapsing mutations into one write
            backup_retention: Number of backups to keep
        """
        self.path = Path(path)
        self.entity_names: List[str] = list(dict.fromkeys(entity_names))
        self.debounce_seconds = debounce_seconds
        self.backup_retention = backup_retention
        self.records: Dict[str, MigrationRecord] = {}
        self.logger = logger.bind(component='MigrationRecordStore')

        self._dirty = False
        self._timer: Optional[asyncio.TimerHandle] = None

    # Loading

    def load(self) -> Dict[str, MigrationRecord]:
        """Load records from the state file, pruning unconfigured ones.

        Returns:
            Loaded records keyed by repository name

        Raises:
            StateFileError: If the file cannot be read or parsed
        """
        self.records = {}
        if not self.path.exists():
            self.logger.debug(f'No state file at {self.path}, starting fresh')
            return self.records

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                document = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise StateFileError(f'Cannot read state file {self.path}: {e}') from e

        if not isinstance(document, dict):
            raise StateFileError(f'Invalid state file format: {self.path}')

        loaded: Dict[str, MigrationRecord] = {}
        for item in document.get('records') or []:
            try:
                record = MigrationRecord(**item)
            except (TypeError, ValidationError) as e:
                raise StateFileError(
                    f'Invalid record in state file {self.path}: {e}'
                ) from e
            loaded[record.name] = record

        orphans = [name for name in loaded if name not in self.entity_names]
        for name in orphans:
            self.logger.info(f'Removing record of unconfigured repository: {name}')

        for name in self.entity_names:
            if name in loaded:
                self.records[name] = loaded[name]

        if orphans:
            self._dirty = True

        self.logger.info(f'Loaded {len(self.records)} migration records')
        return self.records

    # Access

    def get(self, name: str) -> Optional[MigrationRecord]:
        """Return the record of a repository, if any."""
        return self.records.get(name)

    def ordered(self) -> List[MigrationRecord]:
        """Return records in configuration order."""
        return [self.records[n] for n in self.entity_names if n in self.records]

    def get_or_create(
        self, repository: Repository, destination_group: str = ''
    ) -> MigrationRecord:
        """Return the record of a repository, creating it on first encounter.

        Args:
            repository: Configured repository
            destination_group: Destination group URL

        Returns:
            Migration record

        Raises:
            StateFileError: If the repository is not configured
        """
        if repository.name not in self.entity_names:
            raise StateFileError(
                f'Repository {repository.name} is not in the configuration'
            )

        record = self.records.get(repository.name)
        if record is None:
            record = MigrationRecord(
                name=repository.name,
                description=repository.description,
                source_url=repository.source_url,
                destination_group=destination_group,
            )
            self.records[repository.name] = record
            self.schedule_save()
        return record

    # Mutation

    def record_step(
        self,
        record: MigrationRecord,
        name: StepName,
        status: StepStatus,
        error: Optional[str] = None,
        category: Optional[ErrorCategory] = None,
        warnings: Optional[List[str]] = None,
    ):
        """Update the step ledger of a record and schedule a save."""
        step = ledger.record_step(record, name, status, error, category, warnings)
        self.schedule_save()
        return step

    def add_warning(self, record: MigrationRecord, warning: str) -> None:
        """Add a de-duplicated warning to a record and schedule a save."""
        if record.add_warning(warning):
            record.touch()
            self.schedule_save()

    def update(self, record: MigrationRecord) -> None:
        """Mark a record as modified and schedule a save."""
        record.touch()
        self.schedule_save()

    # Persistence

    def schedule_save(self) -> None:
        """Request a save, collapsing requests within the debounce window.

        Outside a running event loop the save happens immediately.
        """
        self._dirty = True

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.save()
            return

        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.debounce_seconds, self._debounced_save)

    def _debounced_save(self) -> None:
        self._timer = None
        if not self._dirty:
            return
        try:
            self.save()
        except StateFileError as e:
            # Stay dirty so the next flush retries
            self.logger.error(f'Debounced save failed: {e}')

    @property
    def has_pending_changes(self) -> bool:
        """Whether mutations are waiting to be written."""
        return self._dirty

    def flush(self) -> None:
        """Write pending changes now, bypassing the debounce window."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._dirty:
            self.save()

    def to_document(self) -> Dict:
        """Build the serializable state document."""
        return {
            'version': STATE_FORMAT_VERSION,
            'updated_at': datetime.now().isoformat(),
            'records': [record.to_dict() for record in self.ordered()],
        }

    def save(self) -> None:
        """Replace the state file with the current records.

        Raises:
            StateFileError: If the file cannot be written
        """
        document = self.to_document()

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            if self.path.exists() and any(r.is_terminal for r in self.records.values()):
                self._backup()

            fd, tmp_path = tempfile.mkstemp(
                prefix=f'.{self.path.name}.', suffix='.tmp', dir=self.path.parent
            )
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    yaml.safe_dump(
                        document,
                        f,
                        default_flow_style=False,
                        sort_keys=False,
                        allow_unicode=True,
                        indent=2,
                    )
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StateFileError(f'Cannot write state file {self.path}: {e}') from e

        self._dirty = False
        self.logger.debug(f'Saved {len(self.records)} records to {self.path}')

    # Backups

    def _backup_glob(self) -> str:
        return f'{self.path.stem}.backup.*{self.path.suffix}'

    def backups(self) -> List[Path]:
        """Return existing backups, oldest first."""
        return sorted(self.path.parent.glob(self._backup_glob()))

    def _backup(self) -> Path:
        timestamp = datetime.now().strftime(BACKUP_TIMESTAMP_FORMAT)
        backup_path = self.path.with_name(
            f'{self.path.stem}.backup.{timestamp}{self.path.suffix}'
        )
        shutil.copy2(self.path, backup_path)
        self.logger.debug(f'Backed up state file to {backup_path}')
        self._prune_backups()
        return backup_path

    def _prune_backups(self) -> None:
        backups = self.backups()
        excess = len(backups) - self.backup_retention
        for old in backups[: max(excess, 0)]:
            old.unlink()
            self.logger.debug(f'Removed old backup {old}')

"""Migration engine - main entry point for migration operations."""

import asyncio
import atexit
import signal
import sys
import tempfile
from pathlib import Path
from typing import Callable, List, Optional

from loguru import logger
from pydantic import BaseModel, Field

from ..api.client import GitLabClient
from ..api.exceptions import GitLabAPIError
from ..api.projects import DEVELOPER_ACCESS, ProjectsAPI
from ..config.config import Config
from ..git.mirror import GitMirror
from ..git.runner import GitCommandError
from ..models.repository import DestinationCheck, Repository
from .exceptions import ConfigurationError
from .operations import GitLabOperations, MigrationOperations
from .orchestrator import (
    ConfirmReuse,
    MigrationOrchestrator,
    MigrationSummary,
    ResumeEntry,
)
from .retry import RetryPolicy
from .store import MigrationRecordStore


class PrecheckResult(BaseModel):
    """Outcome of the checks run before migrating."""

    success: bool = Field(default=True, description='All checks passed')
    errors: List[str] = Field(default_factory=list, description='Failed checks')
    details: List[str] = Field(default_factory=list, description='Passed checks')


def confirmation_policy(
    policy: str,
    prompt: Optional[Callable[[str], bool]] = None,
    interactive: Optional[bool] = None,
) -> ConfirmReuse:
    """Build the decision used for existing empty destinations.

    Args:
        policy: ``prompt``, ``proceed`` or ``abort``
        prompt: Asks the operator a yes/no question
        interactive: Whether a terminal is attached, detected when omitted

    Returns:
        Callable deciding whether to reuse a destination
    """
    if interactive is None:
        interactive = sys.stdin.isatty()

    def decide(repository: Repository, check: DestinationCheck) -> bool:
        if policy == 'proceed':
            return True
        if policy == 'abort' or prompt is None or not interactive:
            logger.warning(
                f'Existing empty destination for {repository.name} not reused '
                f'(policy: {policy})'
            )
            return False
        return prompt(
            f'Destination {check.destination_url or repository.name} already exists '
            'and is empty. Push into it?'
        )

    return decide


class MigrationEngine:
    """Main migration engine that coordinates the entire migration process."""

    def __init__(
        self,
        config: Config,
        token: Optional[str] = None,
        operations: Optional[MigrationOperations] = None,
        confirm_reuse: Optional[ConfirmReuse] = None,
    ):
        """Initialize migration engine.

        Args:
            config: Migration configuration
            token: Access token overriding the configured one
            operations: Operations to use instead of GitLab and git
            confirm_reuse: Decision for existing empty destinations
        """
        self.config = config
        self.logger = logger.bind(component='MigrationEngine')

        token = config.resolve_token(token)
        self.config.destination.token = token

        self.client: Optional[GitLabClient] = None
        self.projects: Optional[ProjectsAPI] = None
        self.mirror = GitMirror(
            work_dir=config.git.work_dir,
            verify_dir=config.git.verify_dir,
            token=token,
            timeout=config.git.timeout,
        )

        if operations is None:
            if not token:
                raise ConfigurationError(
                    'No access token: use --token, the config file or GITLAB_ACCESS_TOKEN'
                )
            self.client = GitLabClient(config.destination)
            self.projects = ProjectsAPI(
                self.client,
                config.destination.group_path,
                visibility=config.destination.visibility,
                prefer_http=config.destination.uses_https,
            )
            operations = GitLabOperations(self.projects, self.mirror)

        self.store = MigrationRecordStore(
            config.migration.state_file,
            config.repository_names,
            debounce_seconds=config.migration.save_debounce_seconds,
            backup_retention=config.migration.backup_retention,
        )
        self.store.load()

        self.orchestrator = MigrationOrchestrator(
            operations,
            self.store,
            retry_policy=RetryPolicy(),
            confirm_reuse=confirm_reuse
            or confirmation_policy(config.migration.empty_destination),
            skip_verify=config.migration.skip_verify,
            destination_group=config.destination.group_url,
        )
        self._handlers_installed = False

    def install_exit_handlers(self) -> None:
        """Flush the record store on SIGTERM and interpreter exit."""
        if self._handlers_installed:
            return

        def on_terminate(signum, frame):
            self.logger.warning('Received termination signal, saving state')
            self.store.flush()
            sys.exit(128 + signum)

        signal.signal(signal.SIGTERM, on_terminate)
        atexit.register(self.store.flush)
        self._handlers_installed = True

    async def migrate(self, repositories: List[Repository]) -> MigrationSummary:
        """Migrate repositories and return the summary.

        Args:
            repositories: Repositories to migrate

        Returns:
            Migration summary
        """
        self.logger.info('Starting GitLab migration')

        try:
            return await self.orchestrator.run_pipeline(repositories)
        finally:
            self.store.flush()
            self.close()

    def resume_plan(self) -> List[ResumeEntry]:
        """List repositories a new run would resume."""
        return self.orchestrator.resume_plan()

    def run_prechecks(self) -> PrecheckResult:
        """Check the destination, the token, git and the work directory.

        Returns:
            Pre-check result with every failed check
        """
        result = PrecheckResult()

        if self.client is not None and self.projects is not None:
            self._check_api(result)

        try:
            version = asyncio.run(self.mirror.check_available())
            result.details.append(version)
        except GitCommandError as e:
            result.errors.append(f'Git is not installed or not on PATH: {e}')

        work_dir = Path(self.config.git.work_dir)
        try:
            work_dir.mkdir(parents=True, exist_ok=True)
            with tempfile.TemporaryFile(dir=work_dir):
                pass
            result.details.append(f'Work directory writable: {work_dir}')
        except OSError as e:
            result.errors.append(f'Work directory {work_dir} is not writable: {e}')

        result.success = not result.errors
        for error in result.errors:
            self.logger.error(f'Pre-check failed: {error}')
        return result

    def _check_api(self, result: PrecheckResult) -> None:
        try:
            version = self.client.get_version()
            result.details.append(f'GitLab {version or "(unknown version)"}')
        except GitLabAPIError as e:
            result.errors.append(f'Cannot reach GitLab at {self.client.base_url}: {e}')
            return

        try:
            user = self.projects.current_user()
            result.details.append(
                f'Authenticated as {user.get("name")} ({user.get("username")})'
            )
        except GitLabAPIError as e:
            result.errors.append(f'Access token rejected: {e}')
            return

        try:
            group = self.projects.group_info()
        except GitLabAPIError as e:
            result.errors.append(
                f'Destination group {self.projects.group_path} is not accessible: {e}'
            )
            return

        result.details.append(f'Destination group: {group.get("full_path")}')
        level = ProjectsAPI.access_level(group)
        if level is not None and level < DEVELOPER_ACCESS:
            result.errors.append(
                'Developer access or higher to the destination group is required '
                'to create projects'
            )

    def close(self) -> None:
        """Release network resources."""
        if self.client is not None:
            self.client.close()

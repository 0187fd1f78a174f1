"""External operations driven by the migration pipeline."""

from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from ..api.projects import ProjectsAPI
from ..git.mirror import GitMirror
from ..models.repository import DestinationCheck, Repository, TransferResult


class MigrationOperations(ABC):
    """Operations the orchestrator invokes for each repository.

    Any raised exception is a step failure; its string form is the failure
    description used for classification.
    """

    @abstractmethod
    async def check_destination(self, repository: Repository) -> DestinationCheck:
        """Look up the repository in the destination group."""
        pass

    @abstractmethod
    async def fetch_source(self, repository: Repository) -> str:
        """Fetch source content and return the local mirror path."""
        pass

    @abstractmethod
    async def create_destination(self, repository: Repository) -> str:
        """Create the destination project and return its clone URL."""
        pass

    @abstractmethod
    async def update_metadata(self, repository: Repository) -> None:
        """Update destination project metadata."""
        pass

    @abstractmethod
    async def transfer_content(
        self, local_path: str, destination_url: str
    ) -> TransferResult:
        """Transfer the local mirror to the destination."""
        pass

    @abstractmethod
    async def verify_final(self, destination_url: str, repository: Repository) -> None:
        """Verify the destination by cloning it."""
        pass

    @abstractmethod
    def has_local(self, local_path: Optional[str]) -> bool:
        """Whether a local mirror is still present."""
        pass

    @abstractmethod
    def discard_local(self, local_path: Optional[str]) -> None:
        """Remove a local mirror."""
        pass

    def sweep_local(self, keep: Iterable[str]) -> List[str]:
        """Remove leftover local mirrors not listed in keep.

        Returns:
            Paths of the removed mirrors
        """
        return []


class GitLabOperations(MigrationOperations):
    """Operations backed by the GitLab REST API and git subprocesses."""

    def __init__(self, projects: ProjectsAPI, mirror: GitMirror):
        """Initialize GitLab operations.

        Args:
            projects: Destination group projects API
            mirror: Git mirror helper
        """
        self.projects = projects
        self.mirror = mirror

    async def check_destination(self, repository: Repository) -> DestinationCheck:
        return await self.projects.check_destination(repository)

    async def fetch_source(self, repository: Repository) -> str:
        return await self.mirror.fetch_source(repository)

    async def create_destination(self, repository: Repository) -> str:
        return await self.projects.create_project(repository)

    async def update_metadata(self, repository: Repository) -> None:
        await self.projects.update_description(repository)

    async def transfer_content(
        self, local_path: str, destination_url: str
    ) -> TransferResult:
        return await self.mirror.transfer_content(local_path, destination_url)

    async def verify_final(self, destination_url: str, repository: Repository) -> None:
        await self.mirror.verify_final(destination_url, repository)

    def has_local(self, local_path: Optional[str]) -> bool:
        return self.mirror.has_local(local_path)

    def discard_local(self, local_path: Optional[str]) -> None:
        self.mirror.discard_local(local_path)

    def sweep_local(self, keep: Iterable[str]) -> List[str]:
        return self.mirror.sweep(keep)

"""Destination group project operations."""

from typing import Any, Dict, Optional
from urllib.parse import quote

from ..models.repository import DEFAULT_DESCRIPTION, DestinationCheck, Repository
from ..utils.logging import get_logger
from .client import GitLabClient
from .exceptions import GitLabAPIError, GitLabNotFoundError


DEVELOPER_ACCESS = 30


def encode_path(path: str) -> str:
    """URL-encode a namespaced path for use as an API id."""
    return quote(path.strip('/'), safe='')


class ProjectsAPI:
    """Projects of the destination group."""

    def __init__(
        self,
        client: GitLabClient,
        group_path: str,
        visibility: str = 'internal',
        prefer_http: bool = True,
    ):
        """Initialize projects API.

        Args:
            client: GitLab API client
            group_path: Full path of the destination group
            visibility: Visibility of created projects
            prefer_http: Use HTTP clone URLs instead of SSH ones
        """
        self.client = client
        self.group_path = group_path.strip('/')
        self.visibility = visibility
        self.prefer_http = prefer_http
        self.logger = get_logger('ProjectsAPI')
        self._group_id: Optional[int] = None

    def project_path(self, name: str) -> str:
        """Full path of a project in the destination group."""
        return f'{self.group_path}/{name}'

    def clone_url(self, project: Dict[str, Any]) -> str:
        """Pick the clone URL of a project."""
        if self.prefer_http:
            return project.get('http_url_to_repo') or ''
        return project.get('ssh_url_to_repo') or ''

    # Pre-check helpers (synchronous)

    def group_info(self) -> Dict[str, Any]:
        """Fetch the destination group.

        Raises:
            GitLabAPIError: If the group is missing or inaccessible
        """
        response = self.client.get(f'/groups/{encode_path(self.group_path)}')
        group = response.data or {}
        self._group_id = group.get('id', self._group_id)
        return group

    @staticmethod
    def access_level(group: Dict[str, Any]) -> Optional[int]:
        """Return the current user's access level reported for a group."""
        permissions = group.get('permissions') or {}
        group_access = permissions.get('group_access') or {}
        return group_access.get('access_level')

    def current_user(self) -> Dict[str, Any]:
        """Fetch the user owning the access token."""
        return self.client.get('/user').data or {}

    # Pipeline operations

    async def get_group_id(self) -> int:
        """Resolve and cache the destination group id."""
        if self._group_id is None:
            response = await self.client.get_async(
                f'/groups/{encode_path(self.group_path)}'
            )
            self._group_id = (response.data or {}).get('id')
            if self._group_id is None:
                raise GitLabAPIError(
                    'API response for the destination group has no id'
                )
        return self._group_id

    async def check_destination(self, repository: Repository) -> DestinationCheck:
        """Look up a repository in the destination group.

        Args:
            repository: Repository to look up

        Returns:
            Whether the project exists, whether it has commits, and its URL
        """
        project_id = encode_path(self.project_path(repository.name))
        try:
            response = await self.client.get_async(f'/projects/{project_id}')
        except GitLabNotFoundError:
            return DestinationCheck(exists=False)

        project = response.data or {}
        try:
            commits = await self.client.get_async(
                f'/projects/{project_id}/repository/commits', params={'per_page': 1}
            )
            is_empty = not commits.data
        except GitLabNotFoundError:
            # Projects without a default branch have no commit listing
            is_empty = True

        self.logger.debug(
            f'Destination {self.project_path(repository.name)} exists '
            f'(empty: {is_empty})'
        )
        return DestinationCheck(
            exists=True, is_empty=is_empty, destination_url=self.clone_url(project)
        )

    async def create_project(self, repository: Repository) -> str:
        """Create the destination project.

        Returns:
            Clone URL of the new project
        """
        namespace_id = await self.get_group_id()
        response = await self.client.post_async(
            '/projects',
            data={
                'name': repository.name,
                'path': repository.name,
                'namespace_id': namespace_id,
                'description': repository.description,
                'visibility': self.visibility,
            },
        )
        url = self.clone_url(response.data or {})
        self.logger.info(f'Created project {self.project_path(repository.name)}')
        return url

    async def update_description(self, repository: Repository) -> None:
        """Set the destination project description."""
        description = (repository.description or '').strip()
        if not description or description == DEFAULT_DESCRIPTION:
            self.logger.debug(f'No description to set for {repository.name}')
            return

        project_id = encode_path(self.project_path(repository.name))
        await self.client.put_async(
            f'/projects/{project_id}', data={'description': description}
        )

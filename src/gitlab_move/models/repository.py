"""Repository entity models."""

import re
from typing import List, Optional

from pydantic import BaseModel, Field, validator


# https, ssh:// and scp-like git@ remotes
GIT_URL_PATTERN = re.compile(
    r'^(https?://|ssh://git@|git@)[\w.-]+(:\d+)?[:/][\w.-]+(/[\w.-]+)*/[\w.-]+(\.git)?/?$'
)

SAFE_NAME_PATTERN = re.compile(r'^[a-zA-Z0-9_-]+$')

DEFAULT_DESCRIPTION = 'No description'

MAX_DESCRIPTION_LENGTH = 2000


def is_valid_git_url(url: str) -> bool:
    """Check whether a string looks like a clonable git remote."""
    return bool(GIT_URL_PATTERN.match(url or ''))


def repo_name_from_url(url: str) -> str:
    """Extract the repository name from a git remote URL.

    Args:
        url: Git remote URL

    Returns:
        Last path segment without the ``.git`` suffix
    """
    tail = url.rstrip('/').replace(':', '/').split('/')[-1]
    if tail.endswith('.git'):
        tail = tail[: -len('.git')]
    return tail


class Repository(BaseModel):
    """A repository to move to the destination group."""

    name: str = Field(..., description='Destination project name and path')
    description: str = Field(
        default=DEFAULT_DESCRIPTION, description='Destination project description'
    )
    source_url: str = Field(..., description='Git URL of the source repository')

    class Config:
        """Pydantic configuration."""

        frozen = True

    @validator('name')
    def validate_name(cls, v):
        """Validate the repository name is present."""
        v = (v or '').strip()
        if not v:
            raise ValueError('Repository name cannot be empty')
        return v

    @validator('description', pre=True, always=True)
    def default_description(cls, v):
        """Fall back to a placeholder when no description is given."""
        if v is None or not str(v).strip():
            return DEFAULT_DESCRIPTION
        return str(v).strip()

    @validator('source_url')
    def validate_source_url(cls, v):
        """Validate the source URL is a git remote."""
        v = (v or '').strip()
        if not is_valid_git_url(v):
            raise ValueError(f'Invalid source repository URL: {v}')
        return v

    @property
    def source_name(self) -> str:
        """Repository name as it appears in the source URL."""
        return repo_name_from_url(self.source_url)


class DestinationCheck(BaseModel):
    """Outcome of looking up a repository in the destination group."""

    exists: bool = Field(..., description='A project with this path exists')
    is_empty: bool = Field(default=False, description='Existing project has no commits')
    destination_url: Optional[str] = Field(
        default=None, description='Clone URL of the existing project'
    )


class TransferResult(BaseModel):
    """Outcome of pushing mirrored content to the destination."""

    warnings: List[str] = Field(
        default_factory=list, description='Non-fatal notices from the transfer'
    )

"""GitLab REST API access."""

from .client import GitLabClient
from .exceptions import (
    GitLabAPIError,
    GitLabAuthenticationError,
    GitLabConnectionError,
    GitLabNotFoundError,
    GitLabPermissionError,
    GitLabRateLimitError,
    GitLabValidationError,
)
from .projects import ProjectsAPI

__all__ = [
    'GitLabClient',
    'ProjectsAPI',
    'GitLabAPIError',
    'GitLabAuthenticationError',
    'GitLabConnectionError',
    'GitLabNotFoundError',
    'GitLabPermissionError',
    'GitLabRateLimitError',
    'GitLabValidationError',
]

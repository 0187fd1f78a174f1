"""Errors raised by the GitLab API client.

Messages name the HTTP status but never the request path, so a repository
name cannot change how a failure is classified.
"""

from typing import Any, Dict, Optional, Type


class GitLabAPIError(Exception):
    """A GitLab API request failed."""

    # Wording used by ``for_status``
    summary = 'request failed'
    include_detail = True

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
    ):
        """Initialize GitLab API error.

        Args:
            message: Error message, mentioning the HTTP status when known
            status_code: HTTP status code
            response_data: Response data from API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data

    @classmethod
    def for_status(cls, status_code: int, detail: str = '', **kwargs: Any):
        """Build the error for an HTTP status.

        Args:
            status_code: HTTP status code
            detail: Server-provided explanation
            **kwargs: Additional constructor arguments
        """
        message = f'API {cls.summary} (HTTP {status_code})'
        if detail and cls.include_detail:
            message = f'{message}: {detail}'
        return cls(message, status_code=status_code, **kwargs)


class GitLabConnectionError(GitLabAPIError):
    """The GitLab server could not be reached or did not answer in time."""

    pass


class GitLabAuthenticationError(GitLabAPIError):
    """The access token is missing, expired or revoked."""

    summary = 'request unauthorized'
    include_detail = False


class GitLabPermissionError(GitLabAPIError):
    """The token may not act on the group or project."""

    summary = 'request forbidden'


class GitLabNotFoundError(GitLabAPIError):
    """The group or project does not exist."""

    summary = 'resource not found'
    include_detail = False


class GitLabValidationError(GitLabAPIError):
    """GitLab rejected the submitted project attributes."""

    summary = 'request rejected'


class GitLabRateLimitError(GitLabAPIError):
    """Too many requests; GitLab asks to wait before the next one."""

    summary = 'rate limit exceeded'

    def __init__(self, message: str, retry_after: int = 60, **kwargs):
        """Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds to wait before retry
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


STATUS_ERRORS: Dict[int, Type[GitLabAPIError]] = {
    400: GitLabValidationError,
    401: GitLabAuthenticationError,
    403: GitLabPermissionError,
    404: GitLabNotFoundError,
    409: GitLabValidationError,
    422: GitLabValidationError,
    429: GitLabRateLimitError,
}

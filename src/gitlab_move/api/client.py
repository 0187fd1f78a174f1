"""GitLab API client implementation."""

import asyncio
import json
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel

from .. import __version__
from ..config.config import DestinationConfig
from .exceptions import (
    STATUS_ERRORS,
    GitLabAPIError,
    GitLabAuthenticationError,
    GitLabConnectionError,
    GitLabRateLimitError,
)


USER_AGENT = f'gitlab-move/{__version__}'


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any = None
    headers: Dict[str, str] = {}
    success: bool


def _error_message(data: Any) -> str:
    """Extract GitLab's error message from a response body."""
    if isinstance(data, dict):
        message = data.get('message') or data.get('error') or ''
        if isinstance(message, dict):
            message = '; '.join(
                f'{key} {" ".join(map(str, value)) if isinstance(value, list) else value}'
                for key, value in message.items()
            )
        return str(message)
    if isinstance(data, str):
        return data.strip()[:200]
    return ''


def error_for_status(
    status: int, headers: Dict[str, str], data: Any = None
) -> Optional[GitLabAPIError]:
    """Build the exception matching an HTTP error status.

    Args:
        status: HTTP status code
        headers: Response headers
        data: Parsed response body

    Returns:
        Exception to raise, or None for a successful status
    """
    if status < 400:
        return None

    error_class = STATUS_ERRORS.get(status, GitLabAPIError)

    if error_class is GitLabRateLimitError:
        retry_after = int(headers.get('Retry-After', 60))
        return GitLabRateLimitError.for_status(
            status,
            f'retry after {retry_after} seconds',
            retry_after=retry_after,
        )

    return error_class.for_status(
        status,
        _error_message(data),
        response_data=data if isinstance(data, dict) else None,
    )


class GitLabClient:
    """GitLab API client with token authentication."""

    def __init__(self, config: DestinationConfig):
        """Initialize GitLab client.

        Args:
            config: Destination GitLab configuration
        """
        if not config.token:
            raise GitLabAuthenticationError('No access token provided')

        self.config = config
        self.base_url = config.base_url + '/api/v4'
        self.timeout = config.timeout
        self.session = requests.Session()
        self.session.headers.update(self._headers())

        logger.info(f'Initialized GitLab client for {config.base_url}')

    def _headers(self) -> Dict[str, str]:
        return {
            'Private-Token': self.config.token,
            'Content-Type': 'application/json',
            'User-Agent': USER_AGENT,
        }

    def _build_url(self, endpoint: str) -> str:
        """Build full API URL from endpoint.

        Args:
            endpoint: API endpoint path

        Returns:
            Full API URL
        """
        return urljoin(self.base_url + '/', endpoint.lstrip('/'))

    def _handle_response(self, response: requests.Response) -> APIResponse:
        """Handle API response and convert to standard format.

        Args:
            response: Raw HTTP response

        Returns:
            Standardized API response

        Raises:
            GitLabAPIError: For various API errors
        """
        headers = dict(response.headers)

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = response.text

        error = error_for_status(response.status_code, headers, data)
        if error:
            raise error

        return APIResponse(
            status_code=response.status_code,
            data=data,
            headers=headers,
            success=200 <= response.status_code < 300,
        )

    async def _make_request_async(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> APIResponse:
        """Make asynchronous API request.

        Args:
            method: HTTP method
            endpoint: API endpoint
            params: Query parameters
            data: Request body data

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        timeout = aiohttp.ClientTimeout(total=self.timeout)

        try:
            async with aiohttp.ClientSession(
                headers=self._headers(), timeout=timeout
            ) as session:
                async with session.request(
                    method=method, url=url, params=params, json=data
                ) as response:
                    response_headers = dict(response.headers)

                    response_text = await response.text()
                    try:
                        response_data = (
                            json.loads(response_text) if response_text else None
                        )
                    except ValueError:
                        response_data = response_text

                    error = error_for_status(
                        response.status, response_headers, response_data
                    )
                    if error:
                        raise error

                    return APIResponse(
                        status_code=response.status,
                        data=response_data,
                        headers=response_headers,
                        success=200 <= response.status < 300,
                    )

        except asyncio.TimeoutError:
            logger.error(f'{method} request timed out after {self.timeout}s')
            raise GitLabConnectionError(
                f'Network timeout after {self.timeout} seconds'
            )
        except aiohttp.ClientError as e:
            logger.error(f'Network error during API request: {e}')
            raise GitLabConnectionError(f'Network error: {e}')

    def get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None, **kwargs
    ) -> APIResponse:
        """Make GET request.

        Args:
            endpoint: API endpoint
            params: Query parameters
            **kwargs: Additional request arguments

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        kwargs.setdefault('timeout', self.timeout)

        try:
            response = self.session.get(url, params=params, **kwargs)
        except requests.Timeout:
            logger.error(f'GET request timed out after {self.timeout}s')
            raise GitLabConnectionError(
                f'Network timeout after {self.timeout} seconds'
            )
        except requests.RequestException as e:
            logger.error(f'Network error during GET request: {e}')
            raise GitLabConnectionError(f'Network error: {e}')
        return self._handle_response(response)

    async def get_async(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        """Make asynchronous GET request."""
        return await self._make_request_async('GET', endpoint, params=params)

    async def post_async(
        self, endpoint: str, data: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        """Make asynchronous POST request."""
        return await self._make_request_async('POST', endpoint, data=data)

    async def put_async(
        self, endpoint: str, data: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        """Make asynchronous PUT request."""
        return await self._make_request_async('PUT', endpoint, data=data)

    def test_connection(self) -> bool:
        """Test connection to GitLab instance.

        Returns:
            True if the token is accepted, False otherwise
        """
        try:
            response = self.get('/user')
            return response.success
        except GitLabAPIError as e:
            logger.error(f'Connection test failed: {e}')
            return False

    def get_version(self) -> Optional[str]:
        """Get GitLab version.

        Returns:
            GitLab version string or None if unavailable
        """
        response = self.get('/version')
        if response.success and isinstance(response.data, dict):
            return response.data.get('version')
        return None

    def close(self):
        """Close the client session."""
        self.session.close()
        logger.debug('GitLab client session closed')

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

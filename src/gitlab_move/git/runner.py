"""Asynchronous git subprocess execution."""

import asyncio
import re
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from loguru import logger


_CREDENTIALS = re.compile(r'(https?://)[^/@\s]+@')


class GitCommandError(Exception):
    """A git command exited with an error or timed out."""

    def __init__(
        self, command: str, stderr: str = '', returncode: Optional[int] = None
    ):
        """Initialize git command error.

        Args:
            command: Command line with credentials masked
            stderr: Error output with credentials masked
            returncode: Exit status, None on timeout
        """
        detail = stderr.strip() or 'no error output'
        if returncode is None:
            message = f'Git command failed: {command}: {detail}'
        else:
            message = f'Git command failed (exit {returncode}): {command}: {detail}'
        super().__init__(message)
        self.command = command
        self.stderr = stderr
        self.returncode = returncode


def mask_credentials(text: str, secrets: Iterable[str] = ()) -> str:
    """Hide URL credentials and known secrets in text."""
    text = _CREDENTIALS.sub(r'\1***@', text or '')
    for secret in secrets:
        if secret:
            text = text.replace(secret, '***')
    return text


def authenticated_url(url: str, token: Optional[str]) -> str:
    """Embed an access token into an HTTP(S) remote URL.

    SSH remotes and URLs that already carry credentials are returned as is.
    """
    if not token:
        return url
    parts = urlsplit(url)
    if parts.scheme not in ('http', 'https') or '@' in parts.netloc:
        return url
    return urlunsplit(parts._replace(netloc=f'oauth2:{token}@{parts.netloc}'))


async def run_git(
    args: List[str],
    cwd: Optional[str] = None,
    timeout: Optional[float] = None,
    secrets: Iterable[str] = (),
) -> Tuple[str, str]:
    """Run a git command.

    Args:
        args: Arguments after ``git``
        cwd: Working directory
        timeout: Seconds before the process is killed
        secrets: Strings to mask in logs and errors

    Returns:
        Decoded stdout and stderr

    Raises:
        GitCommandError: On a non-zero exit status or a timeout
    """
    secrets = list(secrets)
    cmd = ['git'] + list(args)
    masked_cmd = mask_credentials(' '.join(cmd), secrets)
    logger.debug(f'Executing git command: {masked_cmd}')

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
    except OSError as e:
        raise GitCommandError(masked_cmd, mask_credentials(str(e), secrets)) from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise GitCommandError(masked_cmd, f'timed out after {timeout} seconds')

    stdout_text = mask_credentials(stdout.decode(errors='replace'), secrets)
    stderr_text = mask_credentials(stderr.decode(errors='replace'), secrets)

    logger.debug(f'Git command return code: {process.returncode}')
    if stderr_text:
        logger.debug(f'Git stderr: {stderr_text}')

    if process.returncode != 0:
        raise GitCommandError(masked_cmd, stderr_text, process.returncode)

    return stdout_text, stderr_text

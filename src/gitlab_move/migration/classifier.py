"""Error classification for failed migration steps.

Messages are matched case-insensitively against ordered pattern groups. The
first group with a matching substring decides the category, so the order of
``PATTERN_GROUPS`` is part of the behavior: a message mentioning both
``push`` and ``timeout`` is a transfer error, and ``403`` is claimed by the
API group before the permission group can see it.
"""

from typing import List, Optional, Tuple

from ..models.record import ErrorCategory


PATTERN_GROUPS: List[Tuple[ErrorCategory, Tuple[str, ...]]] = [
    (
        ErrorCategory.TRANSFER_OPERATION,
        (
            'git ',
            'git:',
            'clone',
            'push',
            'pull',
            'fetch',
            'remote',
            'repository not found',
            'authentication failed',
            'not a git repository',
            'refspec',
            'pathspec',
            'could not read from remote repository',
            'unable to access',
            'ssh: connect to host',
            'host key verification failed',
            'permission denied (publickey)',
            'branch not found',
            'ref does not exist',
            'non-fast-forward',
            'merge conflict',
        ),
    ),
    (
        ErrorCategory.API_OPERATION,
        (
            'api',
            'http',
            '401',
            '403',
            '404',
            '409',
            '422',
            '500',
            '502',
            '503',
            'unauthorized',
            'forbidden',
            'bad gateway',
            'service unavailable',
            'internal server error',
            'already exists',
            'has already been taken',
            'invalid token',
            'token expired',
            'insufficient scope',
        ),
    ),
    (
        ErrorCategory.NETWORK,
        (
            'network',
            'timeout',
            'timed out',
            'connection',
            'dns',
            'enotfound',
            'econnrefused',
            'econnreset',
            'etimedout',
            'socket hang up',
            'unreachable',
            'could not resolve host',
            'name resolution',
            'cannot connect to host',
            'server disconnected',
        ),
    ),
    (
        ErrorCategory.FILESYSTEM,
        (
            'ebusy',
            'resource busy or locked',
            'being used by another process',
            'cannot delete',
            'cannot remove',
            'directory not empty',
            'enoent',
            'no such file or directory',
            'eacces',
            'permission denied',
            'eperm',
            'operation not permitted',
            'emfile',
            'too many open files',
            'enospc',
            'no space left on device',
            'disk full',
            'cleanup failed',
            'failed to delete',
            'failed to remove',
        ),
    ),
    (
        ErrorCategory.PERMISSION,
        (
            'permission',
            'access',
            'denied',
            'insufficient privileges',
            'not authorized',
            'not allowed',
            'insufficient permissions',
            'access level',
        ),
    ),
    (
        ErrorCategory.VALIDATION,
        (
            'validation',
            'invalid',
            'malformed',
            'format',
            'bad request',
            'unprocessable entity',
            'missing required',
            'is required',
            'must be',
            'cannot be blank',
            'is too long',
            'is too short',
            'contains invalid characters',
        ),
    ),
]

MAX_MESSAGE_LENGTH = 200

# (category, trigger substring or None for the fallback, hint)
HINTS: List[Tuple[ErrorCategory, Optional[str], str]] = [
    (ErrorCategory.TRANSFER_OPERATION, 'authentication failed',
     'Check that the access token is valid.'),
    (ErrorCategory.TRANSFER_OPERATION, 'clone',
     'Check the source repository URL and network connectivity.'),
    (ErrorCategory.TRANSFER_OPERATION, 'push',
     'Check write access to the destination project and network connectivity.'),
    (ErrorCategory.TRANSFER_OPERATION, 'fetch',
     'Check the repository URL and network connectivity.'),
    (ErrorCategory.TRANSFER_OPERATION, None, 'Check the git output above.'),
    (ErrorCategory.API_OPERATION, '401',
     'Check that the access token is valid and has the api scope.'),
    (ErrorCategory.API_OPERATION, '403',
     'Make sure the access token may create and manage projects in the group.'),
    (ErrorCategory.API_OPERATION, '404',
     'Check that the destination group path is correct.'),
    (ErrorCategory.API_OPERATION, '409',
     'The destination project may already exist, check the repository name.'),
    (ErrorCategory.API_OPERATION, '422',
     'Check that the repository name and description are acceptable.'),
    (ErrorCategory.API_OPERATION, '500',
     'The GitLab server may be temporarily unavailable, try again later.'),
    (ErrorCategory.API_OPERATION, None, 'Check the GitLab API response.'),
    (ErrorCategory.NETWORK, 'timeout',
     'Check the network connection or try again later.'),
    (ErrorCategory.NETWORK, 'timed out',
     'Check the network connection or try again later.'),
    (ErrorCategory.NETWORK, 'resolve',
     'DNS resolution failed, check the GitLab host name.'),
    (ErrorCategory.NETWORK, 'refused',
     'Connection refused, check that the GitLab server is reachable.'),
    (ErrorCategory.NETWORK, None, 'Check the network connection.'),
    (ErrorCategory.PERMISSION, 'access denied',
     'Check the access token permissions or contact an administrator.'),
    (ErrorCategory.PERMISSION, None,
     'Make sure you may create projects in the destination group.'),
    (ErrorCategory.VALIDATION, 'already exists',
     'Remove the existing destination project or rename the repository.'),
    (ErrorCategory.VALIDATION, None, 'Check the configured repository values.'),
    (ErrorCategory.FILESYSTEM, 'no space left',
     'Free disk space in the work directory.'),
    (ErrorCategory.FILESYSTEM, None,
     'Check the work directory and that no other process holds its files.'),
]


def classify(message: str) -> ErrorCategory:
    """Classify a raw failure description.

    Args:
        message: Failure description

    Returns:
        First matching error category, or ``unknown``
    """
    lowered = (message or '').lower()
    for category, patterns in PATTERN_GROUPS:
        if any(pattern in lowered for pattern in patterns):
            return category
    return ErrorCategory.UNKNOWN


def describe_failure(message: str, category: ErrorCategory) -> str:
    """Build a human-readable, category-tagged failure reason."""
    message = (message or '').strip()
    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[:MAX_MESSAGE_LENGTH] + '...'
    lowered = message.lower()

    hint = ''
    for hint_category, trigger, text in HINTS:
        if hint_category != category:
            continue
        if trigger is None or trigger in lowered:
            hint = text
            break

    reason = f'[{category.value}] {message}'
    if hint:
        reason = f'{reason} ({hint})'
    return reason

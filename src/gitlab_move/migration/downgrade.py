"""Known-benign failure messages that are recorded as warnings."""

from ..models.record import StepName


# Hidden and protected reference rejections reported by a mirror push
REF_REJECTION_PATTERNS = (
    'deny updating a hidden ref',
    'hidden ref',
    'refs/keep-around',
    'refs/merge-requests',
    'refs/pipelines',
    'refs/environments',
    'refusing to update checked out branch',
    'remote rejected',
    'pre-receive hook declined',
    'hook declined',
    'protected branch',
    'non-fast-forward',
    'failed to push some refs',
    'updates were rejected',
    'fetch first',
    'everything up-to-date',
    'everything up to date',
)

# Lock contention and best-effort cleanup noise
FILESYSTEM_PATTERNS = (
    'ebusy',
    'resource busy or locked',
    'being used by another process',
    'cannot delete',
    'cannot remove',
    'directory not empty',
    'enoent',
    'no such file or directory',
    'cleanup failed',
    'failed to delete',
    'failed to remove',
)

DOWNGRADABLE_PATTERNS = REF_REJECTION_PATTERNS + FILESYSTEM_PATTERNS

DOWNGRADABLE_STEPS = (StepName.TRANSFER_CONTENT, StepName.VERIFY_FINAL)

MAX_WARNING_LENGTH = 500


def is_downgradable(message: str) -> bool:
    """Check whether a failure message is known-benign noise."""
    lowered = (message or '').lower()
    return any(pattern in lowered for pattern in DOWNGRADABLE_PATTERNS)


def applies_to(step: StepName) -> bool:
    """Check whether failures of a step may be downgraded."""
    return step in DOWNGRADABLE_STEPS


def warning_text(step: StepName, message: str) -> str:
    """Format a downgraded failure for the record's warning list."""
    message = ' '.join((message or '').split())
    if len(message) > MAX_WARNING_LENGTH:
        message = message[:MAX_WARNING_LENGTH] + '...'
    return f'{step.value}: {message}'

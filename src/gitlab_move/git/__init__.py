"""Git operations module for repository migration."""

from .mirror import GitMirror
from .runner import GitCommandError, run_git

__all__ = ['GitMirror', 'GitCommandError', 'run_git']

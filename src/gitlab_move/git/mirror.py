"""Mirror clone, push and verification of repositories."""

import hashlib
import re
import shutil
from pathlib import Path
from typing import Iterable, List, Optional

from ..models.repository import Repository, TransferResult
from ..utils.logging import get_logger
from .runner import authenticated_url, run_git


UNSAFE_PATH_CHARS = re.compile(r'[^A-Za-z0-9._-]')


def directory_name(name: str) -> str:
    """File system name for a configured repository name.

    Names that need escaping get a hash suffix, so distinct names never share
    a directory.
    """
    safe = UNSAFE_PATH_CHARS.sub('_', name).lstrip('.') or 'repository'
    if safe != name:
        digest = hashlib.sha1(name.encode('utf-8')).hexdigest()[:8]
        safe = f'{safe}-{digest}'
    return safe


class GitMirror:
    """Moves repository content through a local bare mirror."""

    def __init__(
        self,
        work_dir: str,
        verify_dir: str = '.',
        token: Optional[str] = None,
        timeout: int = 3600,
    ):
        """Initialize git mirror.

        Args:
            work_dir: Directory holding mirror clones
            verify_dir: Directory receiving verification clones
            token: Access token for HTTP(S) destination remotes
            timeout: Timeout of each git command in seconds
        """
        self.work_dir = Path(work_dir)
        self.verify_dir = Path(verify_dir)
        self.token = token
        self.timeout = timeout
        self.logger = get_logger('GitMirror')

    @property
    def _secrets(self):
        return [self.token] if self.token else []

    async def check_available(self) -> str:
        """Return the installed git version.

        Raises:
            GitCommandError: If git cannot be executed
        """
        stdout, _ = await run_git(['--version'], timeout=30)
        return stdout.strip()

    def mirror_path(self, repository: Repository) -> Path:
        """Local path of the mirror clone of a repository.

        Keyed on the configured name, which is unique, since several sources
        may share a basename.
        """
        return self.work_dir / f'{directory_name(repository.name)}.git'

    def verify_path(self, repository: Repository) -> Path:
        """Local path of the verification clone of a repository."""
        return self.verify_dir / directory_name(repository.name)

    async def fetch_source(self, repository: Repository) -> str:
        """Mirror-clone the source repository.

        A leftover mirror from an interrupted clone is removed first.

        Returns:
            Path of the local mirror
        """
        path = self.mirror_path(repository)
        self.work_dir.mkdir(parents=True, exist_ok=True)
        if path.exists():
            self.logger.warning(f'Removing stale mirror {path}')
            shutil.rmtree(path)

        self.logger.info(f'Cloning mirror of {repository.source_url}')
        await run_git(
            ['clone', '--mirror', repository.source_url, str(path)],
            timeout=self.timeout,
            secrets=self._secrets,
        )
        return str(path)

    async def transfer_content(
        self, local_path: str, destination_url: str
    ) -> TransferResult:
        """Push every ref of the local mirror to the destination."""
        self.logger.info(f'Pushing mirror {local_path} to {destination_url}')
        _, stderr = await run_git(
            ['push', '--mirror', authenticated_url(destination_url, self.token)],
            cwd=local_path,
            timeout=self.timeout,
            secrets=self._secrets,
        )
        warnings = [
            line.strip()
            for line in stderr.splitlines()
            if line.strip().lower().startswith('warning:')
        ]
        return TransferResult(warnings=warnings)

    async def verify_final(self, destination_url: str, repository: Repository) -> None:
        """Clone the destination into the verification directory.

        A clone left by an earlier attempt is replaced.
        """
        target = self.verify_path(repository)
        self.verify_dir.mkdir(parents=True, exist_ok=True)
        if target.exists():
            self.logger.warning(f'Removing previous verification clone {target}')
            shutil.rmtree(target)
        self.logger.info(f'Cloning {destination_url} into {target}')
        await run_git(
            ['clone', authenticated_url(destination_url, self.token), str(target)],
            timeout=self.timeout,
            secrets=self._secrets,
        )
        # Keep the token out of the clone's remote configuration
        await run_git(
            ['remote', 'set-url', 'origin', destination_url],
            cwd=str(target),
            timeout=60,
        )

    @staticmethod
    def has_local(path: Optional[str]) -> bool:
        """Whether a local mirror still exists."""
        return bool(path) and Path(path).is_dir()

    def discard_local(self, path: Optional[str]) -> None:
        """Remove a local mirror.

        Raises:
            OSError: If the directory cannot be removed
        """
        if path and Path(path).exists():
            shutil.rmtree(path)
            self.logger.debug(f'Removed mirror {path}')

    def sweep(self, keep: Iterable[str] = ()) -> List[str]:
        """Remove mirrors in the work directory that are not kept.

        Args:
            keep: Mirror paths still referenced by migration records

        Returns:
            Paths of the removed mirrors

        Raises:
            OSError: If a mirror cannot be removed
        """
        if not self.work_dir.is_dir():
            return []

        kept = {Path(path).resolve() for path in keep if path}
        removed = []
        for path in sorted(self.work_dir.glob('*.git')):
            if not path.is_dir() or path.resolve() in kept:
                continue
            shutil.rmtree(path)
            removed.append(str(path))
            self.logger.info(f'Removed leftover mirror {path}')
        return removed

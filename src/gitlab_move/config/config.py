"""Configuration management for gitlab-move."""

import os
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, validator

from ..models.repository import (
    DEFAULT_DESCRIPTION,
    MAX_DESCRIPTION_LENGTH,
    SAFE_NAME_PATTERN,
    Repository,
    is_valid_git_url,
)


TOKEN_ENV_VAR = 'GITLAB_ACCESS_TOKEN'

VISIBILITY_LEVELS = ('private', 'internal', 'public')

EMPTY_DESTINATION_POLICIES = ('prompt', 'proceed', 'abort')


class DestinationConfig(BaseModel):
    """Destination GitLab group configuration."""

    group_url: str = Field(..., description='URL of the destination group')
    token: Optional[str] = Field(default=None, description='Personal access token')
    timeout: int = Field(default=30, description='Request timeout in seconds')
    visibility: str = Field(
        default='internal', description='Visibility of created projects'
    )

    @validator('group_url')
    def validate_group_url(cls, v):
        """Validate group URL format."""
        v = (v or '').strip()
        if not v.startswith(('http://', 'https://')):
            raise ValueError('Group URL must start with http:// or https://')
        if not urlsplit(v).path.strip('/'):
            raise ValueError('Group URL must include the group path')
        return v.rstrip('/')

    @validator('timeout')
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Timeout must be positive')
        return v

    @validator('visibility')
    def validate_visibility(cls, v):
        """Validate project visibility level."""
        if v not in VISIBILITY_LEVELS:
            raise ValueError(f'Visibility must be one of: {list(VISIBILITY_LEVELS)}')
        return v

    @property
    def base_url(self) -> str:
        """Scheme and host of the GitLab instance."""
        parts = urlsplit(self.group_url)
        return f'{parts.scheme}://{parts.netloc}'

    @property
    def group_path(self) -> str:
        """Full path of the destination group."""
        return urlsplit(self.group_url).path.strip('/')

    @property
    def uses_https(self) -> bool:
        """Whether the group is served over HTTPS."""
        return self.group_url.startswith('https://')


class RepositoryConfig(BaseModel):
    """A configured repository, validated by ``Config.validate_repositories``."""

    name: str = Field(..., description='Destination project name')
    description: Optional[str] = Field(default=None, description='Description')
    source_url: str = Field(..., description='Git URL of the source repository')

    def to_repository(self) -> Repository:
        """Build the immutable repository entity."""
        return Repository(
            name=self.name,
            description=self.description,
            source_url=self.source_url,
        )


class MigrationConfig(BaseModel):
    """Migration-specific configuration."""

    state_file: str = Field(
        default='migration-state.yaml', description='Migration state file'
    )
    save_debounce_seconds: float = Field(
        default=2.0, description='Delay collapsing state writes'
    )
    backup_retention: int = Field(default=5, description='State backups to keep')
    empty_destination: str = Field(
        default='prompt',
        description='Handling of existing empty destinations: prompt, proceed or abort',
    )
    skip_verify: bool = Field(
        default=False, description='Skip the final verification clone'
    )

    @validator('save_debounce_seconds')
    def validate_debounce(cls, v):
        """Validate debounce delay is not negative."""
        if v < 0:
            raise ValueError('Debounce delay cannot be negative')
        return v

    @validator('backup_retention')
    def validate_backup_retention(cls, v):
        """Validate backup retention is not negative."""
        if v < 0:
            raise ValueError('Backup retention cannot be negative')
        return v

    @validator('empty_destination')
    def validate_empty_destination(cls, v):
        """Validate empty destination policy."""
        v = (v or '').lower()
        if v not in EMPTY_DESTINATION_POLICIES:
            raise ValueError(
                f'empty_destination must be one of: {list(EMPTY_DESTINATION_POLICIES)}'
            )
        return v


class GitConfig(BaseModel):
    """Git operations configuration."""

    work_dir: str = Field(
        default='.gitlab-move', description='Directory holding mirror clones'
    )
    verify_dir: str = Field(
        default='.', description='Directory receiving verification clones'
    )
    timeout: int = Field(
        default=3600, description='Git operation timeout in seconds (default: 1 hour)'
    )

    @validator('timeout')
    def validate_timeout(cls, v):
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError('Git timeout must be positive')
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Console log format')

    @validator('level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for gitlab-move."""

    destination: DestinationConfig = Field(..., description='Destination group')
    repositories: List[RepositoryConfig] = Field(
        default_factory=list, description='Repositories to migrate'
    )
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    git: GitConfig = Field(
        default_factory=GitConfig, description='Git operations settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'forbid'  # Don't allow extra fields

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        # Load .env file if it exists
        load_dotenv()

        config_data = {
            'destination': {
                'group_url': os.getenv('GITLAB_GROUP_URL'),
                'token': os.getenv(TOKEN_ENV_VAR),
                'timeout': int(os.getenv('GITLAB_TIMEOUT', 30)),
                'visibility': os.getenv('GITLAB_VISIBILITY', 'internal'),
            },
            'migration': {
                'state_file': os.getenv('MIGRATION_STATE_FILE'),
                'empty_destination': os.getenv('MIGRATION_EMPTY_DESTINATION'),
                'skip_verify': os.getenv('MIGRATION_SKIP_VERIFY', 'false').lower()
                == 'true',
            },
            'git': {
                'work_dir': os.getenv('GIT_WORK_DIR'),
                'verify_dir': os.getenv('GIT_VERIFY_DIR'),
                'timeout': int(os.getenv('GIT_TIMEOUT', 3600)),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL', 'INFO'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        # Remove None values
        config_data = cls._remove_none_values(config_data)

        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    def resolve_token(self, cli_token: Optional[str] = None) -> Optional[str]:
        """Pick the access token: CLI option, then file, then environment."""
        return cli_token or self.destination.token or os.getenv(TOKEN_ENV_VAR)

    @property
    def repository_names(self) -> List[str]:
        """Configured repository names, in configuration order."""
        return [repo.name for repo in self.repositories]

    def validate_repositories(
        self, selected: Optional[List[str]] = None
    ) -> Tuple[List[str], List[str]]:
        """Check the configured repositories.

        Args:
            selected: Repository names chosen for this run

        Returns:
            Errors that block a migration, and warnings that do not
        """
        errors: List[str] = []
        warnings: List[str] = []

        if not self.repositories:
            errors.append('No repositories configured')

        counts = Counter(repo.name for repo in self.repositories)
        for name, count in counts.items():
            if count > 1:
                errors.append(f'Duplicate repository name: {name}')

        for index, repo in enumerate(self.repositories, 1):
            label = repo.name or f'#{index}'
            if not repo.name.strip():
                errors.append(f'Repository {label} has no name')
            if not is_valid_git_url(repo.source_url):
                errors.append(
                    f'Repository {label} has an invalid source URL: {repo.source_url}'
                )
            if repo.name and not SAFE_NAME_PATTERN.match(repo.name):
                warnings.append(
                    f'Repository name "{repo.name}" contains special characters '
                    'and may fail to be created'
                )
            if repo.description and len(repo.description) > MAX_DESCRIPTION_LENGTH:
                warnings.append(
                    f'Description of repository "{repo.name}" is longer than '
                    f'{MAX_DESCRIPTION_LENGTH} characters'
                )

        for name in selected or []:
            if name not in counts:
                errors.append(f'Selected project is not configured: {name}')

        if 'gitlab' not in self.destination.group_url.lower():
            warnings.append(
                f'Group URL does not look like a GitLab URL: {self.destination.group_url}'
            )

        return errors, warnings

    def select_repositories(
        self, selected: Optional[List[str]] = None
    ) -> List[Repository]:
        """Build repository entities, optionally restricted to a selection.

        Args:
            selected: Repository names to keep, all when empty

        Returns:
            Repositories in configuration order

        Raises:
            ValueError: If a repository entry is invalid
        """
        chosen = set(selected or [])
        repositories = []
        for repo in self.repositories:
            if chosen and repo.name not in chosen:
                continue
            try:
                repositories.append(repo.to_repository())
            except ValidationError as e:
                raise ValueError(f'Invalid repository {repo.name}: {e}') from e
        return repositories

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.safe_dump(
                self.dict(exclude_none=True),
                f,
                default_flow_style=False,
                indent=2,
                sort_keys=False,
                allow_unicode=True,
            )

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'destination': {
                'group_url': 'https://gitlab.example.com/new-group',
                'token': 'your-personal-access-token',
                'timeout': 30,
                'visibility': 'internal',
            },
            'repositories': [
                {
                    'name': 'project1',
                    'description': 'Example project',
                    'source_url': 'https://gitlab.example.com/old-group/project1.git',
                },
                {
                    'name': 'project2',
                    'description': DEFAULT_DESCRIPTION,
                    'source_url': 'git@gitlab.example.com:old-group/project2.git',
                },
            ],
            'migration': {
                'state_file': 'migration-state.yaml',
                'save_debounce_seconds': 2.0,
                'backup_retention': 5,
                'empty_destination': 'prompt',
                'skip_verify': False,
            },
            'git': {
                'work_dir': '.gitlab-move',
                'verify_dir': '.',
                'timeout': 3600,
            },
            'logging': {
                'level': 'INFO',
                'file': 'gitlab-move.log',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )

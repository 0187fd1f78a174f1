"""Main CLI entry point for gitlab-move."""

import asyncio
import sys
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..config.config import Config
from ..migration.engine import MigrationEngine, confirmation_policy
from ..migration.orchestrator import (
    MigrationSummary,
    ResumeEntry,
    build_resume_plan,
    summarize,
)
from ..migration.retry import RetryPolicy
from ..migration.store import MigrationRecordStore
from ..models.record import PIPELINE, ErrorCategory, MigrationRecord
from ..utils.logging import setup_logging

console = Console()

DEFAULT_CONFIG_PATHS = ['config.yaml', 'config.yml', '.gitlab-move.yaml']


@click.group()
@click.version_option(version=__version__, prog_name='gitlab-move')
@click.option(
    '--config',
    '-c',
    type=click.Path(exists=True),
    help='Path to configuration file',
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging',
)
@click.pass_context
def cli(ctx: click.Context, config: Optional[str], verbose: bool) -> None:
    """gitlab-move - Move repositories into a GitLab group, resumably."""
    ctx.ensure_object(dict)

    # Store config path and verbose flag
    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    # Setup basic logging first (will be enhanced later with config)
    log_level = 'DEBUG' if verbose else 'INFO'
    setup_logging(log_level)


@cli.command()
@click.option(
    '--output',
    '-o',
    default='config.yaml',
    help='Output configuration file path',
)
@click.pass_context
def init(ctx: click.Context, output: str) -> None:
    """Initialize a new configuration file."""
    console.print(
        Panel.fit(
            '[bold green]gitlab-move[/bold green]\nInitializing configuration...',
            border_style='green',
        )
    )

    if Path(output).exists():
        console.print(f'[red]✗[/red] {output} already exists, not overwriting')
        sys.exit(1)

    try:
        Config.create_template(output)
    except OSError as e:
        console.print(f'[red]✗[/red] Failed to create configuration: {e}')
        sys.exit(1)

    console.print(f'[green]✓[/green] Configuration template created at: {output}')
    console.print(
        f'[yellow]Please edit {output} with your destination group '
        'and repositories[/yellow]'
    )


@cli.command()
@click.option(
    '--projects',
    '-p',
    default=None,
    help='Comma-separated repository names to migrate (default: all)',
)
@click.option('--token', '-t', default=None, help='GitLab personal access token')
@click.option(
    '--skip-verify',
    is_flag=True,
    help='Skip the final verification clone',
)
@click.option(
    '--yes',
    '-y',
    is_flag=True,
    help='Reuse existing empty destination projects without asking',
)
@click.pass_context
def migrate(
    ctx: click.Context,
    projects: Optional[str],
    token: Optional[str],
    skip_verify: bool,
    yes: bool,
) -> None:
    """Start or resume the migration process."""
    console.print(
        Panel.fit(
            '[bold blue]gitlab-move[/bold blue]\nStarting migration process...',
            border_style='blue',
        )
    )

    engine = None
    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        selected = _parse_projects(projects)
        if not _report_validation(config, selected):
            sys.exit(1)

        if skip_verify:
            config.migration.skip_verify = True
        if yes:
            config.migration.empty_destination = 'proceed'

        token = config.resolve_token(token)
        if not token:
            token = click.prompt('GitLab access token', hide_input=True)

        engine = MigrationEngine(
            config,
            token=token,
            confirm_reuse=confirmation_policy(
                config.migration.empty_destination,
                prompt=lambda question: click.confirm(question, default=False),
            ),
        )
        engine.install_exit_handlers()

        _display_resume_plan(engine.resume_plan())

        result = engine.run_prechecks()
        if not result.success:
            for error in result.errors:
                console.print(f'[red]✗[/red] {error}')
            console.print(
                '[red]Pre-checks failed, fix the problems above and retry[/red]'
            )
            engine.close()
            sys.exit(1)
        for detail in result.details:
            console.print(f'[green]✓[/green] {detail}')

        repositories = config.select_repositories(selected)
        summary = asyncio.run(engine.migrate(repositories))

    except KeyboardInterrupt:
        if engine is not None:
            engine.store.flush()
        console.print('\n[red]Migration interrupted by user, progress saved[/red]')
        sys.exit(1)
    except Exception as e:
        console.print(f'[red]✗[/red] Migration failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)

    _display_migration_summary(summary)
    if summary.has_failures:
        sys.exit(1)


@cli.command()
@click.option('--token', '-t', default=None, help='GitLab personal access token')
@click.option(
    '--offline',
    is_flag=True,
    help='Only validate the configuration file, skip pre-checks',
)
@click.pass_context
def validate(ctx: click.Context, token: Optional[str], offline: bool) -> None:
    """Validate the configuration and run pre-checks."""
    console.print(
        Panel.fit(
            '[bold cyan]gitlab-move[/bold cyan]\nValidating configuration...',
            border_style='cyan',
        )
    )

    try:
        config = _load_config(ctx)

        if not _report_validation(config):
            sys.exit(1)
        console.print('[green]✓[/green] Configuration validation passed')

        if offline:
            return

        engine = MigrationEngine(config, token=token)
        try:
            result = engine.run_prechecks()
        finally:
            engine.close()

        for detail in result.details:
            console.print(f'[green]✓[/green] {detail}')
        for error in result.errors:
            console.print(f'[red]✗[/red] {error}')
        if not result.success:
            sys.exit(1)
        console.print('[green]✓[/green] Pre-checks passed')

    except Exception as e:
        console.print(f'[red]✗[/red] Validation failed: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show migration status and progress."""
    console.print(
        Panel.fit(
            '[bold magenta]gitlab-move[/bold magenta]\nMigration Status',
            border_style='magenta',
        )
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        store = MigrationRecordStore(
            config.migration.state_file, config.repository_names
        )
        store.load()
        records = store.ordered()

        if not records:
            console.print('[yellow]No migration has been recorded yet[/yellow]')
            return

        _display_records(records)
        _display_migration_summary(summarize(records))
        _display_resume_plan(build_resume_plan(records, RetryPolicy()))

    except Exception as e:
        console.print(f'[red]✗[/red] Failed to load status: {e}')
        if ctx.obj.get('verbose'):
            console.print_exception()
        sys.exit(1)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)

    # Try to load from default locations
    for path in DEFAULT_CONFIG_PATHS:
        if Path(path).exists():
            return Config.from_file(path)

    # Fall back to environment variables
    try:
        return Config.from_env()
    except ValueError:
        raise FileNotFoundError(
            'No configuration found. Use --config to specify a file or run '
            '"gitlab-move init" to create one.'
        ) from None


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Setup logging with configuration from config file."""
    verbose = ctx.obj.get('verbose', False)

    # Use config logging settings, but allow verbose flag to override level
    log_level = 'DEBUG' if verbose else config.logging.level
    setup_logging(
        level=log_level, log_file=config.logging.file, log_format=config.logging.format
    )


def _parse_projects(projects: Optional[str]) -> List[str]:
    """Split the --projects option."""
    if not projects:
        return []
    return [name.strip() for name in projects.split(',') if name.strip()]


def _report_validation(config: Config, selected: Optional[List[str]] = None) -> bool:
    """Print configuration problems; return False when any is an error."""
    errors, warnings = config.validate_repositories(selected)
    for warning in warnings:
        console.print(f'[yellow]![/yellow] {warning}')
    for error in errors:
        console.print(f'[red]✗[/red] {error}')
    return not errors


def _mark(flag: bool) -> str:
    return '[green]✓[/green]' if flag else '[dim]·[/dim]'


def _display_records(records: List[MigrationRecord]) -> None:
    """Display one row per persisted record."""
    table = Table(title='Migration Records')
    table.add_column('Repository', style='cyan')
    for step in PIPELINE[1:]:
        table.add_column(step.value, justify='center')
    table.add_column('Warnings', style='yellow', justify='right')
    table.add_column('Status')

    for record in records:
        if record.is_complete:
            state = '[green]done[/green]'
        elif record.is_failed:
            category = record.error_category or ErrorCategory.UNKNOWN
            state = f'[red]failed ({category.value})[/red]'
        else:
            state = '[yellow]unfinished[/yellow]'
        table.add_row(
            record.name,
            *[_mark(record.milestone(step)) for step in PIPELINE[1:]],
            str(len(record.warnings)),
            state,
        )

    console.print(table)


def _display_resume_plan(plan: List[ResumeEntry]) -> None:
    """Display repositories a new run resumes."""
    if not plan:
        return

    table = Table(title='Resumable Migrations')
    table.add_column('Repository', style='cyan')
    table.add_column('Next step')
    table.add_column('Retries', justify='right')
    table.add_column('Resumable')
    table.add_column('Last failure', style='red')

    for entry in plan:
        table.add_row(
            entry.name,
            entry.next_step.value if entry.next_step else '-',
            str(entry.retry_count),
            '[green]yes[/green]' if entry.can_resume else '[red]needs fix[/red]',
            entry.failure_reason or '-',
        )

    console.print(table)


def _display_migration_summary(summary: MigrationSummary) -> None:
    """Display migration summary results."""
    table = Table(title='Migration Summary')
    table.add_column('Total', style='blue')
    table.add_column('Successful', style='green')
    table.add_column('Failed', style='red')
    table.add_column('With warnings', style='yellow')
    table.add_column('Success rate')
    table.add_row(
        str(summary.total),
        str(summary.succeeded),
        str(summary.failed),
        str(summary.warned),
        f'{summary.success_rate:.1f}%',
    )
    console.print(table)

    if summary.started_at and summary.completed_at:
        duration = summary.completed_at - summary.started_at
        console.print(f'\n[blue]Migration Duration:[/blue] {duration}')

    if summary.failures:
        console.print(f'\n[red]Needs manual fix ({len(summary.failures)}):[/red]')
        for failure in summary.failures:
            category = failure.category.value if failure.category else 'unknown'
            console.print(
                f'  • {failure.name} [{category}]: {failure.reason}', markup=False
            )

    if summary.warnings:
        console.print(
            f'\n[yellow]Succeeded with warnings ({len(summary.warnings)}):[/yellow]'
        )
        for entry in summary.warnings:
            console.print(f'  • {entry.name}')
            for warning in entry.warnings[:5]:
                console.print(f'      - {warning}', markup=False)
            if len(entry.warnings) > 5:
                console.print(f'      ... and {len(entry.warnings) - 5} more warnings')


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()

"""Main CLI entry point for the repo migration tool."""

import sys
import asyncio
from typing import Any, List, Optional, Tuple
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .. import __version__
from ..api.ado import AdoApi
from ..api.bbs import BbsApi
from ..api.client import ApiClientFactory
from ..api.exceptions import ApiError, AuthenticationError, MigrationError
from ..config.config import Config
from ..models.pipeline import RewireRequest, RewireStatus, RewireSummary, TargetRepository
from ..services.archive_uploader import ArchiveUploader
from ..services.pipeline_rewire import PipelineRewireOrchestrator, PipelineTriggerReconciler
from ..utils.logging import (
    GENERIC_ERROR_MESSAGE,
    default_log_files,
    log_exception,
    setup_logging,
)
from ..utils.redaction import DiagnosticRedactor

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name='repo-migrate')
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
    """Repo Migration Tool - Move repositories and pipelines from Bitbucket Server and Azure DevOps to GitHub."""
    ctx.ensure_object(dict)

    if config:
        ctx.obj['config_path'] = config
    ctx.obj['verbose'] = verbose

    # Console-only logging until the configuration is loaded
    redactor = DiagnosticRedactor()
    ctx.obj['redactor'] = redactor
    setup_logging(redactor, verbose=verbose)


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
            '[bold green]Repo Migration Tool[/bold green]\n'
            'Initializing configuration...',
            border_style='green',
        )
    )

    try:
        Config.create_template(output)

        console.print(f'[green]✓[/green] Configuration template created at: {output}')
        console.print(
            f'[yellow]Please edit {output} with your instance details[/yellow]'
        )

    except Exception as e:
        console.print(
            f'[red]✗[/red] Failed to create configuration: {_redact(ctx, e)}'
        )
        sys.exit(1)


@cli.command('rewire-pipeline')
@click.option('--ado-org', required=True, help='Azure DevOps organization')
@click.option('--ado-team-project', required=True, help='Azure DevOps team project')
@click.option(
    '--ado-pipeline-id',
    'pipeline_ids',
    required=True,
    multiple=True,
    type=int,
    help='Build definition ID (repeatable)',
)
@click.option('--github-org', required=True, help='Target GitHub organization')
@click.option('--github-repo', required=True, help='Target GitHub repository')
@click.option(
    '--service-connection-id',
    required=True,
    help='Azure DevOps service connection for GitHub',
)
@click.option(
    '--target-api-url',
    default=None,
    help='GitHub API URL for GHES or data residency targets',
)
@click.option(
    '--max-concurrent',
    default=5,
    show_default=True,
    type=click.IntRange(min=1),
    help='Maximum pipelines rewired concurrently',
)
@click.pass_context
def rewire_pipeline(
    ctx: click.Context,
    ado_org: str,
    ado_team_project: str,
    pipeline_ids: Tuple[int, ...],
    github_org: str,
    github_repo: str,
    service_connection_id: str,
    target_api_url: Optional[str],
    max_concurrent: int,
) -> None:
    """Point Azure DevOps pipelines at a GitHub repository."""
    console.print(
        Panel.fit(
            '[bold blue]Repo Migration Tool[/bold blue]\n'
            f'Rewiring {len(pipeline_ids)} pipeline(s) to {github_org}/{github_repo}...',
            border_style='blue',
        )
    )

    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        if not config.ado:
            raise MigrationError(
                'Azure DevOps is not configured. Set ADO_PAT or add an "ado" section.'
            )

        client = ApiClientFactory.create_ado_client(
            config.ado, ctx.obj['redactor'], config.retry
        )
        with client:
            ado = AdoApi(client, config.ado.url)
            requests = [
                RewireRequest(
                    ado_org=ado_org,
                    ado_team_project=ado_team_project,
                    pipeline_id=pipeline_id,
                    target=TargetRepository(
                        github_org=github_org,
                        github_repo=github_repo,
                        service_connection_id=service_connection_id,
                        target_api_url=target_api_url,
                    ),
                    original_triggers=_capture_triggers(
                        ado, ado_org, ado_team_project, pipeline_id
                    ),
                )
                for pipeline_id in pipeline_ids
            ]

            orchestrator = PipelineRewireOrchestrator(PipelineTriggerReconciler(ado))
            summary = asyncio.run(orchestrator.rewire_all(requests, max_concurrent))

        _display_rewire_summary(summary, ctx.obj['redactor'])

        if summary.failed:
            sys.exit(1)

    except Exception as e:
        _fail(ctx, 'Pipeline rewiring failed', e)


@cli.command('upload-archive')
@click.option(
    '--archive-path',
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help='Migration archive to upload',
)
@click.option(
    '--github-org-id',
    required=True,
    help='Database id of the target GitHub organization',
)
@click.option('--archive-name', default=None, help='Stored archive name')
@click.pass_context
def upload_archive(
    ctx: click.Context,
    archive_path: str,
    github_org_id: str,
    archive_name: Optional[str],
) -> None:
    """Upload a migration archive into GitHub owned storage."""
    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        if not config.github:
            raise MigrationError(
                'GitHub is not configured. Set GH_PAT or add a "github" section.'
            )

        client = ApiClientFactory.create_github_client(
            config.github, ctx.obj['redactor'], config.retry
        )
        with client, open(archive_path, 'rb') as archive:
            uploader = ArchiveUploader(
                client, config.github.uploads_url, config.upload.multipart_mebibytes
            )
            uri = uploader.upload(
                archive, archive_name or Path(archive_path).name, github_org_id
            )

        console.print(f'[green]✓[/green] Archive uploaded: {_redact(ctx, uri)}')

    except Exception as e:
        _fail(ctx, 'Archive upload failed', e)


@cli.command('list-bbs-repos')
@click.option('--project', default=None, help='Only list this project key')
@click.pass_context
def list_bbs_repos(ctx: click.Context, project: Optional[str]) -> None:
    """List Bitbucket Server repositories."""
    try:
        config = _load_config(ctx)
        _setup_logging_with_config(ctx, config)

        if not config.bbs:
            raise MigrationError(
                'Bitbucket Server is not configured. Set BBS_SERVER_URL or add a "bbs" section.'
            )

        client = ApiClientFactory.create_bbs_client(
            config.bbs, ctx.obj['redactor'], config.retry
        )
        with client:
            bbs = BbsApi(client, config.bbs.url)

            table = Table(title='Bitbucket Server Repositories')
            table.add_column('Project', style='cyan')
            table.add_column('Repository', style='green')
            table.add_column('Slug', style='blue')

            if project:
                repos = ((project, repo) for repo in bbs.get_repos(project))
            else:
                repos = bbs.get_all_repos()

            count = 0
            for project_key, repo in repos:
                table.add_row(project_key, repo.get('name', ''), repo.get('slug', ''))
                count += 1

        console.print(table)
        console.print(f'[blue]Total repositories:[/blue] {count}')

    except Exception as e:
        _fail(ctx, 'Failed to list repositories', e)


def _load_config(ctx: click.Context) -> Config:
    """Load configuration from file or environment."""
    config_path = ctx.obj.get('config_path')

    if config_path:
        if not Path(config_path).exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')
        return Config.from_file(config_path)

    # Try to load from default locations
    default_paths = ['config.yaml', 'config.yml', '.repo-migrate.yaml']
    for path in default_paths:
        if Path(path).exists():
            return Config.from_file(path)

    # Fall back to environment variables
    return Config.from_env()


def _setup_logging_with_config(ctx: click.Context, config: Config) -> None:
    """Register configured secrets and add the log file sinks."""
    redactor = ctx.obj['redactor']
    for section in (config.ado, config.github):
        if section is not None:
            redactor.register_secret(section.pat)
    if config.bbs is not None:
        redactor.register_secret(config.bbs.password)

    log_file = verbose_log_file = None
    if config.logging.log_dir:
        log_file, verbose_log_file = default_log_files(config.logging.log_dir)

    setup_logging(
        redactor,
        verbose=ctx.obj.get('verbose', False) or config.logging.level == 'DEBUG',
        log_file=log_file,
        verbose_log_file=verbose_log_file,
        debug_mode=config.logging.debug_mode,
    )


def _capture_triggers(
    ado: AdoApi, org: str, project: str, pipeline_id: int
) -> Optional[List]:
    """Read a pipeline's triggers before it is rewired."""
    try:
        return ado.get_pipeline(org, project, pipeline_id)['triggers']
    except AuthenticationError:
        raise
    except ApiError:
        # The reconciler reports the pipeline as skipped
        return None


def _fail(ctx: click.Context, action: str, error: Exception) -> None:
    """Report a command failure and exit."""
    verbose = ctx.obj.get('verbose', False)
    log_exception(error, verbose=verbose)

    # The traceback reaches the console through the redacting log sinks
    if verbose or isinstance(error, MigrationError):
        console.print(f'[red]✗[/red] {action}: {_redact(ctx, error)}')
    else:
        console.print(f'[red]✗[/red] {action}: {GENERIC_ERROR_MESSAGE}')
    sys.exit(1)


def _redact(ctx: click.Context, text: Any) -> str:
    """Mask registered secrets in text shown on the console."""
    return ctx.obj['redactor'].redact(str(text))


def _display_rewire_summary(
    summary: RewireSummary, redactor: DiagnosticRedactor
) -> None:
    """Display pipeline rewiring results."""
    table = Table(title='Pipeline Rewiring Summary')
    table.add_column('Pipeline', style='cyan')
    table.add_column('Status')
    table.add_column('Required by policy', style='blue')
    table.add_column('Details')

    styles = {
        RewireStatus.COMPLETED: 'green',
        RewireStatus.SKIPPED: 'yellow',
        RewireStatus.FAILED: 'red',
    }

    for result in summary.results:
        style = styles[result.status]
        table.add_row(
            str(result.pipeline_id),
            f'[{style}]{result.status.value}[/{style}]',
            '✓' if result.required_by_branch_policy else '✗',
            redactor.redact(result.reason or ''),
        )

    console.print(table)
    console.print(
        f'[green]{summary.completed} completed[/green], '
        f'[yellow]{summary.skipped} skipped[/yellow], '
        f'[red]{summary.failed} failed[/red]'
    )


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print('\n[red]Migration interrupted by user[/red]')
        sys.exit(1)
    except Exception as e:
        log_exception(e)
        console.print(f'[red]Error: {GENERIC_ERROR_MESSAGE}[/red]')
        sys.exit(1)


if __name__ == '__main__':
    main()

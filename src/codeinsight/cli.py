"""CodeInsight CLI interface.

Commands:
- ingest: Fetch a repository and print its tree, stats or digest
- analyze: Ingest and analyze a repository in the foreground
- serve: Run the HTTP polling service
- init: Write a default configuration file

Global options:
- --config: Path to configuration file
- --verbose: Enable verbose output with timestamps
- --quiet: Suppress info messages
- --json-logs: Emit log lines as JSON
- --version: Show version and exit
"""

import json
from dataclasses import replace
from pathlib import Path
from typing import Annotated

import typer

from codeinsight import __version__
from codeinsight.config import CodeInsightConfig, create_default_config, load_config
from codeinsight.errors import CodeInsightError
from codeinsight.models.job import JobStatus
from codeinsight.models.repository import IngestedRepository, parse_repository_url
from codeinsight.utils.logging import configure_from_cli, get_logger

app = typer.Typer(
    name="codeinsight",
    help="Ingest GitHub repositories and review them with an LLM",
    add_completion=False,
    no_args_is_help=True,
)

_config: CodeInsightConfig | None = None
_logger = get_logger()


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"codeinsight {__version__}")
        raise typer.Exit()


def _get_config() -> CodeInsightConfig:
    return _config if _config is not None else CodeInsightConfig()


@app.callback()
def main(
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
            exists=True,
            dir_okay=False,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose output with timestamps"),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Suppress info messages (warnings and errors only)"),
    ] = False,
    json_logs: Annotated[
        bool,
        typer.Option("--json-logs", help="Emit log lines as JSON"),
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """CodeInsight - repository ingestion and LLM code review."""
    global _config

    configure_from_cli(verbose=verbose, quiet=quiet, json_logs=json_logs)

    try:
        _config = load_config(config_path=config)
        if _config.config_path:
            _logger.debug(f"Loaded config from: {_config.config_path}")
    except FileNotFoundError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    except (ValueError, TypeError) as e:
        _logger.error(f"Failed to load config: {e}")
        raise typer.Exit(1)


# =============================================================================
# ingest command
# =============================================================================


def _print_ingested(repository: IngestedRepository) -> None:
    typer.echo(repository.summary)
    typer.echo("\n## Directory Structure\n")
    typer.echo(repository.tree_text or "(no files)")
    if repository.skipped_files:
        typer.echo(f"\nSkipped (too large): {len(repository.skipped_files)}")
        for path in repository.skipped_files:
            typer.echo(f"  - {path}")
    if repository.failed_files:
        typer.echo(f"\nUnavailable (placeholder used): {len(repository.failed_files)}")
        for path in repository.failed_files:
            typer.echo(f"  - {path}")


@app.command()
def ingest(
    url: Annotated[str, typer.Argument(help="GitHub repository URL")],
    include: Annotated[
        list[str] | None,
        typer.Option("--include", "-i", help="Glob to include (repeatable)"),
    ] = None,
    exclude: Annotated[
        list[str] | None,
        typer.Option("--exclude", "-e", help="Glob to exclude (repeatable)"),
    ] = None,
    paths: Annotated[
        list[str] | None,
        typer.Option("--path", "-p", help="Fetch exactly these files (repeatable)"),
    ] = None,
    all_files: Annotated[
        bool,
        typer.Option("--all-files", help="Include every file, not only code and docs"),
    ] = False,
    max_files: Annotated[
        int | None,
        typer.Option("--max-files", help="Maximum number of files to fetch"),
    ] = None,
    token: Annotated[
        str | None,
        typer.Option("--token", envvar="GITHUB_TOKEN", help="GitHub token"),
    ] = None,
    output: Annotated[
        Path | None,
        typer.Option("--output", "-o", help="Write the concatenated digest to this file"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output results as JSON"),
    ] = False,
) -> None:
    """Fetch a repository and print its summary and tree.

    Exit codes:
        0: Ingestion succeeded
        1: Repository could not be ingested
    """
    from codeinsight.ingest.fetcher import SourceFetcher

    config = _get_config()
    fetcher = SourceFetcher(config.github, config.ingestion)

    try:
        ref = parse_repository_url(url)
        if paths:
            repository = fetcher.fetch_paths(ref, paths, auth=token)
        else:
            repository = fetcher.fetch(
                ref,
                auth=token,
                include_patterns=include or None,
                exclude_patterns=exclude or None,
                max_file_count=max_files,
                include_all_files=all_files,
            )
    except CodeInsightError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(repository.concatenated_content, encoding="utf-8")
        _logger.info(f"Digest written to: {output}")

    if json_output:
        typer.echo(json.dumps(repository.to_dict(), indent=2))
    else:
        _print_ingested(repository)


# =============================================================================
# analyze command
# =============================================================================


@app.command()
def analyze(
    url: Annotated[str, typer.Argument(help="GitHub repository URL")],
    all_files: Annotated[
        bool,
        typer.Option("--all-files", help="Include every file, not only code and docs"),
    ] = False,
    token: Annotated[
        str | None,
        typer.Option("--token", envvar="GITHUB_TOKEN", help="GitHub token"),
    ] = None,
    chunk_size: Annotated[
        int | None,
        typer.Option("--chunk-size", help="Characters per model request (overrides config)"),
    ] = None,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", help="Chunks analyzed in parallel (overrides config)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output the finished job as JSON"),
    ] = False,
) -> None:
    """Ingest and analyze a repository, printing the consolidated insights.

    Exit codes:
        0: Analysis completed
        1: Ingestion or analysis failed
    """
    from codeinsight.jobs.service import JobService

    config = _get_config()
    overrides: dict[str, int] = {}
    if chunk_size is not None:
        overrides["chunk_size_budget"] = chunk_size
    if concurrency is not None:
        overrides["max_concurrency"] = concurrency
    try:
        config.analysis = replace(config.analysis, **overrides)
    except ValueError as e:
        _logger.error(str(e))
        raise typer.Exit(1)

    service = JobService(config, max_workers=1)
    try:
        repository = service.ingest(url, include_all_files=all_files, token=token)
        job = service.run_job(service.create_job(repository), repository)
    except CodeInsightError as e:
        _logger.error(str(e))
        raise typer.Exit(1)
    finally:
        service.shutdown(wait=False)

    if json_output:
        typer.echo(json.dumps(job.to_dict(), indent=2))
    elif job.status == JobStatus.COMPLETED:
        typer.echo(f"\n{len(job.insights)} insight(s) for {job.repository_ref.full_name}\n")
        for insight in job.insights:
            typer.echo(
                f"[{insight.severity.value.upper()}] {insight.title} ({insight.category.value})"
            )
            typer.echo(f"    {insight.description}\n")

    for warning in job.warnings:
        _logger.warning(warning)

    if job.status != JobStatus.COMPLETED:
        _logger.error(job.error_message or "Analysis failed")
        raise typer.Exit(1)


# =============================================================================
# serve command
# =============================================================================


@app.command()
def serve(
    host: Annotated[
        str | None,
        typer.Option("--host", help="Bind address (overrides config)"),
    ] = None,
    port: Annotated[
        int | None,
        typer.Option("--port", help="Bind port (overrides config)"),
    ] = None,
) -> None:
    """Run the HTTP service (POST /ingest, GET /jobs/{id})."""
    from codeinsight.service.app import run_service

    config = _get_config()
    if host is not None:
        config.service.host = host
    if port is not None:
        config.service.port = port

    _logger.info(f"Serving on http://{config.service.host}:{config.service.port}")
    run_service(config)


# =============================================================================
# init command
# =============================================================================


@app.command()
def init(
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite existing config"),
    ] = False,
) -> None:
    """Create .codeinsight/config.yaml with default settings."""
    config_dir = Path(".codeinsight")
    config_file = config_dir / "config.yaml"

    if config_file.exists() and not force:
        _logger.error(f"Config already exists: {config_file}")
        _logger.info("Use --force to overwrite")
        raise typer.Exit(1)

    config_dir.mkdir(exist_ok=True)
    config_file.write_text(create_default_config())
    typer.echo(f"Created {config_file}")

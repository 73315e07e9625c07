"""stepwright CLI: validate and run job sources, manage sessions and results.

Usage:
    stepwright validate jobs.yaml           # Check a job source without running it
    stepwright run jobs.yaml                # Run every job in the source
    stepwright run jobs.yaml -c 2 -o out    # Override concurrency and output dir
    stepwright sessions list                # List saved sessions
    stepwright sessions delete NAME         # Delete one saved session
    stepwright sessions cleanup             # Delete expired sessions
    stepwright results list                 # List persisted results
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sys
from typing import Any

import click
from pydantic import ValidationError

from stepwright.common.exceptions import (
    BrowserLaunchError,
    ConfigLoadError,
    ConfigValidationError,
)
from stepwright.config import load_config
from stepwright.data_types import DEFAULT_OUTPUT_DIR, RunConfig
from stepwright.orchestrator import Orchestrator, format_summary
from stepwright.session import DEFAULT_SESSIONS_DIR, SessionStore
from stepwright.storage import list_results, load_result


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load(config_path: str) -> RunConfig:
    try:
        return load_config(config_path)
    except (ConfigLoadError, ConfigValidationError) as e:
        raise click.ClickException(str(e)) from e


sessions_dir_option = click.option(
    "--sessions-dir",
    default=DEFAULT_SESSIONS_DIR,
    show_default=True,
    type=click.Path(file_okay=False),
    help="Directory holding saved sessions.",
)


@click.group()
@click.version_option(package_name="stepwright")
def cli() -> None:
    """stepwright: declarative browser scraping."""


@cli.command()
@click.argument("config_path", type=click.Path(dir_okay=False))
def validate(config_path: str) -> None:
    """Validate CONFIG_PATH without launching a browser."""
    config = _load(config_path)
    click.echo(
        f"Configuration valid: {len(config.jobs)} job(s), "
        f"concurrency {config.concurrency}, output {config.output_dir}"
    )
    for job in config.jobs:
        click.echo(f"  {job.name}: {len(job.steps)} step(s) from {job.url}")


@cli.command()
@click.argument("config_path", type=click.Path(dir_okay=False))
@click.option(
    "-c",
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of jobs in flight (overrides the job source).",
)
@click.option(
    "-o",
    "--output-dir",
    type=click.Path(file_okay=False),
    default=None,
    help="Directory for result files (overrides the job source).",
)
@sessions_dir_option
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging.")
def run(
    config_path: str,
    concurrency: int | None,
    output_dir: str | None,
    sessions_dir: str,
    verbose: bool,
) -> None:
    """Run every job in CONFIG_PATH.

    Exits with status 1 when any job failed.
    """
    _configure_logging(verbose)

    config = _load(config_path)
    overrides: dict[str, Any] = {}
    if concurrency is not None:
        overrides["concurrency"] = concurrency
    if output_dir is not None:
        overrides["output_dir"] = output_dir
    if overrides:
        config = dataclasses.replace(config, **overrides)

    click.echo(f"Jobs:        {len(config.jobs)}")
    click.echo(f"Concurrency: {config.concurrency}")
    click.echo(f"Output:      {config.output_dir}")

    try:
        summary = asyncio.run(
            Orchestrator.run_config(config, SessionStore(sessions_dir))
        )
    except BrowserLaunchError as e:
        raise click.ClickException(str(e)) from e

    click.echo(format_summary(summary))
    if summary.failure_count:
        sys.exit(1)


@cli.group()
def sessions() -> None:
    """Manage saved browser sessions."""


@sessions.command("list")
@sessions_dir_option
def sessions_list(sessions_dir: str) -> None:
    """List saved sessions and whether they are still valid."""
    store = SessionStore(sessions_dir)
    names = store.list_sessions()
    if not names:
        click.echo("No sessions found.")
        return
    for name in names:
        status = "valid" if store.has_valid_session(name) else "expired"
        click.echo(f"{name} [{status}]")


@sessions.command("delete")
@click.argument("name")
@sessions_dir_option
def sessions_delete(name: str, sessions_dir: str) -> None:
    """Delete the session NAME."""
    if not SessionStore(sessions_dir).delete_session(name):
        raise click.ClickException(f"Session not found: {name}")
    click.echo(f"Deleted session {name}")


@sessions.command("cleanup")
@sessions_dir_option
def sessions_cleanup(sessions_dir: str) -> None:
    """Delete expired or empty sessions."""
    removed = SessionStore(sessions_dir).cleanup_expired_sessions()
    click.echo(f"Removed {removed} session(s)")


@cli.group()
def results() -> None:
    """Inspect persisted results."""


@results.command("list")
@click.option(
    "-o",
    "--output-dir",
    default=DEFAULT_OUTPUT_DIR,
    show_default=True,
    type=click.Path(file_okay=False),
    help="Directory holding result files.",
)
def results_list(output_dir: str) -> None:
    """List result files with their record counts."""
    paths = list_results(output_dir)
    if not paths:
        click.echo("No results found.")
        return
    for path in paths:
        try:
            metadata = load_result(path).metadata
        except (OSError, ValidationError) as e:
            click.echo(f"{path.name}  [unreadable: {e}]")
            continue
        status = "error" if metadata.error else "ok"
        click.echo(
            f"{path.name}  {metadata.total_records} record(s)  [{status}]"
        )


def main() -> None:
    """Entry point for the ``stepwright`` console script."""
    cli()

"""CLI command handler for inspecting the migration checkpoint."""

from __future__ import annotations

import sys

import click

from ci_log_migrator.cli.common import (
    checkpoint_options,
    cli,
    handle_exception,
    logging_options,
)
from ci_log_migrator.core.checkpoint import create_checkpoint_store
from ci_log_migrator.exceptions import MigratorError
from ci_log_migrator.utils.logging import setup_logger


@cli.command()
@checkpoint_options
@click.option(
    "--list",
    "list_pipelines",
    is_flag=True,
    default=False,
    help="Print every finished pipeline, one per line",
)
@logging_options
def status(
    checkpoint_backend: str,
    config_path: str,
    configmap_name: str,
    list_pipelines: bool,
    verbose: bool,
    log_format: str,
) -> None:
    """Show how many pipelines the checkpoint records as finished."""
    setup_logger(verbose, log_format)

    try:
        store = create_checkpoint_store(checkpoint_backend, config_path, configmap_name)
        finished = store.load()
    except MigratorError as e:
        handle_exception(e)
        sys.exit(1)

    click.echo(f"Finished pipelines: {len(finished)}")
    if list_pipelines:
        for pipeline_id in finished:
            click.echo(pipeline_id)

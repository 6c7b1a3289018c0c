"""CLI command handler for the migrate workflow."""

from __future__ import annotations

import logging
import sys

import click

from ci_log_migrator.cli.common import (
    build_config,
    checkpoint_options,
    cli,
    handle_exception,
    logging_options,
)
from ci_log_migrator.constants import (
    CHECKPOINT_BACKEND_FILE,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_PAGE_SIZE_FOR_MIGRATION,
    DEFAULT_PAGE_SIZE_FOR_PIPELINES_RETRIEVAL,
    DEFAULT_PAGES_TO_MIGRATE_IN_PARALLEL,
    DEFAULT_PIPELINES_TO_MIGRATE_IN_PARALLEL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_DELAY,
)
from ci_log_migrator.core.config import MigratorConfig
from ci_log_migrator.core.migrator import LogMigrator
from ci_log_migrator.types import MigrationSummary
from ci_log_migrator.utils.logging import log_with_context, setup_logger


# ---------------------------------------------------------------------------
# migrate subcommand
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--api_url",
    envvar="API_URL",
    help="Base URL of the CI API to migrate logs through",
)
@click.option(
    "--api_key",
    envvar="API_KEY",
    help="Bearer token for the CI API",
)
@click.option(
    "--page_size_for_pipelines_retrieval",
    envvar="PAGE_SIZE_FOR_PIPELINES_RETRIEVAL",
    type=int,
    default=DEFAULT_PAGE_SIZE_FOR_PIPELINES_RETRIEVAL,
    show_default=True,
    help="Page size for retrieving pipelines from the api",
)
@click.option(
    "--page_size_for_migration",
    envvar="PAGE_SIZE_FOR_MIGRATION",
    type=int,
    default=DEFAULT_PAGE_SIZE_FOR_MIGRATION,
    show_default=True,
    help="Page size for migrating logs to cloud storage via the api",
)
@click.option(
    "--pages_to_migrate_in_parallel",
    envvar="PAGES_TO_MIGRATE_IN_PARALLEL",
    type=int,
    default=DEFAULT_PAGES_TO_MIGRATE_IN_PARALLEL,
    show_default=True,
    help="Number of pages to migrate in parallel via the api",
)
@click.option(
    "--pipelines_to_migrate_in_parallel",
    envvar="PIPELINES_TO_MIGRATE_IN_PARALLEL",
    type=int,
    default=DEFAULT_PIPELINES_TO_MIGRATE_IN_PARALLEL,
    show_default=True,
    help="Number of pipelines to migrate in parallel (pages are then copied one at a time)",
)
@click.option(
    "--max_attempts",
    envvar="MAX_ATTEMPTS",
    type=int,
    default=DEFAULT_MAX_ATTEMPTS,
    show_default=True,
    help="Attempts per api request before giving up",
)
@click.option(
    "--retry_delay",
    envvar="RETRY_DELAY",
    type=float,
    default=DEFAULT_RETRY_DELAY,
    show_default=True,
    help="Base delay in seconds for exponential retry backoff",
)
@click.option(
    "--request_timeout",
    envvar="REQUEST_TIMEOUT",
    type=float,
    default=DEFAULT_REQUEST_TIMEOUT,
    show_default=True,
    help="Timeout in seconds per api request, also caps the retry backoff",
)
@checkpoint_options
@click.option(
    "--dry_run",
    is_flag=True,
    default=False,
    help="List the pipelines that would be migrated without copying any logs",
)
@logging_options
def migrate(
    api_url: str | None,
    api_key: str | None,
    page_size_for_pipelines_retrieval: int,
    page_size_for_migration: int,
    pages_to_migrate_in_parallel: int,
    pipelines_to_migrate_in_parallel: int,
    max_attempts: int,
    retry_delay: float,
    request_timeout: float,
    checkpoint_backend: str,
    config_path: str,
    configmap_name: str,
    dry_run: bool,
    verbose: bool,
    log_format: str,
) -> None:
    """Copy the build and release logs of every pipeline to cloud storage.

    Pipelines recorded as finished in the checkpoint are skipped, so an
    interrupted run can simply be started again.
    """
    setup_logger(verbose, log_format)

    config = build_config(
        api_url=api_url,
        api_key=api_key,
        page_size_for_pipelines_retrieval=page_size_for_pipelines_retrieval,
        page_size_for_migration=page_size_for_migration,
        pages_to_migrate_in_parallel=pages_to_migrate_in_parallel,
        pipelines_to_migrate_in_parallel=pipelines_to_migrate_in_parallel,
        max_attempts=max_attempts,
        retry_delay=retry_delay,
        request_timeout=request_timeout,
        checkpoint_backend=checkpoint_backend,
        config_path=config_path,
        configmap_name=configmap_name,
        dry_run=dry_run,
    )

    log_startup_info(config)

    migrator: LogMigrator | None = None
    try:
        migrator = LogMigrator(config)
        summary = migrator.migrate()
    except (Exception, KeyboardInterrupt) as e:
        handle_exception(e)
        sys.exit(1)
    finally:
        if migrator is not None:
            migrator.close()

    log_summary(summary)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def log_startup_info(config: MigratorConfig) -> None:
    """Log startup information.

    Args:
        config: The run configuration.
    """
    log_with_context(logging.INFO, "Starting migration with the following parameters:")
    log_with_context(logging.INFO, f"- API URL: {config.api_url}")
    log_with_context(
        logging.INFO,
        f"- Page size for pipelines retrieval: {config.page_size_for_pipelines_retrieval}",
    )
    log_with_context(
        logging.INFO, f"- Page size for migration: {config.page_size_for_migration}"
    )
    log_with_context(
        logging.INFO,
        f"- Pages to migrate in parallel: {config.pages_to_migrate_in_parallel}",
    )
    log_with_context(
        logging.INFO,
        f"- Pipelines to migrate in parallel: {config.pipelines_to_migrate_in_parallel}",
    )
    if config.checkpoint_backend == CHECKPOINT_BACKEND_FILE:
        log_with_context(logging.INFO, f"- Checkpoint file: {config.config_path}")
    else:
        log_with_context(
            logging.INFO, f"- Checkpoint configmap: {config.configmap_name}"
        )
    log_with_context(logging.INFO, f"- Dry run: {config.dry_run}")


def log_summary(summary: MigrationSummary) -> None:
    """Log the end-of-run summary.

    Args:
        summary: Counters collected by the migrator.
    """
    log_with_context(logging.INFO, "")
    if summary.dry_run:
        log_with_context(
            logging.INFO,
            f"[DRY RUN] {summary.pipelines_pending} of {summary.pipelines_listed} "
            "pipelines would be migrated",
        )
        return

    log_with_context(logging.INFO, "🎉 Migration completed successfully!")
    log_with_context(logging.INFO, f"   • Pipelines listed: {summary.pipelines_listed}")
    log_with_context(
        logging.INFO, f"   • Already finished: {summary.pipelines_skipped}"
    )
    log_with_context(
        logging.INFO, f"   • Migrated in this run: {len(summary.pipelines_migrated)}"
    )
    log_with_context(logging.INFO, f"   • Log items copied: {summary.items_copied}")

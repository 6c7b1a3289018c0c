"""The click group, the options shared by its subcommands, and exit-path error logging."""

from __future__ import annotations

import logging
from typing import Any, Callable, ClassVar

import click

import ci_log_migrator
from ci_log_migrator.constants import (
    CHECKPOINT_BACKEND_CONFIGMAP,
    CHECKPOINT_BACKEND_FILE,
    DEFAULT_CONFIG_PATH,
    DEFAULT_CONFIGMAP_NAME,
)
from ci_log_migrator.core.config import MigratorConfig
from ci_log_migrator.exceptions import (
    MigrationAbortedError,
    MigratorError,
    UnexpectedStatusError,
)
from ci_log_migrator.utils.logging import (
    LOG_FORMAT_CONSOLE,
    LOG_FORMAT_JSON,
    log_with_context,
)


# ---------------------------------------------------------------------------
# Custom click.Group that defaults to ``migrate``.
# The container entrypoint runs the tool without arguments and passes all
# settings through environment variables, so an empty command line or one
# starting with a flag is treated as ``migrate``.
# ---------------------------------------------------------------------------


class DefaultGroup(click.Group):
    """Group that runs ``migrate`` unless another subcommand is named."""

    default_command = "migrate"
    # Handled by the group itself
    _GROUP_FLAGS: ClassVar[set[str]] = {"--help", "--version", "-h"}

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        if not args or (args[0].startswith("-") and args[0] not in self._GROUP_FLAGS):
            args = [self.default_command, *args]
        return super().parse_args(ctx, args)


# ---------------------------------------------------------------------------
# Shared option decorators
# ---------------------------------------------------------------------------


def logging_options(f: Callable[..., None]) -> Callable[..., None]:
    """Add ``--verbose`` and ``--log_format`` to a command."""
    f = click.option(
        "--verbose",
        "-v",
        is_flag=True,
        default=False,
        help="Log every API request and copied page (DEBUG level)",
    )(f)
    f = click.option(
        "--log_format",
        envvar="LOG_FORMAT",
        type=click.Choice([LOG_FORMAT_CONSOLE, LOG_FORMAT_JSON]),
        default=LOG_FORMAT_CONSOLE,
        show_default=True,
        help="Console log format",
    )(f)
    return f


def checkpoint_options(f: Callable[..., None]) -> Callable[..., None]:
    """Add the options selecting where the checkpoint lives.

    Shared by ``migrate``, which updates the checkpoint, and ``status``,
    which only reads it.
    """
    f = click.option(
        "--checkpoint_backend",
        envvar="CHECKPOINT_BACKEND",
        type=click.Choice([CHECKPOINT_BACKEND_CONFIGMAP, CHECKPOINT_BACKEND_FILE]),
        default=CHECKPOINT_BACKEND_CONFIGMAP,
        show_default=True,
        help="Where finished pipelines are recorded",
    )(f)
    f = click.option(
        "--config_path",
        envvar="CONFIG_PATH",
        default=DEFAULT_CONFIG_PATH,
        show_default=True,
        help="Path to the checkpoint file (file backend)",
    )(f)
    f = click.option(
        "--configmap_name",
        envvar="CONFIGMAP_NAME",
        default=DEFAULT_CONFIGMAP_NAME,
        show_default=True,
        help="Name of the configmap holding the checkpoint (configmap backend)",
    )(f)
    return f


def build_config(**options: Any) -> MigratorConfig:
    """Build the run configuration from CLI options.

    Raises:
        click.UsageError: If the options do not form a valid configuration.
    """
    try:
        return MigratorConfig.from_dict(options)
    except MigratorError as e:
        raise click.UsageError(str(e)) from e


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group(
    cls=DefaultGroup,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.version_option(version=ci_log_migrator.__version__, prog_name="ci-log-migrator")
def cli() -> None:
    """Migrate CI build and release logs to cloud storage."""


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------


def handle_exception(e: BaseException) -> None:
    """Log why a command is about to exit with status 1.

    Expected failures get a one-line message; anything else is logged with
    its traceback.
    """
    if isinstance(e, MigrationAbortedError):
        log_with_context(logging.ERROR, str(e), pipeline=e.pipeline)
        log_with_context(
            logging.INFO,
            "Finished pipelines are recorded in the checkpoint; "
            "rerun the migration to resume.",
        )
    elif isinstance(e, UnexpectedStatusError):
        log_with_context(logging.ERROR, f"API error during migration: {e}")
    elif isinstance(e, MigratorError):
        log_with_context(logging.ERROR, str(e))
    elif isinstance(e, KeyboardInterrupt):
        log_with_context(logging.WARNING, "Migration interrupted.")
        log_with_context(
            logging.INFO,
            "🔄 Finished pipelines are recorded; rerun the migration to resume.",
        )
    else:
        log_with_context(logging.ERROR, f"Migration failed: {e}", exc_info=True)

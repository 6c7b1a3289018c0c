#!/usr/bin/env python3
"""
Main execution module for the CI log migration tool.

Assembles the click group with all subcommands and exposes the entry point.
"""

from ci_log_migrator.cli import migrate_cmd, status_cmd  # noqa: F401  (registers commands)
from ci_log_migrator.cli.common import cli, handle_exception

__all__ = ["cli", "handle_exception", "main"]


def main() -> None:
    """Main entry point for the CI log migration tool."""
    cli()


if __name__ == "__main__":
    main()

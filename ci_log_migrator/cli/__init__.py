"""Command-line interface for the CI log migration tool."""

__all__ = [
    "commands",
    "common",
    "migrate_cmd",
    "status_cmd",
]

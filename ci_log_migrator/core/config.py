"""
Configuration module for the CI log migration tool.

This module provides the immutable configuration object built once at
startup from command-line options (or their environment variables) and
handed to every component.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ci_log_migrator.constants import (
    CHECKPOINT_BACKEND_CONFIGMAP,
    CHECKPOINT_BACKEND_FILE,
    DEFAULT_CONFIG_PATH,
    DEFAULT_CONFIGMAP_NAME,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_PAGE_SIZE_FOR_MIGRATION,
    DEFAULT_PAGE_SIZE_FOR_PIPELINES_RETRIEVAL,
    DEFAULT_PAGES_TO_MIGRATE_IN_PARALLEL,
    DEFAULT_PIPELINES_TO_MIGRATE_IN_PARALLEL,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_DELAY,
)
from ci_log_migrator.exceptions import ConfigError

CHECKPOINT_BACKENDS = (CHECKPOINT_BACKEND_CONFIGMAP, CHECKPOINT_BACKEND_FILE)


@dataclass(frozen=True)
class MigratorConfig:
    """Typed, immutable configuration for a migration run."""

    # Source API
    api_url: str
    api_key: str

    # Pagination and concurrency
    page_size_for_pipelines_retrieval: int = DEFAULT_PAGE_SIZE_FOR_PIPELINES_RETRIEVAL
    page_size_for_migration: int = DEFAULT_PAGE_SIZE_FOR_MIGRATION
    pages_to_migrate_in_parallel: int = DEFAULT_PAGES_TO_MIGRATE_IN_PARALLEL
    pipelines_to_migrate_in_parallel: int = DEFAULT_PIPELINES_TO_MIGRATE_IN_PARALLEL

    # Retry
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_delay: float = DEFAULT_RETRY_DELAY
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    # Checkpoint persistence
    checkpoint_backend: str = CHECKPOINT_BACKEND_CONFIGMAP
    config_path: str = DEFAULT_CONFIG_PATH
    configmap_name: str = DEFAULT_CONFIGMAP_NAME

    dry_run: bool = False

    @property
    def page_parallelism(self) -> int:
        """Width of a page batch.

        When pipelines run in parallel each of them copies one page at a
        time, so in-flight copy requests never exceed the pipeline count.
        """
        if self.pipelines_to_migrate_in_parallel > 1:
            return 1
        return self.pages_to_migrate_in_parallel

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MigratorConfig:
        """Create a MigratorConfig from a raw mapping, ignoring unknown keys."""
        known = set(cls.__dataclass_fields__)
        values = {k: v for k, v in data.items() if k in known and v is not None}
        values["api_url"] = str(values.get("api_url") or "").rstrip("/")
        values["api_key"] = str(values.get("api_key") or "")
        config = cls(**values)
        config.validate()
        return config

    def validate(self) -> None:
        """Check the configuration for values the migration cannot run with.

        Raises:
            ConfigError: Describing the first invalid setting found.
        """
        if not self.api_url:
            raise ConfigError("API URL is required (--api_url or API_URL)")
        if not self.api_url.startswith(("http://", "https://")):
            raise ConfigError(f"API URL must be an http(s) URL, got {self.api_url!r}")
        if not self.api_key:
            raise ConfigError("API key is required (--api_key or API_KEY)")

        for name in (
            "page_size_for_pipelines_retrieval",
            "page_size_for_migration",
            "pages_to_migrate_in_parallel",
            "pipelines_to_migrate_in_parallel",
            "max_attempts",
        ):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 1:
                raise ConfigError(f"{name} must be a positive integer, got {value!r}")

        if self.retry_delay < 0:
            raise ConfigError(f"retry_delay must not be negative, got {self.retry_delay}")
        if self.request_timeout <= 0:
            raise ConfigError(
                f"request_timeout must be positive, got {self.request_timeout}"
            )

        if self.checkpoint_backend not in CHECKPOINT_BACKENDS:
            raise ConfigError(
                f"Invalid checkpoint_backend '{self.checkpoint_backend}'. "
                f"Must be one of: {', '.join(CHECKPOINT_BACKENDS)}"
            )
        if self.checkpoint_backend == CHECKPOINT_BACKEND_FILE and not self.config_path:
            raise ConfigError("config_path is required for the file checkpoint backend")
        if (
            self.checkpoint_backend == CHECKPOINT_BACKEND_CONFIGMAP
            and not self.configmap_name
        ):
            raise ConfigError(
                "configmap_name is required for the configmap checkpoint backend"
            )

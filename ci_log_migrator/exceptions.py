"""Custom exception hierarchy for the CI log migration tool."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from ci_log_migrator.types import MigrationSummary, Pipeline


class MigratorError(Exception):
    """Base exception for all migration-related errors."""


class ConfigError(MigratorError):
    """Raised when configuration is invalid or missing."""


class APIError(MigratorError):
    """Raised when a call to the source API fails in an unrecoverable way."""


class TransportError(APIError):
    """Raised when a request keeps failing at the connection level."""


class UnexpectedStatusError(APIError):
    """Raised when the API answers with a status code the caller did not expect."""

    def __init__(
        self,
        status_code: int,
        method: str,
        url: str,
        valid_status_codes: Iterable[int],
        body: bytes = b"",
    ) -> None:
        self.status_code = status_code
        self.method = method
        self.url = url
        self.valid_status_codes = sorted(valid_status_codes)
        self.body = body
        super().__init__(
            f"Status code {status_code} for '{method} {url}' is not one of the "
            f"valid status codes {self.valid_status_codes} for this request. "
            f"Body: {body.decode('utf-8', errors='replace')}"
        )


class ResponseParseError(APIError):
    """Raised when a response body cannot be interpreted."""


class PipelineListingError(MigratorError):
    """Raised when listing pipelines fails part way through.

    The pipelines retrieved before the failure are kept on ``pipelines``.
    """

    def __init__(self, message: str, pipelines: list[Pipeline] | None = None) -> None:
        super().__init__(message)
        self.pipelines = pipelines or []


class CheckpointError(MigratorError):
    """Raised when the checkpoint cannot be loaded or persisted."""


class MigrationAbortedError(MigratorError):
    """Raised when the migration stops before every pipeline was processed."""

    def __init__(
        self,
        message: str,
        pipeline: str | None = None,
        remaining: int = 0,
        summary: MigrationSummary | None = None,
    ) -> None:
        super().__init__(message)
        self.pipeline = pipeline
        self.remaining = remaining
        self.summary = summary

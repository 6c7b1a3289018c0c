"""Shared type definitions for the CI log migration tool.

Provides the API record shapes returned by the source API and the value
types flowing between the lister, the log copier and the migrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TypedDict

from ci_log_migrator.exceptions import ResponseParseError

# ---------------------------------------------------------------------------
# Source API types
# ---------------------------------------------------------------------------


class PipelineRecord(TypedDict, total=False):
    """A pipeline record from the ``items`` list of ``/api/pipelines``."""

    repoSource: str
    repoOwner: str
    repoName: str
    fullRepoPath: str


class PipelineListResponse(TypedDict, total=False):
    """Body of a ``/api/pipelines`` page."""

    items: list[PipelineRecord]


@dataclass(frozen=True)
class Pipeline:
    """A pipeline known to the source API.

    ``full_repo_path`` is an opaque hierarchical path such as
    ``github.com/acme/api`` or ``group/repo``. It is only ever used as the
    checkpoint key and as a URL path segment.
    """

    full_repo_path: str

    @classmethod
    def from_dict(cls, data: PipelineRecord) -> Pipeline:
        """Build a Pipeline from an API record.

        An explicit ``fullRepoPath`` wins; otherwise the non-empty parts of
        ``repoSource/repoOwner/repoName`` are joined.

        Raises:
            ResponseParseError: If the record yields an empty path.
        """
        if not isinstance(data, dict):
            raise ResponseParseError(f"Pipeline record is not an object: {data!r}")

        full_path = data.get("fullRepoPath")
        if not full_path:
            parts = (data.get(key) for key in ("repoSource", "repoOwner", "repoName"))
            full_path = "/".join(str(part) for part in parts if part)

        if not isinstance(full_path, str) or not full_path.strip("/"):
            raise ResponseParseError(f"Pipeline record has no repository path: {data!r}")
        return cls(full_path)


# ---------------------------------------------------------------------------
# Page copying types
# ---------------------------------------------------------------------------


class LogCategory(str, Enum):
    """Independently paginated log streams of a pipeline, in migration order."""

    BUILDS = "builds"
    RELEASES = "releases"


@dataclass(frozen=True)
class PageRequest:
    """One page-copy call for a pipeline's log category."""

    pipeline_id: str
    category: LogCategory
    page_number: int
    page_size: int


@dataclass
class PageResult:
    """Outcome of a single page-copy call."""

    request: PageRequest
    items_copied: int = 0
    error: Exception | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


def is_last_page(items_copied: int, page_size: int) -> bool:
    """A page holding fewer items than requested marks the end of the data."""
    return items_copied < page_size


# ---------------------------------------------------------------------------
# Run summary
# ---------------------------------------------------------------------------


@dataclass
class MigrationSummary:
    """Aggregate counters for one migration run."""

    pipelines_listed: int = 0
    pipelines_skipped: int = 0
    pipelines_migrated: list[str] = field(default_factory=list)
    pipelines_failed: list[str] = field(default_factory=list)
    items_copied: int = 0
    dry_run: bool = False

    @property
    def pipelines_pending(self) -> int:
        """Pipelines that were not finished before this run started."""
        return self.pipelines_listed - self.pipelines_skipped

    @property
    def pipelines_remaining(self) -> int:
        """Pipelines still unprocessed once the run ended."""
        return self.pipelines_pending - len(self.pipelines_migrated)

    @property
    def completed(self) -> bool:
        return not self.dry_run and self.pipelines_remaining == 0

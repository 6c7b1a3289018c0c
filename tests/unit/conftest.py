"""Unit test configuration and shared fixtures."""

from __future__ import annotations

import json
import threading
from typing import Any
from urllib.parse import parse_qs, urlsplit

import pytest

from ci_log_migrator.constants import COPY_LOGS_PATH, PIPELINES_PATH
from ci_log_migrator.core.checkpoint import FileCheckpointStore
from ci_log_migrator.core.config import MigratorConfig
from ci_log_migrator.exceptions import CheckpointError

API_URL = "https://ci.example.com"

# ---------------------------------------------------------------------------
# Fake source API
# ---------------------------------------------------------------------------


class FakeCiApi:
    """In-memory stand-in for ApiClient serving both source API endpoints.

    ``log_items`` maps ``(pipeline_id, category)`` to the total number of log
    items the server holds; each page returns up to ``page[size]`` of them.
    ``failures`` maps ``(pipeline_id, category, page_number)`` or
    ``("pipelines", page_number)`` to an exception raised for that request.
    """

    def __init__(
        self,
        pipelines: list[str] | None = None,
        log_items: dict[tuple[str, str], int] | None = None,
        failures: dict[tuple[Any, ...], Exception] | None = None,
    ) -> None:
        self.pipelines = pipelines or []
        self.log_items = log_items or {}
        self.failures = failures or {}
        self.calls: list[str] = []
        self.copy_calls: list[tuple[str, str, int]] = []
        self.closed = False
        self._lock = threading.Lock()

    def get(self, url: str, valid_status_codes: Any) -> bytes:
        return self.execute("GET", url, valid_status_codes)

    def execute(self, method: str, url: str, valid_status_codes: Any) -> bytes:
        parts = urlsplit(url)
        query = {key: values[0] for key, values in parse_qs(parts.query).items()}
        page_number = int(query["page[number]"])
        page_size = int(query["page[size]"])

        with self._lock:
            self.calls.append(url)

        if parts.path == PIPELINES_PATH:
            failure = self.failures.get(("pipelines", page_number))
            if failure is not None:
                raise failure
            start = (page_number - 1) * page_size
            items = [self._record(p) for p in self.pipelines[start : start + page_size]]
            return json.dumps({"items": items}).encode()

        pipeline_id = parts.path[len(COPY_LOGS_PATH) + 1 :]
        category = query["filter[search]"]
        with self._lock:
            self.copy_calls.append((pipeline_id, category, page_number))

        failure = self.failures.get((pipeline_id, category, page_number))
        if failure is not None:
            raise failure

        total = self.log_items.get((pipeline_id, category), 0)
        remaining = total - (page_number - 1) * page_size
        return str(max(0, min(page_size, remaining))).encode()

    @staticmethod
    def _record(path: str) -> dict[str, str]:
        parts = path.split("/", 2)
        if len(parts) != 3:
            return {"fullRepoPath": path}
        return dict(zip(("repoSource", "repoOwner", "repoName"), parts))

    def pages_requested(self, pipeline_id: str, category: str) -> list[int]:
        return sorted(
            page
            for pid, cat, page in self.copy_calls
            if pid == pipeline_id and cat == category
        )

    def close(self) -> None:
        self.closed = True


class MemoryCheckpointStore:
    """Checkpoint store that keeps every saved snapshot."""

    def __init__(self, finished: list[str] | None = None, fail_on_save: bool = False):
        self.finished = list(finished or [])
        self.fail_on_save = fail_on_save
        self.saves: list[list[str]] = []

    def load(self) -> list[str]:
        return list(self.finished)

    def save(self, finished: list[str]) -> None:
        if self.fail_on_save:
            raise CheckpointError("configmap update failed")
        self.saves.append(list(finished))
        self.finished = list(finished)


@pytest.fixture()
def fake_api():
    """Factory fixture for a FakeCiApi."""
    return FakeCiApi


@pytest.fixture()
def memory_store():
    """Factory fixture for a MemoryCheckpointStore."""
    return MemoryCheckpointStore


@pytest.fixture()
def make_config():
    """Factory fixture returning a valid MigratorConfig with overrides applied."""

    def _make(**overrides: Any) -> MigratorConfig:
        values: dict[str, Any] = {
            "api_url": API_URL,
            "api_key": "secret-token",
            "checkpoint_backend": "file",
            "config_path": "/tmp/ci-log-migrator-test.yaml",
        }
        values.update(overrides)
        return MigratorConfig.from_dict(values)

    return _make


@pytest.fixture()
def file_store(tmp_path):
    """A FileCheckpointStore in a temporary directory."""
    return FileCheckpointStore(tmp_path / "config.yaml")


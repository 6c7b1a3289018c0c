"""Shared test fixtures for the ci_log_migrator test suite."""

import pytest


@pytest.fixture()
def pipeline_paths():
    """Return a list of sample pipeline repository paths."""
    return [
        "github.com/acme/api",
        "github.com/acme/web",
        "bitbucket.org/acme/infra",
        "gitlab.com/platform/tools",
    ]

"""Service integrations with the CI API's pipeline listing and log copy endpoints."""

__all__ = [
    "log_copier",
    "pipelines",
]

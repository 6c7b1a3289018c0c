"""Core migration logic including configuration, checkpointing and orchestration."""

__all__ = [
    "checkpoint",
    "config",
    "migrator",
]

"""Data access layer for ffragrance."""

from .repository import (
    EntityKind,
    Repository,
    get_repository,
    reset_repository,
)

__all__ = [
    "EntityKind",
    "Repository",
    "get_repository",
    "reset_repository",
]

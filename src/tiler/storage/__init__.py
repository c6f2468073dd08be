"""Blob and document persistence backends."""

from __future__ import annotations

from typing import TYPE_CHECKING

from tiler.storage.filesystem import FilesystemStorage
from tiler.storage.memory import InMemoryStorage
from tiler.storage.protocol import Fields, StorageBackend

if TYPE_CHECKING:
    from tiler.config import Settings

__all__ = [
    "Fields",
    "FilesystemStorage",
    "InMemoryStorage",
    "StorageBackend",
    "create_storage",
]


def create_storage(settings: Settings) -> StorageBackend:
    """Create the storage backend selected by settings.

    Args:
        settings: Application settings.

    Returns:
        An InMemoryStorage or FilesystemStorage.

    Raises:
        ConfigError: If the filesystem backend has no storage directory.
        ValueError: If STORAGE_BACKEND names an unknown backend.
    """
    backend = settings.STORAGE_BACKEND.strip().lower()
    if backend == "memory":
        return InMemoryStorage()
    if backend == "filesystem":
        return FilesystemStorage(settings.require_storage_dir())
    raise ValueError(
        f"Unknown storage backend: {settings.STORAGE_BACKEND!r}. "
        "Supported backends: memory, filesystem"
    )

"""Storage layer — key-value service interface and backends."""

from __future__ import annotations

from pathlib import Path

from jade_guard.storage.base import KeyValueStorage, MemoryStorage
from jade_guard.storage.sqlite import SQLiteStorage

__all__ = ["KeyValueStorage", "MemoryStorage", "SQLiteStorage", "create_storage"]


def create_storage(backend: str, path: Path | str | None = None) -> KeyValueStorage:
    """Build the storage backend named in ``StorageConfig``."""
    if backend == "memory":
        return MemoryStorage()
    if backend == "sqlite":
        if path is None:
            raise ValueError("sqlite storage requires a path")
        return SQLiteStorage(path)
    raise ValueError(f"Unknown storage backend: {backend!r}")

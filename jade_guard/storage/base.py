"""Storage layer — External key-value service interface.

The Policy Store treats persistence as an external key-value service with
three operations and no transactional guarantees beyond last-write-wins per
key:

    get(keys)    → mapping of the keys that exist (``None`` = every key)
    set(mapping) → write every key in *mapping*
    clear()      → remove everything

Values are JSON-compatible documents.  Backends raise
:class:`~jade_guard.exceptions.StorageFailureError` on any I/O failure.
"""

from __future__ import annotations

import asyncio
import copy
from abc import ABC, abstractmethod
from typing import Any, Mapping, Sequence


class KeyValueStorage(ABC):
    """Abstract async key-value service."""

    async def init(self) -> None:
        """Open underlying resources.  No-op by default."""

    async def close(self) -> None:
        """Release underlying resources.  No-op by default."""

    @abstractmethod
    async def get(self, keys: Sequence[str] | None = None) -> dict[str, Any]:
        """Return the stored values for *keys*; missing keys are omitted."""

    @abstractmethod
    async def set(self, items: Mapping[str, Any]) -> None:
        """Store every key/value pair in *items*."""

    @abstractmethod
    async def clear(self) -> None:
        """Remove every key."""


class MemoryStorage(KeyValueStorage):
    """Process-local storage.  Values are deep-copied on the way in and out
    so callers can never alias stored state."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._lock = asyncio.Lock()

    async def get(self, keys: Sequence[str] | None = None) -> dict[str, Any]:
        async with self._lock:
            if keys is None:
                return copy.deepcopy(self._data)
            return {k: copy.deepcopy(self._data[k]) for k in keys if k in self._data}

    async def set(self, items: Mapping[str, Any]) -> None:
        async with self._lock:
            for key, value in items.items():
                self._data[key] = copy.deepcopy(value)

    async def clear(self) -> None:
        async with self._lock:
            self._data.clear()

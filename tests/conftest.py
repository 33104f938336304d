"""Shared pytest fixtures for the jade-guard test suite."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Sequence
from unittest.mock import AsyncMock

import pytest

from jade_guard.config import Settings, override_settings
from jade_guard.events.bus import EventBus, NullEventBus
from jade_guard.runtime import GuardRuntime
from jade_guard.storage.base import KeyValueStorage, MemoryStorage
from jade_guard.store.policy_store import PolicyStore
from jade_guard.store.server import StoreServer


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    settings = Settings(
        channel={"request_timeout_ms": 500},
        storage={"backend": "memory", "path": str(tmp_path / "storage.db")},
        logging={"level": "debug", "format": "console", "audit_file": None},
    )
    override_settings(settings)
    return settings


@pytest.fixture(autouse=True)
def restore_logging():
    """Put the root logger back after a test that calls configure_logging()."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


class FlakyStorage(MemoryStorage):
    """MemoryStorage whose reads or writes can be switched to fail."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_get = False
        self.fail_set = False
        self.set_calls: list[dict[str, Any]] = []

    async def get(self, keys: Sequence[str] | None = None) -> dict[str, Any]:
        if self.fail_get:
            raise OSError("disk unavailable")
        return await super().get(keys)

    async def set(self, items: Mapping[str, Any]) -> None:
        if self.fail_set:
            raise OSError("disk full")
        self.set_calls.append(dict(items))
        await super().set(items)


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def flaky_storage() -> FlakyStorage:
    return FlakyStorage()


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_bus() -> AsyncMock:
    return AsyncMock(spec=EventBus)


# ---------------------------------------------------------------------------
# Policy Store
# ---------------------------------------------------------------------------


@pytest.fixture
async def store(memory_storage: KeyValueStorage, mock_bus: AsyncMock):
    s = PolicyStore(memory_storage, bus=mock_bus)
    await s.init()
    yield s
    await s.shutdown()


@pytest.fixture
async def server(store: PolicyStore):
    srv = StoreServer(store, default_timeout=0.5)
    yield srv
    await srv.close()


# ---------------------------------------------------------------------------
# Runtime
# ---------------------------------------------------------------------------


@pytest.fixture
async def runtime(test_settings: Settings):
    rt = GuardRuntime(test_settings, storage=MemoryStorage(), bus=NullEventBus())
    await rt.start()
    yield rt
    await rt.shutdown()

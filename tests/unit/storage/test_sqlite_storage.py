"""Unit tests — SQLiteStorage (async SQLite key-value service)."""

from __future__ import annotations

from pathlib import Path

import pytest

from jade_guard.exceptions import StorageFailureError
from jade_guard.storage.sqlite import SQLiteStorage


@pytest.mark.unit
class TestSQLiteStorage:
    @pytest.fixture
    async def storage(self, tmp_path: Path):
        s = SQLiteStorage(tmp_path / "kv.db")
        await s.init()
        yield s
        await s.close()

    async def test_init_creates_database_file(self, tmp_path: Path) -> None:
        db_path = tmp_path / "nested" / "kv.db"
        storage = SQLiteStorage(db_path)
        await storage.init()
        try:
            assert db_path.exists()
        finally:
            await storage.close()

    async def test_set_then_get(self, storage: SQLiteStorage) -> None:
        await storage.set({"policy_a.com": {"whitelisted": True}, "logs": [{"id": "1"}]})
        result = await storage.get(["policy_a.com", "logs", "absent"])
        assert result == {"policy_a.com": {"whitelisted": True}, "logs": [{"id": "1"}]}

    async def test_get_all(self, storage: SQLiteStorage) -> None:
        await storage.set({"a": 1, "b": "two"})
        assert await storage.get() == {"a": 1, "b": "two"}

    async def test_get_empty_key_list(self, storage: SQLiteStorage) -> None:
        await storage.set({"a": 1})
        assert await storage.get([]) == {}

    async def test_overwrite(self, storage: SQLiteStorage) -> None:
        await storage.set({"a": 1})
        await storage.set({"a": 2})
        assert await storage.get(["a"]) == {"a": 2}

    async def test_clear(self, storage: SQLiteStorage) -> None:
        await storage.set({"a": 1})
        await storage.clear()
        assert await storage.get() == {}

    async def test_persists_across_connections(self, tmp_path: Path) -> None:
        db_path = tmp_path / "kv.db"
        first = SQLiteStorage(db_path)
        await first.init()
        await first.set({"installationTime": 123.0})
        await first.close()

        second = SQLiteStorage(db_path)
        await second.init()
        try:
            assert await second.get(["installationTime"]) == {"installationTime": 123.0}
        finally:
            await second.close()

    async def test_unserialisable_value_raises(self, storage: SQLiteStorage) -> None:
        with pytest.raises(StorageFailureError) as exc_info:
            await storage.set({"bad": object()})
        assert exc_info.value.operation == "set"

    async def test_use_before_init_raises(self, tmp_path: Path) -> None:
        storage = SQLiteStorage(tmp_path / "kv.db")
        with pytest.raises(StorageFailureError):
            await storage.get(["a"])

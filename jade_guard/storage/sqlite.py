"""Storage layer — SQLite-backed key-value service.

One row per key, values stored as JSON text.  ``set`` runs all rows in a
single commit; there is no cross-call transaction.

Schema::

    CREATE TABLE kv_store (
        key        TEXT PRIMARY KEY,
        value      TEXT NOT NULL,
        updated_at REAL NOT NULL
    );

Usage::

    storage = SQLiteStorage(Path("~/.jade/storage.db"))
    await storage.init()
    await storage.set({"policy_example.com": {...}})
    docs = await storage.get(["policy_example.com"])
    await storage.close()
"""

from __future__ import annotations

import json
import sqlite3
import time
from pathlib import Path
from typing import Any, Mapping, Sequence

import aiosqlite

from jade_guard.exceptions import StorageFailureError
from jade_guard.logging import get_logger
from jade_guard.storage.base import KeyValueStorage

log = get_logger(__name__)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key        TEXT PRIMARY KEY,
    value      TEXT NOT NULL,
    updated_at REAL NOT NULL
);
"""


class SQLiteStorage(KeyValueStorage):
    """Async SQLite key-value store."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._conn: aiosqlite.Connection | None = None

    async def init(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            self._conn = await aiosqlite.connect(str(self._db_path))
            await self._conn.executescript(_SCHEMA_SQL)
            await self._conn.commit()
        except sqlite3.Error as exc:
            raise StorageFailureError("init", exc) from exc
        log.debug("sqlite_storage_init", path=str(self._db_path))

    async def close(self) -> None:
        if self._conn:
            await self._conn.close()
            self._conn = None

    def _require_conn(self, operation: str) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageFailureError(operation, RuntimeError("storage is not initialised"))
        return self._conn

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get(self, keys: Sequence[str] | None = None) -> dict[str, Any]:
        conn = self._require_conn("get")
        result: dict[str, Any] = {}
        try:
            if keys is None:
                async with conn.execute("SELECT key, value FROM kv_store") as cursor:
                    async for key, value in cursor:
                        result[key] = json.loads(value)
            elif keys:
                placeholders = ",".join("?" for _ in keys)
                async with conn.execute(
                    f"SELECT key, value FROM kv_store WHERE key IN ({placeholders})",
                    tuple(keys),
                ) as cursor:
                    async for key, value in cursor:
                        result[key] = json.loads(value)
        except (sqlite3.Error, ValueError) as exc:
            raise StorageFailureError("get", exc) from exc
        return result

    async def set(self, items: Mapping[str, Any]) -> None:
        conn = self._require_conn("set")
        now = time.time()
        try:
            rows = [(key, json.dumps(value), now) for key, value in items.items()]
            await conn.executemany(
                "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)",
                rows,
            )
            await conn.commit()
        except (sqlite3.Error, TypeError, ValueError) as exc:
            raise StorageFailureError("set", exc) from exc

    async def clear(self) -> None:
        conn = self._require_conn("clear")
        try:
            await conn.execute("DELETE FROM kv_store")
            await conn.commit()
        except sqlite3.Error as exc:
            raise StorageFailureError("clear", exc) from exc

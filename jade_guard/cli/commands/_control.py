"""CLI — shared access to the control surface."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any

from jade_guard.config import Settings
from jade_guard.exceptions import StorageError
from jade_guard.logging import configure_logging
from jade_guard.protocol.messages import fail


def load_settings(config: Path | None, db: Path | None, log_level: str | None) -> Settings:
    """Load settings, apply CLI overrides and set up logging on stderr."""
    settings = Settings.load(config_file=config)
    if db is not None:
        settings.storage.backend = "sqlite"
        settings.storage.path = db
    if log_level is not None:
        settings.logging.level = log_level  # type: ignore[assignment]
    configure_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        log_file=str(settings.logging.file.expanduser()) if settings.logging.file else None,
        stream=sys.stderr,
    )
    return settings


async def _send(settings: Settings, message: dict[str, Any]) -> dict[str, Any]:
    from jade_guard.runtime import build_store
    from jade_guard.store.server import StoreServer

    store = build_store(settings)
    try:
        await store.init()
        return await StoreServer(store).handle_message(message)
    except StorageError as exc:
        return fail(exc.message)
    finally:
        await store.shutdown()


def send(settings: Settings, message: dict[str, Any]) -> dict[str, Any]:
    """Run one control message against the configured store."""
    return asyncio.run(_send(settings, message))

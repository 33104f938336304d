"""Event streaming infrastructure — EventBus protocol and implementations.

The EventBus carries side-channel events out of the mediation pipeline:
every logged audit event is mirrored on ``jade.audit``, policy saves and
resets on ``jade.policy``, and user-facing block notices on ``jade.alerts``.
Nothing in the decision path ever waits on a consumer.

Swap the backend by injecting a different EventBus implementation:
  - NullEventBus   → default (no-op, zero overhead)
  - LogEventBus    → NDJSON append-only file (unbounded audit mirror)

Standard topic names:
  TOPIC_AUDIT  = "jade.audit"   — every event accepted by the Policy Store
  TOPIC_POLICY = "jade.policy"  — policy saved / reset
  TOPIC_ALERTS = "jade.alerts"  — blocked sensitive capability (user notice)
"""

from __future__ import annotations

import asyncio
import json
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from jade_guard.logging import get_logger

log = get_logger(__name__)

# ---------------------------------------------------------------------------
# Standard topic constants
# ---------------------------------------------------------------------------

TOPIC_AUDIT = "jade.audit"
TOPIC_POLICY = "jade.policy"
TOPIC_ALERTS = "jade.alerts"


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------


class EventBus(ABC):
    """Abstract event bus.  All implementations must be safe for concurrent async use.

    An event is a plain dict.  The bus adds a ``_topic`` key and a
    ``_timestamp`` (Unix epoch float) before forwarding to the backend.
    """

    @abstractmethod
    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        """Publish *event* to *topic*.

        This method must not raise — failures are logged so that a backend
        outage never propagates into the decision path.
        """

    def _stamp(self, topic: str, event: dict[str, Any]) -> dict[str, Any]:
        """Add metadata fields to *event* in-place and return it."""
        event.setdefault("_topic", topic)
        event.setdefault("_timestamp", time.time())
        return event


class NullEventBus(EventBus):
    """Discards all events.  Used when no event streaming is configured."""

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        pass


class LogEventBus(EventBus):
    """Writes events as NDJSON to a file — one line per event, append-only.

    Usage::

        bus = LogEventBus(Path("~/.jade/audit.ndjson"))
        await bus.emit(TOPIC_AUDIT, {"event": "audit_logged", "origin": "example.com"})
    """

    def __init__(self, log_file: Path | None = None) -> None:
        self._file = log_file.expanduser() if log_file else None
        self._lock = asyncio.Lock()

    async def emit(self, topic: str, event: dict[str, Any]) -> None:
        self._stamp(topic, event)
        log.debug("event_bus_emit", topic=topic, event_type=event.get("event"))
        if self._file is None:
            return
        line = json.dumps(event, default=str) + "\n"
        async with self._lock:
            try:
                self._file.parent.mkdir(parents=True, exist_ok=True)
                with self._file.open("a", encoding="utf-8") as f:
                    f.write(line)
            except OSError as exc:
                log.error("event_bus_write_failed", topic=topic, error=str(exc))


"""Event streaming layer — EventBus infrastructure.

Quick start::

    from jade_guard.events import LogEventBus, TOPIC_AUDIT

    bus = LogEventBus(Path("~/.jade/audit.ndjson"))
    await bus.emit(TOPIC_AUDIT, {"event": "audit_logged", "origin": "example.com"})
"""

from jade_guard.events.bus import (
    TOPIC_ALERTS,
    TOPIC_AUDIT,
    TOPIC_POLICY,
    EventBus,
    LogEventBus,
    NullEventBus,
)

__all__ = [
    "EventBus",
    "NullEventBus",
    "LogEventBus",
    "TOPIC_AUDIT",
    "TOPIC_POLICY",
    "TOPIC_ALERTS",
]

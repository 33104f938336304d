"""JADE Guard — Structured logging.

structlog renders every record, routed through stdlib ``logging`` handlers so
that aiosqlite and asyncio output share one format.

Mediation context travels in context variables rather than in every call:
a handler task serving one page binds ``origin`` / ``context_id`` /
``request_id`` on entry, and each record logged from that task (or from a
task it spawns) carries them.  Binding in a task never leaks into its
caller, so bind inside handler tasks only.

    log = get_logger(__name__)
    bind_guard_context(origin="example.com", request_id=rid)
    log.info("capability_blocked", api="fetch")
    # → ... origin=example.com request_id=... api=fetch
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any, TextIO

import structlog
from structlog.types import EventDict, WrappedLogger

_GUARD_VARS: dict[str, ContextVar[str | None]] = {
    "origin": ContextVar("jade_origin", default=None),
    "context_id": ContextVar("jade_context_id", default=None),
    "request_id": ContextVar("jade_request_id", default=None),
}

_QUIET_LOGGERS = ("aiosqlite", "asyncio")


def bind_guard_context(
    origin: str | None = None,
    context_id: str | None = None,
    request_id: str | None = None,
) -> None:
    """Bind mediation fields to the current task.  None leaves a field as is."""
    for name, value in (("origin", origin), ("context_id", context_id), ("request_id", request_id)):
        if value is not None:
            _GUARD_VARS[name].set(value)


def current_guard_context() -> dict[str, str]:
    """Fields bound in the current task, unset ones omitted."""
    bound: dict[str, str] = {}
    for name, var in _GUARD_VARS.items():
        value = var.get()
        if value is not None:
            bound[name] = value
    return bound


def _add_guard_context(
    _logger: WrappedLogger, _method: str, event_dict: EventDict
) -> EventDict:
    # Fields passed explicitly to the log call win.
    for name, value in current_guard_context().items():
        event_dict.setdefault(name, value)
    return event_dict


def configure_logging(
    level: str = "info",
    format: str = "console",
    log_file: str | None = None,
    stream: TextIO | None = None,
) -> None:
    """Install structlog and the root handlers.

    Args:
        level:    debug, info, warning, error or critical.
        format:   ``"console"`` or ``"json"``.
        log_file: Extra file handler, same format.
        stream:   Console handler target; stdout when omitted.  The CLI
                  passes stderr so that command output stays parseable.
    """
    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        _add_guard_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]

    target = stream if stream is not None else sys.stdout
    if format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=target.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(target)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = handlers
    root_logger.setLevel(level.upper())

    # aiosqlite logs every statement at debug level.
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """``log = get_logger(__name__)`` at module top."""
    return structlog.get_logger(name)

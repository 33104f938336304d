"""JADE Guard — Exception hierarchy.

All exceptions raised inside the mediation pipeline inherit from JadeError so
that callers can catch the full family with a single except clause when
needed.  None of them ever reaches page code except CapabilityDeniedError,
which is the error contract of request-style wrapped APIs.

Hierarchy:
    JadeError
    ├── ProtocolError
    │   └── MalformedRequestError
    ├── ChannelError
    │   ├── RequestTimeoutError
    │   └── ChannelClosedError
    ├── StorageError
    │   └── StorageFailureError
    ├── StoreResponseError
    └── CapabilityDeniedError
"""

from __future__ import annotations

from typing import Any


class JadeError(Exception):
    """Base exception for all JADE Guard errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context or {}

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context})"


# ---------------------------------------------------------------------------
# Protocol layer
# ---------------------------------------------------------------------------


class ProtocolError(JadeError):
    """Base for all message protocol errors."""


class MalformedRequestError(ProtocolError):
    """A control-surface message has an unknown type or is missing fields."""

    def __init__(self, message_type: Any, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(
            "Unknown request type",
            context={"message_type": message_type, "validation_errors": errors or []},
        )
        self.message_type = message_type
        self.errors = errors or []


# ---------------------------------------------------------------------------
# Channel layer
# ---------------------------------------------------------------------------


class ChannelError(JadeError):
    """Base for Correlation Channel errors."""


class RequestTimeoutError(ChannelError):
    """No matched response arrived before the request deadline."""

    def __init__(self, request_id: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Request '{request_id}' timed out after {timeout_seconds}s",
            context={"request_id": request_id, "timeout_seconds": timeout_seconds},
        )
        self.request_id = request_id
        self.timeout_seconds = timeout_seconds


class ChannelClosedError(ChannelError):
    """The local endpoint or its peer has been torn down."""

    def __init__(self, endpoint: str) -> None:
        super().__init__(
            f"Channel endpoint '{endpoint}' is closed or unreachable",
            context={"endpoint": endpoint},
        )
        self.endpoint = endpoint


# ---------------------------------------------------------------------------
# Storage layer
# ---------------------------------------------------------------------------


class StorageError(JadeError):
    """Base for key-value storage errors."""


class StorageFailureError(StorageError):
    """The external key-value service failed a read or write."""

    def __init__(self, operation: str, cause: Exception) -> None:
        super().__init__(
            f"Storage {operation} failed: {cause}",
            context={"operation": operation, "cause": str(cause)},
        )
        self.operation = operation
        self.cause = cause


# ---------------------------------------------------------------------------
# Control surface
# ---------------------------------------------------------------------------


class StoreResponseError(JadeError):
    """The Policy Store answered a control message with ``success: false``."""

    def __init__(self, message_type: str, error: str) -> None:
        super().__init__(
            f"{message_type} failed: {error}",
            context={"message_type": message_type, "error": error},
        )
        self.message_type = message_type
        self.error = error


# ---------------------------------------------------------------------------
# Page-facing
# ---------------------------------------------------------------------------


class CapabilityDeniedError(JadeError):
    """A wrapped host API was called and the capability was not granted.

    ``code`` mirrors the host's PERMISSION_DENIED error code so callback-style
    consumers can treat it like a native permission error.
    """

    code = 1

    def __init__(self, api_name: str, message: str | None = None) -> None:
        super().__init__(
            message or f"JADE: {api_name} blocked by policy",
            context={"api_name": api_name},
        )
        self.api_name = api_name

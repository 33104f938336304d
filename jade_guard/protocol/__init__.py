"""Protocol layer — tagged-variant messages for every tier boundary."""

from jade_guard.protocol.messages import (
    UNKNOWN_REQUEST_TYPE,
    GetAllDomains,
    GetLogs,
    GetPolicy,
    LogEvent,
    PermissionRequest,
    PermissionResponse,
    PermissionTimeoutNotice,
    PolicyUpdated,
    ResetPolicy,
    SavePolicy,
    Subscribe,
    Unsubscribe,
    fail,
    ok,
    parse_control_message,
    parse_page_message,
    parse_store_notification,
    parse_subscription_message,
)

__all__ = [
    "UNKNOWN_REQUEST_TYPE",
    "GetAllDomains",
    "GetLogs",
    "GetPolicy",
    "LogEvent",
    "PermissionRequest",
    "PermissionResponse",
    "PermissionTimeoutNotice",
    "PolicyUpdated",
    "ResetPolicy",
    "SavePolicy",
    "Subscribe",
    "Unsubscribe",
    "fail",
    "ok",
    "parse_control_message",
    "parse_page_message",
    "parse_store_notification",
    "parse_subscription_message",
]

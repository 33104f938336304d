"""Protocol layer — Tagged-variant message models.

Every message crossing a tier boundary is one of the pydantic models below,
discriminated by its ``type`` literal.  Receivers parse raw dicts with the
matching ``parse_*`` helper and dispatch on the model class,
so an unknown ``type`` or a missing field is rejected once, at the boundary,
with a single generic error.

Page hop (Interceptor ↔ Mediator):
    API_PERMISSION_REQUEST    request   page → mediator
    API_PERMISSION_RESPONSE   response  mediator → page
    API_PERMISSION_TIMEOUT    notice    page → mediator (best-effort)

Store hop (Mediator / any caller ↔ Policy Store), the control surface:
    GET_POLICY, SAVE_POLICY, RESET_POLICY, LOG_EVENT, GET_LOGS, GET_ALL_DOMAINS
    SUBSCRIBE / UNSUBSCRIBE   notices  mediator → store
    POLICY_UPDATED            notice   store → mediator

Every control-surface response is an envelope: ``{"success": True, ...}`` or
``{"success": False, "error": "..."}``.
"""

from __future__ import annotations

import time
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from jade_guard.exceptions import MalformedRequestError
from jade_guard.policy.models import AuditEvent, Policy

UNKNOWN_REQUEST_TYPE = "Unknown request type"


class _Message(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Page hop
# ---------------------------------------------------------------------------


class PermissionRequest(_Message):
    """A transient request to use *capability* (the host API name).

    Lives until answered or until ``expires_at``, whichever comes first.
    """

    type: Literal["API_PERMISSION_REQUEST"] = "API_PERMISSION_REQUEST"
    request_id: str = Field(alias="requestId")
    capability: str = Field(alias="apiName")
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: float = Field(default_factory=time.time, alias="createdAt")
    timeout: float = 2.0

    @property
    def expires_at(self) -> float:
        return self.created_at + self.timeout


class PermissionResponse(_Message):
    type: Literal["API_PERMISSION_RESPONSE"] = "API_PERMISSION_RESPONSE"
    request_id: str = Field(alias="requestId")
    allowed: bool
    timestamp: float = Field(default_factory=time.time)


class PermissionTimeoutNotice(_Message):
    type: Literal["API_PERMISSION_TIMEOUT"] = "API_PERMISSION_TIMEOUT"
    request_id: str = Field(alias="requestId")
    capability: str = Field(alias="apiName")
    details: dict[str, Any] = Field(default_factory=dict)


PageMessage = Annotated[
    Union[PermissionRequest, PermissionTimeoutNotice],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Control surface (store hop)
# ---------------------------------------------------------------------------

# Callers may name the scope ``origin`` or, as older callers do, ``domain``;
# either may hold a full URL.
def _origin_field() -> Any:
    return Field(validation_alias=AliasChoices("origin", "domain"))


class GetPolicy(_Message):
    type: Literal["GET_POLICY"] = "GET_POLICY"
    origin: str = _origin_field()


class SavePolicy(_Message):
    type: Literal["SAVE_POLICY"] = "SAVE_POLICY"
    origin: str = _origin_field()
    policy: Policy


class ResetPolicy(_Message):
    type: Literal["RESET_POLICY"] = "RESET_POLICY"
    origin: str = _origin_field()


class LogEvent(_Message):
    type: Literal["LOG_EVENT"] = "LOG_EVENT"
    event: AuditEvent


class GetLogs(_Message):
    type: Literal["GET_LOGS"] = "GET_LOGS"
    limit: Annotated[int, Field(ge=0)] | None = None
    origin: str | None = None


class GetAllDomains(_Message):
    type: Literal["GET_ALL_DOMAINS"] = "GET_ALL_DOMAINS"


ControlMessage = Annotated[
    Union[GetPolicy, SavePolicy, ResetPolicy, LogEvent, GetLogs, GetAllDomains],
    Field(discriminator="type"),
]


class Subscribe(_Message):
    type: Literal["SUBSCRIBE"] = "SUBSCRIBE"
    origin: str


class Unsubscribe(_Message):
    type: Literal["UNSUBSCRIBE"] = "UNSUBSCRIBE"
    origin: str


SubscriptionMessage = Annotated[
    Union[Subscribe, Unsubscribe],
    Field(discriminator="type"),
]


class PolicyUpdated(_Message):
    type: Literal["POLICY_UPDATED"] = "POLICY_UPDATED"
    origin: str
    policy: Policy


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

_PAGE_ADAPTER: TypeAdapter[Any] = TypeAdapter(PageMessage)
_CONTROL_ADAPTER: TypeAdapter[Any] = TypeAdapter(ControlMessage)
_SUBSCRIPTION_ADAPTER: TypeAdapter[Any] = TypeAdapter(SubscriptionMessage)
_STORE_NOTIFICATION_ADAPTER: TypeAdapter[Any] = TypeAdapter(PolicyUpdated)


def _parse(adapter: TypeAdapter[Any], raw: Any) -> Any:
    message_type = raw.get("type") if isinstance(raw, dict) else None
    try:
        return adapter.validate_python(raw)
    except ValidationError as exc:
        raise MalformedRequestError(
            message_type,
            errors=[{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()],
        ) from exc


def parse_page_message(raw: Any) -> PermissionRequest | PermissionTimeoutNotice:
    return _parse(_PAGE_ADAPTER, raw)


def parse_control_message(raw: Any) -> Any:
    """Parse a control-surface request; raises MalformedRequestError."""
    return _parse(_CONTROL_ADAPTER, raw)


def parse_subscription_message(raw: Any) -> Subscribe | Unsubscribe:
    return _parse(_SUBSCRIPTION_ADAPTER, raw)


def parse_store_notification(raw: Any) -> PolicyUpdated:
    return _parse(_STORE_NOTIFICATION_ADAPTER, raw)


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------


def ok(**payload: Any) -> dict[str, Any]:
    return {"success": True, **payload}


def fail(error: str) -> dict[str, Any]:
    return {"success": False, "error": error}

"""Policy layer — Capability flags, policies, and audit records.

Defines the core data shapes shared by all three tiers:
  - ``CapabilityFlag`` — the fixed set of per-origin permission flags
  - ``Policy``         — per-origin capability flags + whitelist override
  - ``AuditAction``    — allowed / blocked / detected
  - ``AuditEvent``     — one entry of the bounded audit log
  - ``PolicyListing``  — one row of ``list_policies()``

Models serialise with camelCase aliases (``riskScore``, ``lastUpdated``,
``userMessage``) so that stored documents keep the wire format the control
surface speaks.
"""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class CapabilityFlag(str, Enum):
    """One controllable permission.  Values are the stored flag names."""

    NETWORK = "allowNetwork"
    STORAGE = "allowStorage"
    DOM = "allowDOM"
    COOKIES = "allowCookies"
    GEOLOCATION = "allowGeolocation"
    CAMERA = "allowCamera"
    MICROPHONE = "allowMicrophone"
    NOTIFICATIONS = "allowNotifications"
    CLIPBOARD = "allowClipboard"
    WEBRTC = "allowWebRTC"


def _all_disabled() -> dict[CapabilityFlag, bool]:
    return {flag: False for flag in CapabilityFlag}


class Policy(BaseModel):
    """Capability policy for a single origin.

    ``risk_score`` is informational: listings recompute it from the audit log.
    """

    model_config = ConfigDict(populate_by_name=True)

    capabilities: dict[CapabilityFlag, bool] = Field(default_factory=_all_disabled)
    whitelisted: bool = False
    risk_score: Annotated[int, Field(ge=0, le=100)] = Field(default=0, alias="riskScore")
    last_updated: float = Field(default_factory=time.time, alias="lastUpdated")
    origin: str | None = None

    @model_validator(mode="after")
    def _fill_missing_flags(self) -> "Policy":
        # A partial capability map means "everything else disabled".
        for flag in CapabilityFlag:
            self.capabilities.setdefault(flag, False)
        return self

    def allows(self, flag: CapabilityFlag) -> bool:
        """Whitelisting overrides every individual flag."""
        return self.whitelisted or self.capabilities.get(flag, False)

    def with_flags(self, **flags: bool) -> "Policy":
        """Return a copy with the given flags (by enum member name) changed.

        ``policy.with_flags(NETWORK=True, STORAGE=True)``
        """
        capabilities = dict(self.capabilities)
        for name, value in flags.items():
            capabilities[CapabilityFlag[name]] = value
        return self.model_copy(update={"capabilities": capabilities})

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class AuditAction(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    DETECTED = "detected"


class AuditEvent(BaseModel):
    """One audit log entry.

    ``id`` and ``timestamp`` are assigned by the Policy Store when the event
    is logged; producers leave them unset.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str | None = None
    origin: str
    capability: str
    action: AuditAction
    reason: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    timestamp: float | None = None
    user_message: str | None = Field(default=None, alias="userMessage")
    url: str | None = None

    @model_validator(mode="after")
    def _blocked_requires_reason(self) -> "AuditEvent":
        if self.action == AuditAction.BLOCKED and not self.reason:
            raise ValueError("blocked events must carry a reason")
        return self

    def stamped(self) -> "AuditEvent":
        """Return a copy with a fresh id and the current timestamp."""
        return self.model_copy(update={"id": uuid.uuid4().hex, "timestamp": time.time()})

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class PolicyListing(BaseModel):
    """A stored policy together with its freshly computed risk score."""

    model_config = ConfigDict(populate_by_name=True)

    origin: str
    policy: Policy
    risk_score: int = Field(alias="riskScore")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

"""Policy layer — capability flags, presets, origin scopes, risk scoring."""

from jade_guard.policy.capabilities import (
    API_CAPABILITY_MAP,
    capability_for,
    denial_message,
)
from jade_guard.policy.models import (
    AuditAction,
    AuditEvent,
    CapabilityFlag,
    Policy,
    PolicyListing,
)
from jade_guard.policy.origin import normalize_origin
from jade_guard.policy.presets import BUILTIN_PRESETS, default_policy, resolve_preset
from jade_guard.policy.risk import BASELINE_RISK, calculate_risk_score

__all__ = [
    "API_CAPABILITY_MAP",
    "AuditAction",
    "AuditEvent",
    "BASELINE_RISK",
    "BUILTIN_PRESETS",
    "CapabilityFlag",
    "Policy",
    "PolicyListing",
    "calculate_risk_score",
    "capability_for",
    "default_policy",
    "denial_message",
    "normalize_origin",
    "resolve_preset",
]

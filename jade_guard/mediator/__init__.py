"""Mediator tier — per-context decisions, store client, DOM detectors."""

from jade_guard.mediator.client import StoreClient
from jade_guard.mediator.detectors import (
    HIDDEN_IFRAME_REASON,
    TRACKING_PIXEL_REASON,
    Detection,
    ElementSnapshot,
    analyze_dom_changes,
)
from jade_guard.mediator.mediator import (
    POLICY_UNAVAILABLE_REASON,
    TIMEOUT_REASON,
    UNKNOWN_API_REASON,
    Decision,
    DenialKind,
    Mediator,
    policy_violation_reason,
)

__all__ = [
    "Decision",
    "DenialKind",
    "Detection",
    "ElementSnapshot",
    "HIDDEN_IFRAME_REASON",
    "Mediator",
    "POLICY_UNAVAILABLE_REASON",
    "StoreClient",
    "TIMEOUT_REASON",
    "TRACKING_PIXEL_REASON",
    "UNKNOWN_API_REASON",
    "analyze_dom_changes",
    "policy_violation_reason",
]

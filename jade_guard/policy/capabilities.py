"""Policy layer — Host API to capability flag mapping.

The Interceptor names each request after the host API being called
(``fetch``, ``localStorage``, ...).  The Mediator translates that name into
the policy flag that governs it.  The map is fixed: an API name that is not
listed here is always denied as an unknown API, whatever the policy says.
"""

from __future__ import annotations

from typing import Any, Mapping

from jade_guard.policy.models import CapabilityFlag

API_CAPABILITY_MAP: dict[str, CapabilityFlag] = {
    "fetch": CapabilityFlag.NETWORK,
    "XMLHttpRequest": CapabilityFlag.NETWORK,
    "localStorage": CapabilityFlag.STORAGE,
    "sessionStorage": CapabilityFlag.STORAGE,
    "cookies": CapabilityFlag.COOKIES,
    "geolocation": CapabilityFlag.GEOLOCATION,
    "mediaDevices": CapabilityFlag.CAMERA,
    "clipboard": CapabilityFlag.CLIPBOARD,
    "Notification": CapabilityFlag.NOTIFICATIONS,
    "RTCPeerConnection": CapabilityFlag.WEBRTC,
}

# User-facing text attached to blocked events.  Placeholders are filled from
# the request details; missing keys render as "unknown".
DENIAL_MESSAGES: dict[str, str] = {
    "fetch": "Blocked network request to {url}",
    "XMLHttpRequest": "Blocked AJAX request to {url}",
    "localStorage": "Blocked local storage access for key: {key}",
    "cookies": "Blocked cookie access",
    "geolocation": "Blocked location access attempt",
    "mediaDevices": "Blocked camera/microphone access",
    "clipboard": "Blocked clipboard access",
    "Notification": "Blocked notification request",
}

DEFAULT_DENIAL_MESSAGE = "Blocked {api} access"


class _Details(dict):  # type: ignore[type-arg]
    def __missing__(self, key: str) -> str:
        return "unknown"


def capability_for(api_name: str) -> CapabilityFlag | None:
    """Return the flag governing *api_name*, or None for unknown APIs."""
    return API_CAPABILITY_MAP.get(api_name)


def denial_message(api_name: str, details: Mapping[str, Any] | None = None) -> str:
    """Render the human-readable block notice for *api_name*."""
    values = _Details(details or {})
    values.setdefault("api", api_name)
    template = DENIAL_MESSAGES.get(api_name, DEFAULT_DENIAL_MESSAGE)
    return template.format_map(values)

"""Policy layer — Default policy and built-in origin presets.

An origin with no stored policy resolves to its preset when one exists
(exact origin match), otherwise to the all-disabled default policy.

    localhost / 127.0.0.1   DOM + storage                 (risk 10)
    google.com              network + DOM + storage       (risk 30)
    github.com              network + DOM + storage       (risk 20)
"""

from __future__ import annotations

from typing import Mapping

from jade_guard.policy.models import CapabilityFlag, Policy


def default_policy(origin: str | None = None) -> Policy:
    """All capabilities disabled, not whitelisted."""
    return Policy(origin=origin)


def _preset(risk_score: int, *flags: CapabilityFlag) -> Policy:
    return Policy(
        capabilities={flag: True for flag in flags},
        risk_score=risk_score,
    )


BUILTIN_PRESETS: dict[str, Policy] = {
    "localhost": _preset(10, CapabilityFlag.DOM, CapabilityFlag.STORAGE),
    "127.0.0.1": _preset(10, CapabilityFlag.DOM, CapabilityFlag.STORAGE),
    "google.com": _preset(
        30, CapabilityFlag.NETWORK, CapabilityFlag.DOM, CapabilityFlag.STORAGE
    ),
    "github.com": _preset(
        20, CapabilityFlag.NETWORK, CapabilityFlag.DOM, CapabilityFlag.STORAGE
    ),
}


def resolve_preset(origin: str, presets: Mapping[str, Policy] | None = None) -> Policy | None:
    """Return a fresh copy of the preset for *origin*, if any."""
    table = BUILTIN_PRESETS if presets is None else presets
    preset = table.get(origin)
    if preset is None:
        return None
    return preset.model_copy(deep=True, update={"origin": origin})

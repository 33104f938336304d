"""Policy layer — Risk score derived from the audit history.

    score = clamp(0, 100, round(50 + 50 * blocked / (blocked + allowed)))

With no allowed/blocked events for the origin the score is the 50 baseline.
``detected`` events do not move the score.
"""

from __future__ import annotations

import math
from typing import Iterable

from jade_guard.policy.models import AuditAction, AuditEvent

BASELINE_RISK = 50


def calculate_risk_score(origin: str, events: Iterable[AuditEvent]) -> int:
    blocked = 0
    allowed = 0
    for event in events:
        if event.origin != origin:
            continue
        if event.action == AuditAction.BLOCKED:
            blocked += 1
        elif event.action == AuditAction.ALLOWED:
            allowed += 1

    total = blocked + allowed
    if total == 0:
        return BASELINE_RISK
    score = BASELINE_RISK + 50 * blocked / total
    # Half-up rounding, not banker's rounding.
    return min(100, max(0, math.floor(score + 0.5)))

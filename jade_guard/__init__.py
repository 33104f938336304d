"""JADE Guard — per-origin capability mediation for untrusted pages.

JADE Guard mediates a page's access to sensitive runtime capabilities
(network, storage, cookies, sensors, clipboard, notifications) according to
a per-origin policy, and keeps an audit trail from which a risk score is
derived for every origin.

Architecture tiers (page to store):
    1. Interceptor — wraps host APIs, turns each call into a permission request
    2. Mediator    — one per browsing context; evaluates requests against a
                     cached policy, logs every decision
    3. Policy Store — owns policy documents and the bounded audit log

Every tier boundary is a Correlation Channel: request/response frames matched
by a single-use request id, with a fail-closed deadline.
"""

__version__ = "0.1.0"
__author__ = "JADE Guard Contributors"
__license__ = "Apache-2.0"

from jade_guard.policy.models import AuditAction, AuditEvent, CapabilityFlag, Policy

__all__ = [
    "__version__",
    "AuditAction",
    "AuditEvent",
    "CapabilityFlag",
    "Policy",
]

"""Mediator tier — per-context permission decisions.

One Mediator serves one browsing context.  It holds a read-through cache of
the active origin's policy, answers the Interceptor's permission requests
from that cache and logs exactly one audit event per decision.  Logging runs
in the background: the decision is returned before the store acknowledges
the event.

Denials:
    unknown_capability   API not in the fixed map; policy not consulted
    policy_violation     mapped flag disabled and origin not whitelisted
    policy_unavailable   no cached policy and the store could not supply one
    timeout              reported by the Interceptor after its deadline

A request that arrives after its own deadline is answered with a denial
without a decision; the Interceptor has already audited it as a timeout.

Navigation is a full re-bind: the cached policy is dropped and re-fetched.
A bind generation counter stops a slow fetch for a previous origin from
landing in the cache after the context has moved on.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, Mapping

from jade_guard.channel.correlation import ChannelEndpoint
from jade_guard.events.bus import TOPIC_ALERTS, EventBus, NullEventBus
from jade_guard.exceptions import ChannelError, MalformedRequestError, StoreResponseError
from jade_guard.logging import bind_guard_context, get_logger
from jade_guard.mediator.client import StoreClient
from jade_guard.mediator.detectors import ElementSnapshot, analyze_dom_changes
from jade_guard.policy.capabilities import capability_for, denial_message
from jade_guard.policy.models import AuditAction, AuditEvent, CapabilityFlag, Policy
from jade_guard.policy.origin import normalize_origin
from jade_guard.protocol.messages import (
    PermissionRequest,
    PermissionResponse,
    PermissionTimeoutNotice,
    PolicyUpdated,
    parse_page_message,
)

log = get_logger(__name__)

UNKNOWN_API_REASON = "Unknown API"
TIMEOUT_REASON = "Permission request timed out"
POLICY_UNAVAILABLE_REASON = "Policy unavailable"
UNBOUND_ORIGIN = "unknown"
DOM_CAPABILITY = "DOM"

DEFAULT_SENSITIVE_APIS = frozenset({"geolocation", "mediaDevices", "clipboard", "cookies"})


def policy_violation_reason(flag: CapabilityFlag) -> str:
    return f"Policy violation: {flag.value} is disabled"


class DenialKind(str, Enum):
    UNKNOWN_CAPABILITY = "unknown_capability"
    POLICY_VIOLATION = "policy_violation"
    TIMEOUT = "timeout"
    POLICY_UNAVAILABLE = "policy_unavailable"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    capability: str
    origin: str
    reason: str | None = None
    kind: DenialKind | None = None
    flag: CapabilityFlag | None = None


class Mediator:
    """Decides permission requests for one browsing context."""

    def __init__(
        self,
        context_id: str,
        store: StoreClient,
        *,
        bus: EventBus | None = None,
        sensitive_apis: Iterable[str] | None = None,
    ) -> None:
        self.context_id = context_id
        self._store = store
        self._bus = bus or NullEventBus()
        self._sensitive_apis = frozenset(
            DEFAULT_SENSITIVE_APIS if sensitive_apis is None else sensitive_apis
        )
        self._origin: str | None = None
        self._url: str | None = None
        self._policy: Policy | None = None
        self._generation = 0
        self._subscribed_origin: str | None = None
        self._background: set[asyncio.Task[None]] = set()
        store.on_policy_updated(self._handle_policy_updated)

    @property
    def origin(self) -> str | None:
        return self._origin

    @property
    def url(self) -> str | None:
        return self._url

    @property
    def cached_policy(self) -> Policy | None:
        return self._policy

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------

    async def bind(self, url_or_origin: str) -> None:
        """Bind to the origin of *url_or_origin*, discarding any cached policy."""
        origin = normalize_origin(url_or_origin)
        self._generation += 1
        generation = self._generation

        await self._cancel_subscription()
        self._origin = origin
        self._url = url_or_origin if "://" in url_or_origin else None
        self._policy = None

        try:
            await self._store.subscribe(origin)
            self._subscribed_origin = origin
        except ChannelError as exc:
            log.warning("policy_subscribe_failed", origin=origin, error=exc.message)

        policy = await self._fetch_policy(origin)
        # An update notification may have filled the cache while fetching.
        if generation == self._generation and self._policy is None and policy is not None:
            self._policy = policy
        log.info("mediator_bound", origin=origin, context_id=self.context_id)

    async def unbind(self) -> None:
        """Stop receiving updates.  In-flight decisions complete unchanged."""
        self._generation += 1
        await self._cancel_subscription()
        log.debug("mediator_unbound", origin=self._origin, context_id=self.context_id)

    async def on_context_navigated(self, url_or_origin: str) -> None:
        origin = normalize_origin(url_or_origin)
        if origin == self._origin:
            if "://" in url_or_origin:
                self._url = url_or_origin
            return
        log.info("context_navigated", previous=self._origin, origin=origin)
        await self.bind(url_or_origin)

    async def on_policy_updated(self, policy: Policy) -> None:
        """Replace the cached policy.  Updates for other origins are ignored."""
        if policy.origin is not None and policy.origin != self._origin:
            log.debug("policy_update_ignored", origin=policy.origin, bound=self._origin)
            return
        self._policy = policy
        log.info("policy_cache_updated", origin=self._origin, whitelisted=policy.whitelisted)

    async def _handle_policy_updated(self, message: PolicyUpdated) -> None:
        policy = message.policy.model_copy(update={"origin": normalize_origin(message.origin)})
        await self.on_policy_updated(policy)

    async def _cancel_subscription(self) -> None:
        origin = self._subscribed_origin
        if origin is None:
            return
        self._subscribed_origin = None
        try:
            await self._store.unsubscribe(origin)
        except ChannelError as exc:
            log.debug("policy_unsubscribe_failed", origin=origin, error=exc.message)

    async def _fetch_policy(self, origin: str) -> Policy | None:
        try:
            return await self._store.get_policy(origin)
        except (ChannelError, StoreResponseError) as exc:
            log.warning("policy_fetch_failed", origin=origin, error=exc.message)
            return None

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    async def decide(self, api_name: str, details: Mapping[str, Any] | None = None) -> Decision:
        """Evaluate one request.  Produces exactly one audit event."""
        payload = dict(details or {})
        origin = self._origin or UNBOUND_ORIGIN
        flag = capability_for(api_name)

        if flag is None:
            decision = Decision(
                allowed=False,
                capability=api_name,
                origin=origin,
                reason=UNKNOWN_API_REASON,
                kind=DenialKind.UNKNOWN_CAPABILITY,
            )
        else:
            policy = self._policy
            if policy is None:
                policy = await self._load_policy()
            if policy is None:
                decision = Decision(
                    allowed=False,
                    capability=api_name,
                    origin=origin,
                    reason=POLICY_UNAVAILABLE_REASON,
                    kind=DenialKind.POLICY_UNAVAILABLE,
                    flag=flag,
                )
            elif policy.allows(flag):
                decision = Decision(allowed=True, capability=api_name, origin=origin, flag=flag)
            else:
                decision = Decision(
                    allowed=False,
                    capability=api_name,
                    origin=origin,
                    reason=policy_violation_reason(flag),
                    kind=DenialKind.POLICY_VIOLATION,
                    flag=flag,
                )

        self._record(decision, payload)
        return decision

    def record_timeout(self, api_name: str, details: Mapping[str, Any] | None = None) -> Decision:
        decision = Decision(
            allowed=False,
            capability=api_name,
            origin=self._origin or UNBOUND_ORIGIN,
            reason=TIMEOUT_REASON,
            kind=DenialKind.TIMEOUT,
            flag=capability_for(api_name),
        )
        self._record(decision, dict(details or {}))
        return decision

    async def _load_policy(self) -> Policy | None:
        if self._origin is None:
            return None
        generation = self._generation
        policy = await self._fetch_policy(self._origin)
        if policy is not None and generation == self._generation and self._policy is None:
            self._policy = policy
        return policy

    def _record(self, decision: Decision, details: dict[str, Any]) -> None:
        if decision.allowed:
            event = AuditEvent(
                origin=decision.origin,
                capability=decision.capability,
                action=AuditAction.ALLOWED,
                details=details,
                url=self._url,
            )
            alert = False
        else:
            event = AuditEvent(
                origin=decision.origin,
                capability=decision.capability,
                action=AuditAction.BLOCKED,
                reason=decision.reason,
                details=details,
                user_message=denial_message(decision.capability, details),
                url=self._url,
            )
            alert = decision.capability in self._sensitive_apis
            log.info(
                "capability_blocked",
                api=decision.capability,
                kind=decision.kind.value if decision.kind else None,
                reason=decision.reason,
            )
        self._spawn(self._log_event(event, alert))

    async def _log_event(self, event: AuditEvent, alert: bool) -> None:
        try:
            await self._store.log_event(event)
        except (ChannelError, StoreResponseError) as exc:
            log.warning(
                "audit_log_failed",
                origin=event.origin,
                capability=event.capability,
                error=exc.message,
            )
        if alert:
            await self._bus.emit(
                TOPIC_ALERTS,
                {
                    "event": "capability_blocked",
                    "origin": event.origin,
                    "api": event.capability,
                    "message": event.user_message,
                    "context_id": self.context_id,
                },
            )

    def _spawn(self, coro: Any) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def drain(self) -> None:
        """Wait for background audit writes to finish."""
        while True:
            pending = [task for task in self._background if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # DOM mutation reports
    # ------------------------------------------------------------------

    def report_dom_mutations(
        self, nodes: Iterable[ElementSnapshot | Mapping[str, Any]]
    ) -> list[AuditEvent]:
        events: list[AuditEvent] = []
        for detection in analyze_dom_changes(nodes):
            event = AuditEvent(
                origin=self._origin or UNBOUND_ORIGIN,
                capability=DOM_CAPABILITY,
                action=AuditAction.DETECTED,
                reason=detection.reason,
                details=detection.details,
                url=self._url,
            )
            log.info("dom_mutation_detected", reason=detection.reason)
            self._spawn(self._log_event(event, alert=False))
            events.append(event)
        return events

    # ------------------------------------------------------------------
    # Page hop
    # ------------------------------------------------------------------

    def attach(self, endpoint: ChannelEndpoint) -> None:
        """Serve the Interceptor on *endpoint*."""
        endpoint.set_request_handler(self.handle_page_request)
        endpoint.set_notification_handler(self.handle_page_notification)

    async def handle_page_request(self, payload: dict[str, Any]) -> dict[str, Any]:
        request_id = str(payload.get("requestId", ""))
        try:
            message = parse_page_message(payload)
        except MalformedRequestError as exc:
            log.warning("page_request_rejected", message_type=exc.message_type)
            return PermissionResponse(request_id=request_id, allowed=False).to_wire()
        if not isinstance(message, PermissionRequest):
            log.warning("page_request_rejected", message_type=message.type)
            return PermissionResponse(request_id=request_id, allowed=False).to_wire()

        bind_guard_context(
            origin=self._origin, context_id=self.context_id, request_id=message.request_id
        )
        if time.time() > message.expires_at:
            # The page already gave up and reports the timeout on its own.
            log.debug("page_request_expired", api=message.capability)
            return PermissionResponse(request_id=message.request_id, allowed=False).to_wire()
        decision = await self.decide(message.capability, message.details)
        return PermissionResponse(request_id=message.request_id, allowed=decision.allowed).to_wire()

    async def handle_page_notification(self, payload: dict[str, Any]) -> None:
        try:
            message = parse_page_message(payload)
        except MalformedRequestError as exc:
            log.warning("page_notification_rejected", message_type=exc.message_type)
            return
        if isinstance(message, PermissionTimeoutNotice):
            bind_guard_context(
                origin=self._origin, context_id=self.context_id, request_id=message.request_id
            )
            log.warning(
                "permission_request_timed_out",
                api=message.capability,
                request_id=message.request_id,
            )
            self.record_timeout(message.capability, message.details)

    async def close(self) -> None:
        await self.unbind()
        await self.drain()
        self._store.on_policy_updated(None)

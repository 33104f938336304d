"""Mediator tier — typed client for the Policy Store control surface."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from jade_guard.channel.correlation import ChannelEndpoint
from jade_guard.exceptions import MalformedRequestError, StoreResponseError
from jade_guard.logging import get_logger
from jade_guard.policy.models import AuditEvent, Policy, PolicyListing
from jade_guard.protocol.messages import (
    GetAllDomains,
    GetLogs,
    GetPolicy,
    LogEvent,
    PolicyUpdated,
    ResetPolicy,
    SavePolicy,
    Subscribe,
    Unsubscribe,
    parse_store_notification,
)

log = get_logger(__name__)

UpdateHandler = Callable[[PolicyUpdated], Awaitable[None]]


class StoreClient:
    """Speaks the control surface over a Correlation Channel endpoint.

    Failed envelopes raise :class:`StoreResponseError`; transport failures
    surface as ``RequestTimeoutError`` / ``ChannelClosedError``.
    """

    def __init__(self, endpoint: ChannelEndpoint, timeout: float | None = None) -> None:
        self._endpoint = endpoint
        self._timeout = timeout
        self._update_handler: UpdateHandler | None = None
        endpoint.set_notification_handler(self._dispatch_notification)

    @property
    def endpoint(self) -> ChannelEndpoint:
        return self._endpoint

    async def _call(self, message: Any) -> dict[str, Any]:
        response = await self._endpoint.request(message.to_wire(), timeout=self._timeout)
        if not response.get("success"):
            raise StoreResponseError(message.type, str(response.get("error", "unknown error")))
        return response

    async def get_policy(self, origin: str) -> Policy:
        response = await self._call(GetPolicy(origin=origin))
        return Policy.model_validate(response["policy"])

    async def save_policy(self, origin: str, policy: Policy) -> Policy:
        response = await self._call(SavePolicy(origin=origin, policy=policy))
        return Policy.model_validate(response["policy"])

    async def reset_policy(self, origin: str) -> Policy:
        response = await self._call(ResetPolicy(origin=origin))
        return Policy.model_validate(response["policy"])

    async def log_event(self, event: AuditEvent) -> AuditEvent:
        response = await self._call(LogEvent(event=event))
        return AuditEvent.model_validate(response["event"])

    async def get_logs(
        self, limit: int | None = None, origin: str | None = None
    ) -> list[AuditEvent]:
        response = await self._call(GetLogs(limit=limit, origin=origin))
        return [AuditEvent.model_validate(doc) for doc in response["logs"]]

    async def list_domains(self) -> list[PolicyListing]:
        response = await self._call(GetAllDomains())
        return [PolicyListing.model_validate(doc) for doc in response["domains"]]

    # ------------------------------------------------------------------
    # Update notifications
    # ------------------------------------------------------------------

    async def subscribe(self, origin: str) -> None:
        await self._endpoint.notify(Subscribe(origin=origin).to_wire())

    async def unsubscribe(self, origin: str) -> None:
        await self._endpoint.notify(Unsubscribe(origin=origin).to_wire())

    def on_policy_updated(self, handler: UpdateHandler | None) -> None:
        self._update_handler = handler

    async def _dispatch_notification(self, payload: dict[str, Any]) -> None:
        try:
            message = parse_store_notification(payload)
        except MalformedRequestError as exc:
            log.warning("store_notification_rejected", message_type=exc.message_type)
            return
        if self._update_handler is not None:
            await self._update_handler(message)

    async def close(self) -> None:
        await self._endpoint.close()

"""Policy Store — control-surface server.

Receives raw control messages, validates them against the tagged-variant
protocol and dispatches to :class:`PolicyStore`.  Every reply is an envelope;
no exception escapes to the caller.

Callers reach the server in two ways:
  - ``await server.handle_message(raw)`` — in-process (the admin CLI)
  - ``server.connect(name)``             — a Correlation Channel endpoint
    (Mediators), which additionally accepts SUBSCRIBE / UNSUBSCRIBE notices
    and receives POLICY_UPDATED notifications for subscribed origins
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from jade_guard.channel.correlation import ChannelEndpoint, channel_pair
from jade_guard.exceptions import ChannelClosedError, JadeError, MalformedRequestError
from jade_guard.logging import get_logger
from jade_guard.policy.models import Policy
from jade_guard.policy.origin import normalize_origin
from jade_guard.protocol.messages import (
    UNKNOWN_REQUEST_TYPE,
    GetAllDomains,
    GetLogs,
    GetPolicy,
    LogEvent,
    PolicyUpdated,
    ResetPolicy,
    SavePolicy,
    Subscribe,
    Unsubscribe,
    fail,
    ok,
    parse_control_message,
    parse_subscription_message,
)
from jade_guard.store.policy_store import PolicyCallback, PolicyStore

log = get_logger(__name__)


@dataclass
class _Connection:
    name: str
    endpoint: ChannelEndpoint
    peer: ChannelEndpoint
    subscriptions: dict[str, PolicyCallback] = field(default_factory=dict)


class StoreServer:
    def __init__(self, store: PolicyStore, default_timeout: float = 2.0) -> None:
        self._store = store
        self._default_timeout = default_timeout
        self._connections: dict[str, _Connection] = {}

    @property
    def store(self) -> PolicyStore:
        return self._store

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def handle_message(self, raw: Any) -> dict[str, Any]:
        try:
            message = parse_control_message(raw)
        except MalformedRequestError as exc:
            log.warning(
                "control_message_rejected",
                message_type=exc.message_type,
                errors=exc.errors,
            )
            return fail(UNKNOWN_REQUEST_TYPE)

        try:
            return await self._dispatch(message)
        except JadeError as exc:
            log.error("control_message_failed", message_type=message.type, error=exc.message)
            return fail(exc.message)
        except Exception as exc:
            log.exception("control_message_crashed", message_type=message.type)
            return fail(str(exc))

    async def _dispatch(self, message: Any) -> dict[str, Any]:
        if isinstance(message, GetPolicy):
            origin = normalize_origin(message.origin)
            policy = await self._store.get_policy(origin)
            return ok(policy=policy.to_document(), origin=origin)

        if isinstance(message, SavePolicy):
            saved = await self._store.save_policy(normalize_origin(message.origin), message.policy)
            return ok(policy=saved.to_document())

        if isinstance(message, ResetPolicy):
            reset = await self._store.reset_policy(normalize_origin(message.origin))
            return ok(policy=reset.to_document())

        if isinstance(message, LogEvent):
            logged = await self._store.log_event(message.event)
            return ok(event=logged.to_document())

        if isinstance(message, GetLogs):
            events = await self._store.query_logs(message.limit, message.origin)
            return ok(logs=[e.to_document() for e in events])

        if isinstance(message, GetAllDomains):
            listings = await self._store.list_policies()
            return ok(domains=[entry.to_document() for entry in listings])

        return fail(UNKNOWN_REQUEST_TYPE)

    # ------------------------------------------------------------------
    # Channel connections
    # ------------------------------------------------------------------

    def connect(self, name: str) -> ChannelEndpoint:
        """Open a channel to the store and return the caller's endpoint.

        Must be called from a running event loop.  Both endpoints are started.
        """
        if name in self._connections:
            raise ValueError(f"Connection '{name}' already exists")
        server_end, client_end = channel_pair(
            f"store:{name}", name, default_timeout=self._default_timeout
        )
        connection = _Connection(name=name, endpoint=server_end, peer=client_end)
        server_end.set_request_handler(self.handle_message)
        server_end.set_notification_handler(
            lambda payload: self._handle_subscription(connection, payload)
        )
        server_end.start()
        client_end.start()
        self._connections[name] = connection
        log.debug("store_connection_opened", connection=name)
        return client_end

    async def disconnect(self, name: str) -> None:
        connection = self._connections.pop(name, None)
        if connection is None:
            return
        for origin, callback in connection.subscriptions.items():
            self._store.unsubscribe(origin, callback)
        connection.subscriptions.clear()
        await connection.endpoint.close()
        await connection.peer.close()
        log.debug("store_connection_closed", connection=name)

    async def close(self) -> None:
        for name in list(self._connections):
            await self.disconnect(name)

    async def _handle_subscription(self, connection: _Connection, payload: dict[str, Any]) -> None:
        try:
            message = parse_subscription_message(payload)
        except MalformedRequestError as exc:
            log.warning("subscription_message_rejected", message_type=exc.message_type)
            return
        origin = normalize_origin(message.origin)

        if isinstance(message, Subscribe):
            if origin in connection.subscriptions:
                return
            callback = self._make_notifier(connection, origin)
            connection.subscriptions[origin] = callback
            self._store.subscribe(origin, callback)
            log.debug("store_subscribed", connection=connection.name, origin=origin)
        elif isinstance(message, Unsubscribe):
            callback = connection.subscriptions.pop(origin, None)
            if callback is not None:
                self._store.unsubscribe(origin, callback)
                log.debug("store_unsubscribed", connection=connection.name, origin=origin)

    @staticmethod
    def _make_notifier(connection: _Connection, origin: str) -> PolicyCallback:
        async def notify(scope: str, policy: Policy) -> None:
            try:
                await connection.endpoint.notify(PolicyUpdated(origin=scope, policy=policy).to_wire())
            except ChannelClosedError:
                log.debug("policy_update_undeliverable", connection=connection.name, origin=origin)

        return notify

"""Policy Store — process-wide owner of policies and the audit log.

One instance per runtime, with an explicit lifecycle::

    store = PolicyStore(SQLiteStorage(path))
    await store.init()        # rehydrate the persisted log, write install metadata
    ...
    await store.shutdown()

Durable layout in the key-value service:

    policy_<origin>      Policy document (camelCase keys)
    logs                 the most recent ``persisted_logs`` audit events
    extensionEnabled     install metadata, written once
    defaultPolicy        install metadata, written once
    installationTime     install metadata, written once

The in-memory log is the source of truth between flushes.  Appends are
synchronous (prepend + truncate with no suspension point), so no reader ever
sees more than ``max_logs`` entries; the durable slice is then written under
a lock from a snapshot taken inside it.

Risk scores in listings come from the in-memory log at call time.  After a
restart only the persisted slice is rehydrated, so scores are computed from
a shorter history than before the restart.
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable, Mapping, Sequence

from pydantic import ValidationError

from jade_guard.events.bus import TOPIC_AUDIT, TOPIC_POLICY, EventBus, NullEventBus
from jade_guard.exceptions import StorageFailureError
from jade_guard.logging import get_logger
from jade_guard.policy.models import AuditEvent, Policy, PolicyListing
from jade_guard.policy.origin import normalize_origin
from jade_guard.policy.presets import BUILTIN_PRESETS, default_policy, resolve_preset
from jade_guard.policy.risk import calculate_risk_score
from jade_guard.storage.base import KeyValueStorage

log = get_logger(__name__)

POLICY_KEY_PREFIX = "policy_"
LOGS_KEY = "logs"
ENABLED_KEY = "extensionEnabled"
DEFAULT_POLICY_KEY = "defaultPolicy"
INSTALLATION_TIME_KEY = "installationTime"

PolicyCallback = Callable[[str, Policy], Awaitable[None]]


def policy_key(origin: str) -> str:
    return f"{POLICY_KEY_PREFIX}{origin}"


class PolicyStore:
    """Owns policy documents and the bounded audit log.

    Args:
        storage:        External key-value service.
        max_logs:       In-memory audit log cap.
        persisted_logs: Size of the durable slice written on every append.
        presets:        Origin presets; defaults to the built-in ones.
        bus:            Receives the audit mirror and policy change events.
        default_query_limit: ``query_logs()`` limit when the caller gives none.
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        max_logs: int = 1000,
        persisted_logs: int = 100,
        presets: Mapping[str, Policy] | None = None,
        bus: EventBus | None = None,
        default_query_limit: int = 50,
    ) -> None:
        self._storage = storage
        self._max_logs = max_logs
        self._persisted_logs = min(persisted_logs, max_logs)
        self._presets: dict[str, Policy] = dict(BUILTIN_PRESETS if presets is None else presets)
        self._bus = bus or NullEventBus()
        self._default_query_limit = default_query_limit
        self._logs: list[AuditEvent] = []
        self._flush_lock = asyncio.Lock()
        self._subscribers: dict[str, list[PolicyCallback]] = {}
        self._initialised = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        await self._storage.init()
        stored = await self._read([LOGS_KEY, ENABLED_KEY, DEFAULT_POLICY_KEY, INSTALLATION_TIME_KEY])

        self._logs = self._parse_events(stored.get(LOGS_KEY) or [])[: self._max_logs]

        metadata: dict[str, Any] = {}
        if ENABLED_KEY not in stored:
            metadata[ENABLED_KEY] = True
        if DEFAULT_POLICY_KEY not in stored:
            metadata[DEFAULT_POLICY_KEY] = default_policy().to_document()["capabilities"]
        if INSTALLATION_TIME_KEY not in stored:
            metadata[INSTALLATION_TIME_KEY] = time.time()
        if metadata:
            await self._write(metadata)
            log.info("policy_store_installed", keys=sorted(metadata))

        self._initialised = True
        log.info("policy_store_init", rehydrated_events=len(self._logs))

    async def shutdown(self) -> None:
        self._subscribers.clear()
        await self._storage.close()
        self._initialised = False
        log.info("policy_store_shutdown")

    @property
    def initialised(self) -> bool:
        return self._initialised

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------

    async def get_policy(self, origin: str) -> Policy:
        """Stored policy, else the origin's preset, else the default policy.

        A missing or unreadable policy document never fails the call.
        """
        scope = normalize_origin(origin)
        stored = await self._read([policy_key(scope)])
        document = stored.get(policy_key(scope))
        if document is not None:
            try:
                return Policy.model_validate(document).model_copy(update={"origin": scope})
            except ValidationError as exc:
                log.warning("policy_document_invalid", origin=scope, errors=exc.error_count())
        preset = resolve_preset(scope, self._presets)
        if preset is not None:
            return preset
        return default_policy(scope)

    async def save_policy(self, origin: str, policy: Policy) -> Policy:
        """Stamp, persist and broadcast *policy*.  Concurrent saves: last write wins."""
        scope = normalize_origin(origin)
        saved = policy.model_copy(update={"last_updated": time.time(), "origin": scope})
        await self._write({policy_key(scope): saved.to_document()})
        log.info("policy_saved", origin=scope, whitelisted=saved.whitelisted)

        await self._broadcast(scope, saved)
        await self._bus.emit(
            TOPIC_POLICY,
            {"event": "policy_saved", "origin": scope, "policy": saved.to_document()},
        )
        return saved

    async def reset_policy(self, origin: str) -> Policy:
        scope = normalize_origin(origin)
        return await self.save_policy(scope, default_policy(scope))

    async def list_policies(self) -> list[PolicyListing]:
        """Every stored policy, sorted by origin, with a fresh risk score."""
        stored = await self._read(None)
        events = list(self._logs)
        listings: list[PolicyListing] = []
        for key, document in stored.items():
            if not key.startswith(POLICY_KEY_PREFIX):
                continue
            origin = key[len(POLICY_KEY_PREFIX):]
            try:
                policy = Policy.model_validate(document)
            except ValidationError as exc:
                log.warning("policy_document_invalid", origin=origin, errors=exc.error_count())
                continue
            listings.append(
                PolicyListing(
                    origin=origin,
                    policy=policy,
                    risk_score=calculate_risk_score(origin, events),
                )
            )
        listings.sort(key=lambda listing: listing.origin)
        return listings

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    async def log_event(self, event: AuditEvent) -> AuditEvent:
        """Assign id + timestamp, prepend, then persist the durable slice.

        A failed flush raises StorageFailureError; the event stays in the
        in-memory log.
        """
        stamped = event.stamped()
        self._logs.insert(0, stamped)
        del self._logs[self._max_logs:]

        await self._bus.emit(TOPIC_AUDIT, {"event": "audit_logged", **stamped.to_document()})
        await self._flush_logs()
        return stamped

    async def query_logs(
        self, limit: int | None = None, origin: str | None = None
    ) -> list[AuditEvent]:
        """Most-recent-first events from the durable slice.

        *origin* (URL or host) filters before *limit* is applied.
        """
        effective = self._default_query_limit if limit is None else limit
        stored = await self._read([LOGS_KEY])
        events = self._parse_events(stored.get(LOGS_KEY) or [])
        if origin is not None:
            scope = normalize_origin(origin)
            events = [e for e in events if e.origin == scope]
        return events[:effective]

    def snapshot_logs(self) -> list[AuditEvent]:
        """Copy of the in-memory log, most recent first."""
        return list(self._logs)

    async def _flush_logs(self) -> None:
        async with self._flush_lock:
            slice_ = [e.to_document() for e in self._logs[: self._persisted_logs]]
            await self._write({LOGS_KEY: slice_})

    # ------------------------------------------------------------------
    # Update notifications
    # ------------------------------------------------------------------

    def subscribe(self, origin: str, callback: PolicyCallback) -> None:
        self._subscribers.setdefault(normalize_origin(origin), []).append(callback)

    def unsubscribe(self, origin: str, callback: PolicyCallback) -> None:
        scope = normalize_origin(origin)
        callbacks = self._subscribers.get(scope)
        if not callbacks:
            return
        try:
            callbacks.remove(callback)
        except ValueError:
            return
        if not callbacks:
            del self._subscribers[scope]

    def subscriber_count(self, origin: str) -> int:
        return len(self._subscribers.get(normalize_origin(origin), []))

    async def _broadcast(self, origin: str, policy: Policy) -> None:
        callbacks = list(self._subscribers.get(origin, []))
        if not callbacks:
            return
        results = await asyncio.gather(
            *(cb(origin, policy.model_copy(deep=True)) for cb in callbacks),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                log.warning("policy_broadcast_failed", origin=origin, error=str(result))

    # ------------------------------------------------------------------
    # Storage helpers
    # ------------------------------------------------------------------

    async def _read(self, keys: Sequence[str] | None) -> dict[str, Any]:
        try:
            return await self._storage.get(keys)
        except StorageFailureError as exc:
            log.error("storage_read_failed", error=exc.message)
            raise
        except Exception as exc:
            log.error("storage_read_failed", error=str(exc))
            raise StorageFailureError("get", exc) from exc

    async def _write(self, items: Mapping[str, Any]) -> None:
        try:
            await self._storage.set(items)
        except StorageFailureError as exc:
            log.error("storage_write_failed", keys=sorted(items), error=exc.message)
            raise
        except Exception as exc:
            log.error("storage_write_failed", keys=sorted(items), error=str(exc))
            raise StorageFailureError("set", exc) from exc

    @staticmethod
    def _parse_events(documents: list[Any]) -> list[AuditEvent]:
        events: list[AuditEvent] = []
        for document in documents:
            try:
                events.append(AuditEvent.model_validate(document))
            except ValidationError:
                log.warning("audit_document_invalid")
        return events

"""JADE Guard — Runtime wiring.

``GuardRuntime`` owns the process-wide Policy Store and opens one browsing
context per page: a Mediator connected to the store over a channel, and an
Interceptor installed into the page's host, connected to the Mediator over a
second channel.

Usage::

    async with GuardRuntime(Settings.load()) as runtime:
        context = await runtime.open_context("https://example.com/")
        await context.host.fetch("https://api.example.com/")   # gated
        await runtime.navigate(context.context_id, "https://github.com/")
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any, Mapping

from jade_guard.channel.correlation import ChannelEndpoint, channel_pair
from jade_guard.config import PresetConfig, Settings, get_settings
from jade_guard.events.bus import EventBus, LogEventBus, NullEventBus
from jade_guard.interceptor.host import Host
from jade_guard.interceptor.interceptor import Interceptor
from jade_guard.logging import configure_logging, get_logger
from jade_guard.mediator.client import StoreClient
from jade_guard.mediator.mediator import Mediator
from jade_guard.policy.models import Policy
from jade_guard.policy.presets import BUILTIN_PRESETS
from jade_guard.storage import KeyValueStorage, create_storage
from jade_guard.store.policy_store import PolicyStore
from jade_guard.store.server import StoreServer

log = get_logger(__name__)


def build_presets(extra: Mapping[str, PresetConfig]) -> dict[str, Policy]:
    """Built-in presets with operator presets merged over them."""
    presets = dict(BUILTIN_PRESETS)
    for origin, preset in extra.items():
        presets[origin] = Policy(
            capabilities=dict(preset.capabilities),
            whitelisted=preset.whitelisted,
            risk_score=preset.risk_score,
        )
    return presets


def build_bus(settings: Settings) -> EventBus:
    if settings.logging.audit_file is None:
        return NullEventBus()
    return LogEventBus(settings.logging.audit_file)


def build_store(
    settings: Settings,
    storage: KeyValueStorage | None = None,
    bus: EventBus | None = None,
) -> PolicyStore:
    return PolicyStore(
        storage or create_storage(settings.storage.backend, settings.storage.path),
        max_logs=settings.audit.max_entries,
        persisted_logs=settings.audit.persisted_entries,
        presets=build_presets(settings.policy.extra_presets),
        bus=bus if bus is not None else build_bus(settings),
        default_query_limit=settings.audit.default_query_limit,
    )


@dataclass
class BrowsingContext:
    context_id: str
    host: Any
    mediator: Mediator
    interceptor: Interceptor
    page_endpoint: ChannelEndpoint
    mediator_endpoint: ChannelEndpoint
    store_client: StoreClient
    connection_name: str


class GuardRuntime:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        storage: KeyValueStorage | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        logging_cfg = self._settings.logging
        configure_logging(
            level=logging_cfg.level,
            format=logging_cfg.format,
            log_file=str(logging_cfg.file.expanduser()) if logging_cfg.file else None,
        )
        self._bus = bus if bus is not None else build_bus(self._settings)
        self.store = build_store(self._settings, storage, self._bus)
        self.server = StoreServer(self.store, default_timeout=self._settings.channel.request_timeout)
        self._contexts: dict[str, BrowsingContext] = {}
        self._started = False

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def contexts(self) -> dict[str, BrowsingContext]:
        return dict(self._contexts)

    async def start(self) -> None:
        if self._started:
            return
        await self.store.init()
        self._started = True
        log.info("guard_runtime_started", storage=self._settings.storage.backend)

    async def shutdown(self) -> None:
        for context_id in list(self._contexts):
            await self.close_context(context_id)
        await self.server.close()
        if self._started:
            await self.store.shutdown()
            self._started = False
        log.info("guard_runtime_stopped")

    async def __aenter__(self) -> "GuardRuntime":
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.shutdown()

    # ------------------------------------------------------------------
    # Browsing contexts
    # ------------------------------------------------------------------

    async def open_context(self, url: str, host: Any | None = None) -> BrowsingContext:
        """Create a Mediator bound to *url* and install an Interceptor into *host*."""
        if not self._started:
            raise RuntimeError("GuardRuntime.start() must be called first")
        timeout = self._settings.channel.request_timeout
        context_id = uuid.uuid4().hex[:12]
        connection_name = f"mediator:{context_id}"

        store_client = StoreClient(self.server.connect(connection_name), timeout=timeout)
        mediator = Mediator(
            context_id,
            store_client,
            bus=self._bus,
            sensitive_apis=self._settings.alerts.sensitive_apis,
        )

        page_end, mediator_end = channel_pair(
            f"page:{context_id}", f"mediator:{context_id}", default_timeout=timeout
        )
        mediator.attach(mediator_end)
        page_end.start()
        mediator_end.start()
        await mediator.bind(url)

        page_host = host if host is not None else Host(url)
        interceptor = Interceptor(page_end, timeout=timeout)
        interceptor.install(page_host)

        context = BrowsingContext(
            context_id=context_id,
            host=page_host,
            mediator=mediator,
            interceptor=interceptor,
            page_endpoint=page_end,
            mediator_endpoint=mediator_end,
            store_client=store_client,
            connection_name=connection_name,
        )
        self._contexts[context_id] = context
        log.info("context_opened", context_id=context_id, origin=mediator.origin)
        return context

    async def navigate(self, context_id: str, url: str) -> None:
        context = self._contexts[context_id]
        if hasattr(context.host, "location"):
            context.host.location = url
        await context.mediator.on_context_navigated(url)

    async def close_context(self, context_id: str) -> None:
        context = self._contexts.pop(context_id, None)
        if context is None:
            return
        await context.mediator.close()
        await context.page_endpoint.close()
        await context.mediator_endpoint.close()
        await self.server.disconnect(context.connection_name)
        log.info("context_closed", context_id=context_id)

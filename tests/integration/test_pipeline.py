"""Integration tests — page → Interceptor → Mediator → Policy Store.

Each test opens a real browsing context on a GuardRuntime backed by memory
storage and drives the guarded host APIs the way page code would.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable
from unittest.mock import AsyncMock

import pytest

from jade_guard.config import Settings
from jade_guard.events.bus import TOPIC_ALERTS, EventBus
from jade_guard.exceptions import CapabilityDeniedError
from jade_guard.mediator.mediator import TIMEOUT_REASON, UNKNOWN_API_REASON
from jade_guard.policy.models import AuditAction, AuditEvent, CapabilityFlag, Policy
from jade_guard.runtime import GuardRuntime
from jade_guard.storage.base import MemoryStorage


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


def logged(runtime: GuardRuntime, **match: Any) -> list[AuditEvent]:
    return [
        event
        for event in runtime.store.snapshot_logs()
        if all(getattr(event, key) == value for key, value in match.items())
    ]


@pytest.mark.integration
class TestDefaultPolicy:
    async def test_fetch_blocked_on_unknown_origin(self, runtime: GuardRuntime) -> None:
        context = await runtime.open_context("https://example.com/page")

        with pytest.raises(CapabilityDeniedError, match="Network request blocked by policy"):
            await context.host.fetch("https://api.example.com/data")
        await context.mediator.drain()

        assert context.host.requests == []
        [event] = runtime.store.snapshot_logs()
        assert event.origin == "example.com"
        assert event.capability == "fetch"
        assert event.action == AuditAction.BLOCKED
        assert event.reason == "Policy violation: allowNetwork is disabled"
        assert event.user_message == "Blocked network request to https://api.example.com/data"
        assert event.url == "https://example.com/page"

    async def test_unserializable_argument_travels_as_text(self, runtime: GuardRuntime) -> None:
        class Constraints:
            def __str__(self) -> str:
                return "video-only"

        context = await runtime.open_context("https://example.com/")

        with pytest.raises(CapabilityDeniedError, match="Media device permission denied"):
            await context.host.navigator.media_devices.get_user_media(Constraints())
        await context.mediator.drain()

        [event] = logged(runtime, capability="mediaDevices")
        assert event.action == AuditAction.BLOCKED
        assert event.details["constraints"] == "video-only"

    async def test_localhost_preset(self, runtime: GuardRuntime) -> None:
        context = await runtime.open_context("http://localhost:3000/")

        await context.host.local_storage.set_item("theme", "dark")
        assert await context.host.local_storage.get_item("theme") == "dark"
        with pytest.raises(CapabilityDeniedError):
            await context.host.fetch("http://localhost:3000/api")
        await context.mediator.drain()

        assert len(logged(runtime, origin="localhost", action=AuditAction.ALLOWED)) == 2
        assert len(logged(runtime, origin="localhost", action=AuditAction.BLOCKED)) == 1

    async def test_unknown_api_denied(self, runtime: GuardRuntime) -> None:
        context = await runtime.open_context("https://github.com/")

        allowed = await context.interceptor.request_permission("smellovision", {})
        await context.mediator.drain()

        assert allowed is False
        [event] = logged(runtime, capability="smellovision")
        assert event.reason == UNKNOWN_API_REASON
        assert event.action == AuditAction.BLOCKED

    async def test_denied_read_returns_neutral_value(self, runtime: GuardRuntime) -> None:
        context = await runtime.open_context("https://example.com/")

        assert await context.host.cookies.get() == ""
        assert await context.host.navigator.clipboard.read_text() == ""
        assert await context.host.local_storage.get_item("k") is None

    async def test_geolocation_error_callback(self, runtime: GuardRuntime) -> None:
        context = await runtime.open_context("https://example.com/")
        errors: list[Exception] = []

        await context.host.navigator.geolocation.get_current_position(
            lambda position: pytest.fail("success callback must not run"),
            errors.append,
        )

        assert len(errors) == 1
        assert isinstance(errors[0], CapabilityDeniedError)
        assert errors[0].code == 1


@pytest.mark.integration
class TestPolicyChanges:
    async def test_saved_policy_allows(self, runtime: GuardRuntime) -> None:
        await runtime.store.save_policy(
            "example.com", Policy().with_flags(NETWORK=True)
        )
        context = await runtime.open_context("https://example.com/")

        response = await context.host.fetch("https://api.example.com/data", method="POST")

        assert response["status"] == 200
        assert context.host.requests == [{"url": "https://api.example.com/data", "method": "POST"}]

    async def test_live_update_reaches_open_context(self, runtime: GuardRuntime) -> None:
        context = await runtime.open_context("https://example.com/")
        with pytest.raises(CapabilityDeniedError):
            await context.host.fetch("https://example.com/a")

        await runtime.store.save_policy("example.com", Policy().with_flags(NETWORK=True))
        await wait_until(
            lambda: context.mediator.cached_policy is not None
            and context.mediator.cached_policy.allows(CapabilityFlag.NETWORK)
        )

        response = await context.host.fetch("https://example.com/a")
        assert response["status"] == 200

    async def test_update_for_other_origin_ignored(self, runtime: GuardRuntime) -> None:
        context = await runtime.open_context("https://example.com/")

        await runtime.store.save_policy("other.com", Policy(whitelisted=True))
        await asyncio.sleep(0.05)

        assert context.mediator.cached_policy is not None
        assert context.mediator.cached_policy.whitelisted is False

    async def test_whitelist_overrides_flags(self, runtime: GuardRuntime) -> None:
        await runtime.store.save_policy("example.com", Policy(whitelisted=True))
        context = await runtime.open_context("https://example.com/")

        stream = await context.host.navigator.media_devices.get_user_media({"video": True})
        await context.host.navigator.clipboard.write_text("copied")

        assert stream["kind"] == "stream"

    async def test_reset_restores_default(self, runtime: GuardRuntime) -> None:
        await runtime.store.save_policy("example.com", Policy().with_flags(NETWORK=True))
        context = await runtime.open_context("https://example.com/")
        await context.host.fetch("https://example.com/")

        await runtime.store.reset_policy("example.com")
        await wait_until(
            lambda: context.mediator.cached_policy is not None
            and not context.mediator.cached_policy.allows(CapabilityFlag.NETWORK)
        )

        with pytest.raises(CapabilityDeniedError):
            await context.host.fetch("https://example.com/")


@pytest.mark.integration
class TestNavigation:
    async def test_rebind_on_cross_origin_navigation(self, runtime: GuardRuntime) -> None:
        context = await runtime.open_context("https://example.com/")
        assert await context.host.local_storage.get_item("k") is None

        await runtime.navigate(context.context_id, "http://localhost:8080/app")
        await context.host.local_storage.set_item("k", "v")
        await context.mediator.drain()

        assert context.mediator.origin == "localhost"
        assert await context.host.local_storage.get_item("k") == "v"
        assert logged(runtime, origin="localhost", action=AuditAction.ALLOWED)
        await wait_until(
            lambda: runtime.store.subscriber_count("localhost") == 1
            and runtime.store.subscriber_count("example.com") == 0
        )

    async def test_same_origin_navigation_keeps_cache(self, runtime: GuardRuntime) -> None:
        context = await runtime.open_context("https://example.com/a")
        cached = context.mediator.cached_policy

        await runtime.navigate(context.context_id, "https://www.example.com/b")

        assert context.mediator.cached_policy is cached
        assert context.mediator.url == "https://www.example.com/b"

    async def test_contexts_are_isolated(self, runtime: GuardRuntime) -> None:
        first = await runtime.open_context("http://localhost/")
        second = await runtime.open_context("http://localhost/")

        await second.host.local_storage.set_item("k", "v")
        assert await first.host.local_storage.get_item("k") is None


@pytest.mark.integration
class TestTimeouts:
    async def test_stalled_decision_denies_and_is_audited(
        self, runtime: GuardRuntime, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        context = await runtime.open_context("https://github.com/")
        never = asyncio.Event()

        async def stall(api_name: str, details: Any = None) -> Any:
            await never.wait()

        monkeypatch.setattr(context.mediator, "decide", stall)

        with pytest.raises(CapabilityDeniedError):
            await context.host.fetch("https://github.com/api")

        await wait_until(lambda: bool(logged(runtime, reason=TIMEOUT_REASON)))
        [event] = logged(runtime, reason=TIMEOUT_REASON)
        assert event.origin == "github.com"
        assert event.capability == "fetch"
        assert event.action == AuditAction.BLOCKED

    async def test_closed_channel_denies(self, runtime: GuardRuntime) -> None:
        context = await runtime.open_context("https://github.com/")
        await context.mediator_endpoint.close()

        with pytest.raises(CapabilityDeniedError):
            await context.host.fetch("https://github.com/api")


@pytest.mark.integration
class TestRiskAndDetection:
    async def test_all_domains_risk_score(self, runtime: GuardRuntime) -> None:
        await runtime.store.save_policy("example.com", Policy().with_flags(NETWORK=True))
        context = await runtime.open_context("https://example.com/")

        await context.host.fetch("https://example.com/")
        with pytest.raises(CapabilityDeniedError):
            await context.host.navigator.clipboard.write_text("x")
        await context.mediator.drain()

        response = await runtime.server.handle_message({"type": "GET_ALL_DOMAINS"})
        assert response["success"] is True
        [entry] = response["domains"]
        assert entry["origin"] == "example.com"
        assert entry["riskScore"] == 75

    async def test_hidden_pixel_detected(self, runtime: GuardRuntime) -> None:
        context = await runtime.open_context("https://example.com/")

        events = context.mediator.report_dom_mutations(
            [
                {"tag": "IMG", "src": "https://t.example/p.gif", "style": {"width": "0px"}},
                {"tag": "DIV", "style": {"display": "none"}},
            ]
        )
        await context.mediator.drain()

        assert len(events) == 1
        [event] = logged(runtime, action=AuditAction.DETECTED)
        assert event.capability == "DOM"
        assert event.details["src"] == "https://t.example/p.gif"

    async def test_sensitive_block_raises_alert(self, test_settings: Settings) -> None:
        bus = AsyncMock(spec=EventBus)
        async with GuardRuntime(test_settings, storage=MemoryStorage(), bus=bus) as runtime:
            context = await runtime.open_context("https://example.com/")
            await context.host.navigator.geolocation.get_current_position(lambda p: None)
            await context.mediator.drain()

        alerts = [c for c in bus.emit.await_args_list if c.args[0] == TOPIC_ALERTS]
        assert len(alerts) == 1
        payload = alerts[0].args[1]
        assert payload["event"] == "capability_blocked"
        assert payload["api"] == "geolocation"
        assert payload["origin"] == "example.com"

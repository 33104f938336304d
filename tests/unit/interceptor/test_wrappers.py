"""Unit tests — guard factories and GuardedProxy."""

from __future__ import annotations

from typing import Any

import pytest

from jade_guard.exceptions import CapabilityDeniedError
from jade_guard.interceptor.wrappers import (
    ORIGINAL_ATTR,
    GuardedProxy,
    guard_callback,
    guard_members,
    guard_read,
    guard_request,
    guard_xhr_class,
)


def _permission(answer: bool, seen: list[tuple[str, dict[str, Any]]] | None = None):
    async def permission(api_name: str, details: dict[str, Any]) -> bool:
        if seen is not None:
            seen.append((api_name, details))
        return answer

    return permission


def _describe(*args: Any, **kwargs: Any) -> dict[str, Any]:
    return {"args": list(args)}


@pytest.mark.unit
class TestGuardRequest:
    async def test_sync_original_result_passed_through(self) -> None:
        wrapped = guard_request("fetch", lambda x: x * 2, _permission(True), _describe)
        assert await wrapped(21) == 42

    async def test_async_original_awaited(self) -> None:
        async def original(x: int) -> int:
            return x + 1

        wrapped = guard_request("fetch", original, _permission(True), _describe)
        assert await wrapped(1) == 2

    async def test_denied_raises_with_default_message(self) -> None:
        wrapped = guard_request("RTCPeerConnection", lambda: None, _permission(False), _describe)
        with pytest.raises(CapabilityDeniedError) as exc_info:
            await wrapped()
        assert str(exc_info.value) == "JADE: RTCPeerConnection blocked by policy"
        assert exc_info.value.api_name == "RTCPeerConnection"

    async def test_describe_receives_call_arguments(self) -> None:
        seen: list[tuple[str, dict[str, Any]]] = []
        wrapped = guard_request("fetch", lambda url: url, _permission(True, seen), _describe)
        await wrapped("/a")
        assert seen == [("fetch", {"args": ["/a"]})]

    def test_original_reference_kept(self) -> None:
        def original() -> None:
            pass

        wrapped = guard_request("fetch", original, _permission(True), _describe)
        assert getattr(wrapped, ORIGINAL_ATTR) is original
        assert wrapped.__name__ == "original"


@pytest.mark.unit
class TestGuardRead:
    async def test_denied_returns_neutral_without_calling(self) -> None:
        calls: list[int] = []
        wrapped = guard_read("localStorage", lambda: calls.append(1), _permission(False), _describe, neutral="")
        assert await wrapped() == ""
        assert calls == []


@pytest.mark.unit
class TestGuardCallback:
    async def test_denied_invokes_async_error_callback(self) -> None:
        received: list[Exception] = []

        async def on_error(error: Exception) -> None:
            received.append(error)

        wrapped = guard_callback("geolocation", lambda ok, err=None: None, _permission(False), _describe)
        await wrapped(lambda pos: None, on_error)
        assert isinstance(received[0], CapabilityDeniedError)

    async def test_allowed_calls_original(self) -> None:
        results: list[str] = []
        wrapped = guard_callback(
            "geolocation", lambda ok, err=None: ok("pos"), _permission(True), _describe
        )
        await wrapped(results.append)
        assert results == ["pos"]


@pytest.mark.unit
class TestGuardedProxy:
    def test_unguarded_attributes_read_from_target(self) -> None:
        class Target:
            value = 7

            def method(self) -> str:
                return "raw"

        proxy = GuardedProxy(Target(), {})
        assert proxy.value == 7
        assert proxy.method() == "raw"
        assert isinstance(proxy.target, Target)

    def test_guard_members_skips_missing(self) -> None:
        class Target:
            def present(self) -> None:
                pass

        proxy = guard_members(
            Target(),
            {
                "present": lambda f: guard_read("x", f, _permission(True), _describe),
                "absent": lambda f: guard_read("x", f, _permission(True), _describe),
            },
        )
        assert getattr(proxy.present, ORIGINAL_ATTR) is not None
        with pytest.raises(AttributeError):
            proxy.absent


@pytest.mark.unit
class TestGuardXhrClass:
    def test_subclass_of_original(self) -> None:
        class Request:
            def open(self, method: str, url: str) -> None:
                pass

            def send(self, body: Any = None) -> None:
                pass

        guarded = guard_xhr_class(Request, _permission(True))
        assert issubclass(guarded, Request)
        assert guarded.__name__ == "GuardedRequest"
        assert getattr(guarded, ORIGINAL_ATTR) is Request

    async def test_denied_without_onerror(self) -> None:
        sent: list[Any] = []

        class Request:
            def open(self, method: str, url: str) -> None:
                pass

            def send(self, body: Any = None) -> None:
                sent.append(body)

        request = guard_xhr_class(Request, _permission(False))()
        request.open("GET", "/")
        assert await request.send("x") is None
        assert sent == []

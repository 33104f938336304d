"""Interceptor tier — guarded wrappers for host APIs.

Every wrapper awaits a permission decision before touching the original
API, so wrapped callables are coroutine functions even when the original is
synchronous.  On ``allowed`` the original runs with its own semantics: its
return value is passed through (awaited if awaitable) and its exceptions
propagate unchanged.  On denial each style behaves differently:

    request   raise CapabilityDeniedError
    read      return a neutral value; the original is never called
    callback  invoke the caller's error callback with CapabilityDeniedError
"""

from __future__ import annotations

import functools
import inspect
from typing import Any, Awaitable, Callable, Mapping

from jade_guard.exceptions import CapabilityDeniedError

PermissionFn = Callable[[str, dict[str, Any]], Awaitable[bool]]
DescribeFn = Callable[..., dict[str, Any]]

ORIGINAL_ATTR = "__jade_original__"


async def call_original(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result


def _mark(wrapper: Callable[..., Any], original: Callable[..., Any]) -> Callable[..., Any]:
    setattr(wrapper, ORIGINAL_ATTR, original)
    return wrapper


def guard_request(
    api_name: str,
    original: Callable[..., Any],
    permission: PermissionFn,
    describe: DescribeFn,
    message: str | None = None,
) -> Callable[..., Awaitable[Any]]:
    @functools.wraps(original)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        if not await permission(api_name, describe(*args, **kwargs)):
            raise CapabilityDeniedError(api_name, message)
        return await call_original(original, *args, **kwargs)

    return _mark(wrapper, original)


def guard_read(
    api_name: str,
    original: Callable[..., Any],
    permission: PermissionFn,
    describe: DescribeFn,
    neutral: Any = None,
) -> Callable[..., Awaitable[Any]]:
    @functools.wraps(original)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        if not await permission(api_name, describe(*args, **kwargs)):
            return neutral
        return await call_original(original, *args, **kwargs)

    return _mark(wrapper, original)


def guard_callback(
    api_name: str,
    original: Callable[..., Any],
    permission: PermissionFn,
    describe: DescribeFn,
    message: str | None = None,
    *,
    error_position: int = 1,
    error_keyword: str = "error",
) -> Callable[..., Awaitable[Any]]:
    """Callback-style APIs take ``(success, error=None, ...)``."""

    @functools.wraps(original)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        if not await permission(api_name, describe(*args, **kwargs)):
            callback = kwargs.get(error_keyword)
            if callback is None and len(args) > error_position:
                callback = args[error_position]
            if callback is not None:
                await call_original(callback, CapabilityDeniedError(api_name, message))
            return None
        return await call_original(original, *args, **kwargs)

    return _mark(wrapper, original)


class GuardedProxy:
    """Stands in for a host object; guarded members shadow the target's.

    Attributes without a guard are read straight from the target.
    """

    def __init__(self, target: Any, guarded: Mapping[str, Callable[..., Any]]) -> None:
        self._jade_target = target
        self._jade_guarded = dict(guarded)

    def __getattr__(self, name: str) -> Any:
        guarded = self.__dict__.get("_jade_guarded", {})
        if name in guarded:
            return guarded[name]
        return getattr(self.__dict__["_jade_target"], name)

    @property
    def target(self) -> Any:
        return self._jade_target

    def __repr__(self) -> str:
        return f"GuardedProxy({self._jade_target!r})"


def guard_members(
    target: Any,
    members: Mapping[str, Callable[[Callable[..., Any]], Callable[..., Any]]],
) -> GuardedProxy:
    """Wrap each member of *target* named in *members* with its guard factory.

    Members the target does not have are skipped.
    """
    guarded = {
        name: factory(getattr(target, name))
        for name, factory in members.items()
        if callable(getattr(target, name, None))
    }
    return GuardedProxy(target, guarded)


def guard_xhr_class(original_cls: type, permission: PermissionFn) -> type:
    """Subclass *original_cls* so that ``send`` is gated on a decision.

    A denied send fires ``onerror`` and never reaches the network.
    """

    class GuardedXMLHttpRequest(original_cls):  # type: ignore[misc, valid-type]
        def open(self, method: str, url: str, *args: Any, **kwargs: Any) -> Any:
            self._jade_method = method
            self._jade_url = url
            return super().open(method, url, *args, **kwargs)

        async def send(self, body: Any = None) -> Any:
            details = {
                "url": getattr(self, "_jade_url", None),
                "method": getattr(self, "_jade_method", None),
                "type": "network",
            }
            if not await permission("XMLHttpRequest", details):
                handler = getattr(self, "onerror", None)
                if handler is not None:
                    await call_original(handler, CapabilityDeniedError("XMLHttpRequest"))
                return None
            return await call_original(super().send, body)

    GuardedXMLHttpRequest.__name__ = f"Guarded{original_cls.__name__}"
    GuardedXMLHttpRequest.__qualname__ = GuardedXMLHttpRequest.__name__
    setattr(GuardedXMLHttpRequest, ORIGINAL_ATTR, original_cls)
    return GuardedXMLHttpRequest

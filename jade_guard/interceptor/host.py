"""Interceptor tier — the host surface the Interceptor wraps.

The rendering host (the environment that runs page code) is an external
collaborator.  The Interceptor only needs these attributes, each optional:

    host.fetch(resource, **options)
    host.XMLHttpRequest                   class with open(method, url), send(body), onerror
    host.local_storage / session_storage  get_item, set_item, remove_item, clear
    host.cookies                          get() -> str, set(value) -> bool
    host.navigator.geolocation            get_current_position, watch_position (callback style)
    host.navigator.media_devices          async get_user_media(constraints)
    host.navigator.clipboard              async read_text(), async write_text(text)
    host.notifications                    async request_permission(), show(title, **options)
    host.rtc                              create_peer_connection(config=None)

The classes below are a minimal in-process implementation of that surface,
used by the runtime when no real host is supplied and by the test suite.
"""

from __future__ import annotations

import itertools
from typing import Any, Callable


class WebStorage:
    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: Any) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class CookieJar:
    def __init__(self) -> None:
        self._cookies: dict[str, str] = {}

    def get(self) -> str:
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def set(self, value: str) -> bool:
        pair = value.split(";", 1)[0]
        name, _, cookie_value = pair.partition("=")
        self._cookies[name.strip()] = cookie_value.strip()
        return True


class Geolocation:
    def __init__(self, latitude: float = 0.0, longitude: float = 0.0) -> None:
        self.position = {"coords": {"latitude": latitude, "longitude": longitude}}
        self._watch_ids = itertools.count(1)
        self._watches: dict[int, Callable[..., Any]] = {}

    def get_current_position(
        self,
        success: Callable[..., Any],
        error: Callable[..., Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> None:
        success(self.position)

    def watch_position(
        self,
        success: Callable[..., Any],
        error: Callable[..., Any] | None = None,
        options: dict[str, Any] | None = None,
    ) -> int:
        watch_id = next(self._watch_ids)
        self._watches[watch_id] = success
        success(self.position)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        self._watches.pop(watch_id, None)


class MediaDevices:
    async def get_user_media(self, constraints: dict[str, Any] | None = None) -> dict[str, Any]:
        return {"kind": "stream", "constraints": constraints or {}}

    async def enumerate_devices(self) -> list[dict[str, str]]:
        return [{"kind": "videoinput"}, {"kind": "audioinput"}]


class Clipboard:
    def __init__(self) -> None:
        self._text = ""

    async def read_text(self) -> str:
        return self._text

    async def write_text(self, text: str) -> None:
        self._text = text


class Notifications:
    def __init__(self) -> None:
        self.permission = "granted"
        self.shown: list[dict[str, Any]] = []

    async def request_permission(self) -> str:
        return self.permission

    def show(self, title: str, **options: Any) -> dict[str, Any]:
        notification = {"title": title, **options}
        self.shown.append(notification)
        return notification


class PeerConnection:
    def __init__(self, config: dict[str, Any] | None = None) -> None:
        self.config = config or {}


class RTC:
    def create_peer_connection(self, config: dict[str, Any] | None = None) -> PeerConnection:
        return PeerConnection(config)


class XMLHttpRequest:
    def __init__(self) -> None:
        self.method: str | None = None
        self.url: str | None = None
        self.status = 0
        self.response: Any = None
        self.onload: Callable[..., Any] | None = None
        self.onerror: Callable[..., Any] | None = None

    def open(self, method: str, url: str) -> None:
        self.method = method
        self.url = url

    def send(self, body: Any = None) -> None:
        self.status = 200
        self.response = {"url": self.url, "method": self.method, "body": body}
        if self.onload is not None:
            self.onload(self.response)


class Navigator:
    def __init__(self) -> None:
        self.geolocation: Any = Geolocation()
        self.media_devices: Any = MediaDevices()
        self.clipboard: Any = Clipboard()


class Host:
    """A page's global scope.  ``location`` is the page URL."""

    def __init__(self, location: str = "about:blank") -> None:
        self.location = location
        self.requests: list[dict[str, Any]] = []
        self.local_storage: Any = WebStorage()
        self.session_storage: Any = WebStorage()
        self.cookies: Any = CookieJar()
        self.navigator = Navigator()
        self.notifications: Any = Notifications()
        self.rtc: Any = RTC()
        self.XMLHttpRequest = XMLHttpRequest

    async def fetch(self, resource: Any, **options: Any) -> dict[str, Any]:
        request = {"url": resource, "method": options.get("method", "GET")}
        self.requests.append(request)
        return {"status": 200, **request}

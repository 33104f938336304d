"""Interceptor tier — installs guarded wrappers into a host.

Installed at most once per host: the first install sets a marker attribute
and later installs are no-ops.  The original API references are kept on the
Interceptor (``originals``) before anything is replaced.

Every wrapped call becomes one ``API_PERMISSION_REQUEST`` over the page
channel with a fresh request id.  The call waits for the matched response or
the deadline, whichever comes first; the deadline resolves to a denial and
sends a best-effort ``API_PERMISSION_TIMEOUT`` notice so that the timeout is
audited.
"""

from __future__ import annotations

from typing import Any, Callable

from pydantic import ValidationError
from pydantic_core import to_jsonable_python

from jade_guard.channel.correlation import ChannelEndpoint, new_request_id
from jade_guard.exceptions import ChannelClosedError, RequestTimeoutError
from jade_guard.interceptor.wrappers import (
    guard_callback,
    guard_members,
    guard_read,
    guard_request,
    guard_xhr_class,
)
from jade_guard.logging import get_logger
from jade_guard.protocol.messages import (
    PermissionRequest,
    PermissionResponse,
    PermissionTimeoutNotice,
)

log = get_logger(__name__)

INSTALL_MARKER = "__jade_injected__"

NETWORK_DENIED = "JADE: Network request blocked by policy"
GEOLOCATION_DENIED = "JADE: Geolocation permission denied"
MEDIA_DENIED = "JADE: Media device permission denied"
CLIPBOARD_DENIED = "JADE: Clipboard write blocked by policy"
NOTIFICATION_DENIED = "JADE: Notification blocked by policy"
RTC_DENIED = "JADE: Peer connection blocked by policy"

_STORAGE_OPERATIONS = ("get_item", "set_item", "remove_item", "clear")


def _describe_fetch(resource: Any, *args: Any, **options: Any) -> dict[str, Any]:
    url = resource if isinstance(resource, str) else getattr(resource, "url", None)
    return {"url": url, "method": options.get("method", "GET"), "type": "network"}


def _describe(operation: str, kind: str) -> Callable[..., dict[str, Any]]:
    def describe(*args: Any, **kwargs: Any) -> dict[str, Any]:
        return {"operation": operation, "type": kind}

    return describe


def _describe_storage(operation: str) -> Callable[..., dict[str, Any]]:
    def describe(*args: Any, **kwargs: Any) -> dict[str, Any]:
        return {
            "operation": operation,
            "key": args[0] if args else kwargs.get("key"),
            "type": "storage",
        }

    return describe


class Interceptor:
    def __init__(self, channel: ChannelEndpoint, timeout: float = 2.0) -> None:
        self._channel = channel
        self._timeout = timeout
        self._originals: dict[str, Any] = {}

    @property
    def originals(self) -> dict[str, Any]:
        return dict(self._originals)

    # ------------------------------------------------------------------
    # Permission requests
    # ------------------------------------------------------------------

    async def request_permission(self, api_name: str, details: dict[str, Any]) -> bool:
        """Ask the Mediator.  Any failure to get a matched answer is a denial."""
        request_id = new_request_id()
        request = PermissionRequest(
            request_id=request_id,
            capability=api_name,
            # Page arguments may be arbitrary objects; unknown types travel as str.
            details=to_jsonable_python(details, fallback=str),
            timeout=self._timeout,
        )
        try:
            raw = await self._channel.request(
                request.to_wire(), request_id=request_id, timeout=request.timeout
            )
        except RequestTimeoutError:
            log.warning("permission_request_timeout", api=api_name, request_id=request_id)
            await self._notify_timeout(request)
            return False
        except ChannelClosedError:
            log.warning("permission_channel_closed", api=api_name, request_id=request_id)
            return False

        try:
            response = PermissionResponse.model_validate(raw)
        except ValidationError:
            log.warning("permission_response_invalid", api=api_name, request_id=request_id)
            return False
        if response.request_id != request_id:
            log.warning("permission_response_mismatched", api=api_name, request_id=request_id)
            return False
        return response.allowed

    async def _notify_timeout(self, request: PermissionRequest) -> None:
        notice = PermissionTimeoutNotice(
            request_id=request.request_id,
            capability=request.capability,
            details=request.details,
        )
        try:
            await self._channel.notify(notice.to_wire())
        except ChannelClosedError:
            log.debug("timeout_notice_undeliverable", request_id=request.request_id)

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------

    def install(self, host: Any) -> bool:
        """Wrap every sensitive API *host* exposes.  Returns False if already installed."""
        if getattr(host, INSTALL_MARKER, False):
            log.debug("interceptor_already_installed")
            return False
        setattr(host, INSTALL_MARKER, True)

        permission = self.request_permission

        fetch = getattr(host, "fetch", None)
        if callable(fetch):
            self._originals["fetch"] = fetch
            host.fetch = guard_request("fetch", fetch, permission, _describe_fetch, NETWORK_DENIED)

        xhr = getattr(host, "XMLHttpRequest", None)
        if isinstance(xhr, type):
            self._originals["XMLHttpRequest"] = xhr
            host.XMLHttpRequest = guard_xhr_class(xhr, permission)

        for attr, api_name in (("local_storage", "localStorage"), ("session_storage", "sessionStorage")):
            storage = getattr(host, attr, None)
            if storage is None:
                continue
            self._originals[api_name] = storage
            setattr(
                host,
                attr,
                guard_members(
                    storage,
                    {
                        op: self._storage_guard(api_name, op)
                        for op in _STORAGE_OPERATIONS
                    },
                ),
            )

        cookies = getattr(host, "cookies", None)
        if cookies is not None:
            self._originals["cookies"] = cookies
            host.cookies = guard_members(
                cookies,
                {
                    "get": lambda f: guard_read("cookies", f, permission, _describe("get", "storage"), ""),
                    "set": lambda f: guard_read("cookies", f, permission, _describe("set", "storage"), False),
                },
            )

        navigator = getattr(host, "navigator", None)
        if navigator is not None:
            self._install_navigator(navigator)

        notifications = getattr(host, "notifications", None)
        if notifications is not None:
            self._originals["Notification"] = notifications
            host.notifications = guard_members(
                notifications,
                {
                    "request_permission": lambda f: guard_read(
                        "Notification", f, permission, _describe("requestPermission", "notification"), "denied"
                    ),
                    "show": lambda f: guard_request(
                        "Notification", f, permission, _describe("show", "notification"), NOTIFICATION_DENIED
                    ),
                },
            )

        rtc = getattr(host, "rtc", None)
        if rtc is not None:
            self._originals["RTCPeerConnection"] = rtc
            host.rtc = guard_members(
                rtc,
                {
                    "create_peer_connection": lambda f: guard_request(
                        "RTCPeerConnection", f, permission, _describe("createPeerConnection", "network"), RTC_DENIED
                    ),
                },
            )

        log.info("interceptor_installed", apis=sorted(self._originals))
        return True

    def _storage_guard(self, api_name: str, operation: str) -> Callable[[Callable[..., Any]], Any]:
        return lambda f: guard_read(api_name, f, self.request_permission, _describe_storage(operation), None)

    def _install_navigator(self, navigator: Any) -> None:
        permission = self.request_permission

        geolocation = getattr(navigator, "geolocation", None)
        if geolocation is not None:
            self._originals["geolocation"] = geolocation
            navigator.geolocation = guard_members(
                geolocation,
                {
                    "get_current_position": lambda f: guard_callback(
                        "geolocation", f, permission, _describe("getCurrentPosition", "sensor"), GEOLOCATION_DENIED
                    ),
                    "watch_position": lambda f: guard_callback(
                        "geolocation", f, permission, _describe("watchPosition", "sensor"), GEOLOCATION_DENIED
                    ),
                },
            )

        media_devices = getattr(navigator, "media_devices", None)
        if media_devices is not None:
            self._originals["mediaDevices"] = media_devices

            def describe_media(constraints: Any = None, *args: Any, **kwargs: Any) -> dict[str, Any]:
                return {"operation": "getUserMedia", "constraints": constraints, "type": "sensor"}

            navigator.media_devices = guard_members(
                media_devices,
                {
                    "get_user_media": lambda f: guard_request(
                        "mediaDevices", f, permission, describe_media, MEDIA_DENIED
                    ),
                },
            )

        clipboard = getattr(navigator, "clipboard", None)
        if clipboard is not None:
            self._originals["clipboard"] = clipboard
            navigator.clipboard = guard_members(
                clipboard,
                {
                    "read_text": lambda f: guard_read(
                        "clipboard", f, permission, _describe("readText", "clipboard"), ""
                    ),
                    "write_text": lambda f: guard_request(
                        "clipboard", f, permission, _describe("writeText", "clipboard"), CLIPBOARD_DENIED
                    ),
                },
            )

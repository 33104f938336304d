"""Channel layer — Correlation Channel endpoints.

A channel connects exactly two endpoints (Interceptor ↔ Mediator, or
Mediator ↔ Policy Store).  Three frame kinds travel over it:

    request       carries a single-use ``request_id``; the peer's request
                  handler produces exactly one response
    response      echoes the ``request_id``; matched against the sender's
                  pending table, discarded when unknown, stale or duplicate
    notification  fire-and-forget, no response

Payloads are serialised to JSON text on send and parsed on receipt, so the
two sides never share objects.  Frames from distinct requests are handled
concurrently; no ordering is promised between them.

Each pending request is a single future raced against a deadline with
``asyncio.wait_for``.  Exactly one outcome settles it: the matched response,
the deadline (:class:`RequestTimeoutError`), or the local endpoint closing
(:class:`ChannelClosedError`).  The pending entry is removed on every path,
so a late response finds nothing to resolve.

Usage::

    page, mediator = channel_pair("page", "mediator", default_timeout=2.0)
    mediator.set_request_handler(handle_permission_request)
    page.start()
    mediator.start()
    response = await page.request({"type": "API_PERMISSION_REQUEST", ...})
"""

from __future__ import annotations

import asyncio
import json
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from jade_guard.exceptions import ChannelClosedError, RequestTimeoutError
from jade_guard.logging import get_logger

log = get_logger(__name__)

RequestHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]
NotificationHandler = Callable[[dict[str, Any]], Awaitable[None]]


class FrameKind(str, Enum):
    REQUEST = "request"
    RESPONSE = "response"
    NOTIFICATION = "notification"


@dataclass(frozen=True)
class Frame:
    kind: FrameKind
    body: str
    request_id: str | None = None


def new_request_id() -> str:
    return uuid.uuid4().hex


def _encode(payload: dict[str, Any]) -> str:
    return json.dumps(payload, default=str)


def _decode(body: str) -> dict[str, Any]:
    return json.loads(body)


class ChannelEndpoint:
    """One side of a Correlation Channel.

    Thread-safety: single event loop only, like every other async object in
    the pipeline.
    """

    def __init__(self, name: str, default_timeout: float = 2.0) -> None:
        self.name = name
        self._default_timeout = default_timeout
        self._peer: ChannelEndpoint | None = None
        self._inbox: asyncio.Queue[Frame] = asyncio.Queue()
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._request_handler: RequestHandler | None = None
        self._notification_handler: NotificationHandler | None = None
        self._pump: asyncio.Task[None] | None = None
        self._handler_tasks: set[asyncio.Task[None]] = set()
        self._closed = False

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    def connect(self, peer: ChannelEndpoint) -> None:
        self._peer = peer

    def set_request_handler(self, handler: RequestHandler | None) -> None:
        self._request_handler = handler

    def set_notification_handler(self, handler: NotificationHandler | None) -> None:
        self._notification_handler = handler

    def start(self) -> None:
        """Begin draining the inbox.  Must be called from a running loop."""
        if self._closed:
            raise ChannelClosedError(self.name)
        if self._pump is None:
            self._pump = asyncio.create_task(self._run(), name=f"channel:{self.name}")

    async def close(self) -> None:
        """Tear down the endpoint.  Pending requests fail with ChannelClosedError."""
        if self._closed:
            return
        self._closed = True
        for future in self._pending.values():
            if not future.done():
                future.set_exception(ChannelClosedError(self.name))
        tasks: list[asyncio.Task[None]] = list(self._handler_tasks)
        if self._pump is not None:
            tasks.append(self._pump)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._handler_tasks.clear()
        self._pump = None
        log.debug("channel_closed", endpoint=self.name)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def default_timeout(self) -> float:
        return self._default_timeout

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def request(
        self,
        payload: dict[str, Any],
        *,
        request_id: str | None = None,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Send *payload* and wait for the matching response.

        Raises:
            RequestTimeoutError: no response within *timeout* seconds.
            ChannelClosedError:  this endpoint or the peer is torn down.
        """
        if self._closed:
            raise ChannelClosedError(self.name)
        rid = request_id or new_request_id()
        if rid in self._pending:
            raise ValueError(f"Request id '{rid}' is already pending")
        effective_timeout = timeout if timeout is not None else self._default_timeout

        future: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[rid] = future
        try:
            self._post(Frame(FrameKind.REQUEST, _encode(payload), rid))
            return await asyncio.wait_for(future, timeout=effective_timeout)
        except asyncio.TimeoutError:
            raise RequestTimeoutError(rid, effective_timeout) from None
        finally:
            self._pending.pop(rid, None)

    async def notify(self, payload: dict[str, Any]) -> None:
        """Fire-and-forget delivery.  Raises ChannelClosedError if unreachable."""
        if self._closed:
            raise ChannelClosedError(self.name)
        self._post(Frame(FrameKind.NOTIFICATION, _encode(payload)))

    def _post(self, frame: Frame) -> None:
        peer = self._peer
        if peer is None or peer._closed:
            raise ChannelClosedError(peer.name if peer is not None else self.name)
        peer._inbox.put_nowait(frame)

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            frame = await self._inbox.get()
            if frame.kind is FrameKind.RESPONSE:
                self._settle(frame)
                continue
            task = asyncio.create_task(self._dispatch(frame))
            self._handler_tasks.add(task)
            task.add_done_callback(self._handler_tasks.discard)

    def _settle(self, frame: Frame) -> None:
        future = self._pending.get(frame.request_id or "")
        if future is None or future.done():
            log.debug(
                "channel_unmatched_response",
                endpoint=self.name,
                request_id=frame.request_id,
            )
            return
        future.set_result(_decode(frame.body))

    async def _dispatch(self, frame: Frame) -> None:
        payload = _decode(frame.body)
        if frame.kind is FrameKind.NOTIFICATION:
            if self._notification_handler is None:
                log.debug("channel_notification_dropped", endpoint=self.name)
                return
            try:
                await self._notification_handler(payload)
            except Exception:
                log.exception(
                    "channel_notification_handler_failed",
                    endpoint=self.name,
                    message_type=payload.get("type"),
                )
            return

        if self._request_handler is None:
            log.warning(
                "channel_no_request_handler",
                endpoint=self.name,
                request_id=frame.request_id,
            )
            return
        try:
            response = await self._request_handler(payload)
        except Exception:
            # The requester resolves through its deadline.
            log.exception(
                "channel_request_handler_failed",
                endpoint=self.name,
                request_id=frame.request_id,
            )
            return
        try:
            self._post(Frame(FrameKind.RESPONSE, _encode(response), frame.request_id))
        except ChannelClosedError:
            log.debug(
                "channel_response_undeliverable",
                endpoint=self.name,
                request_id=frame.request_id,
            )


def channel_pair(
    first: str,
    second: str,
    *,
    default_timeout: float = 2.0,
) -> tuple[ChannelEndpoint, ChannelEndpoint]:
    """Create two connected endpoints.  Call ``start()`` on each before use."""
    a = ChannelEndpoint(first, default_timeout=default_timeout)
    b = ChannelEndpoint(second, default_timeout=default_timeout)
    a.connect(b)
    b.connect(a)
    return a, b

"""Correlate outbound calls with their replies by request id."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol

from preset_sync.errors import RemoteRequestError, RequestTimeoutError
from preset_sync.protocol import (
    HTTP_MESSAGE_NAME,
    ChannelEnvelope,
    HttpReply,
    HttpRequest,
    reply_id,
)

logger = logging.getLogger(__name__)


class RequestChannel(Protocol):
    """Direct request/response transport used instead of the push channel."""

    async def request(self, verb: str, url: str, body: Optional[Mapping[str, Any]] = None) -> Any: ...


class RequestMultiplexer:
    """Send envelopes and match ``RequestId`` replies to waiting callers.

    ``send_text`` delivers one serialized frame over the push channel and
    raises :class:`~preset_sync.errors.ConnectivityError` when the channel is
    not open.  When ``request_channel`` is given, calls go over it directly
    and never enter the pending table.
    """

    def __init__(
        self,
        send_text: Callable[[str], None],
        *,
        request_channel: Optional[RequestChannel] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self._send_text = send_text
        self._request_channel = request_channel
        self._timeout_s = timeout_s
        self._pending: Dict[int, asyncio.Future[Any]] = {}
        self._pending_urls: Dict[int, str] = {}
        self._envelope_ids = itertools.count(1)
        self._request_ids = itertools.count(1)
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    def send(self, name: str, parameters: Optional[Mapping[str, Any]] = None) -> int:
        """Send a fire-and-forget envelope; returns the envelope id."""

        envelope = ChannelEnvelope(
            message_name=name,
            id=next(self._envelope_ids),
            parameters=dict(parameters or {}),
        )
        self._send_text(json.dumps(envelope.to_dict(), separators=(",", ":")))
        return envelope.id

    def call(
        self,
        verb: str,
        url: str,
        body: Optional[Mapping[str, Any]] = None,
        want_reply: bool = False,
    ) -> Optional[Awaitable[Any]]:
        """Issue a request; returns an awaitable reply only when *want_reply*.

        Transmission happens before this returns, so a closed channel raises
        here rather than at await time.
        """

        request = HttpRequest(
            request_id=next(self._request_ids),
            verb=verb,
            url=url,
            body=dict(body) if body is not None else None,
        )
        if self._request_channel is not None:
            return self._call_direct(request, want_reply)

        future: Optional[asyncio.Future[Any]] = None
        if want_reply:
            future = asyncio.get_running_loop().create_future()
            self._pending[request.request_id] = future
            self._pending_urls[request.request_id] = f"{request.verb} {request.url}"
        try:
            self.send(HTTP_MESSAGE_NAME, request.to_dict())
        except Exception:
            self._forget(request.request_id)
            raise
        if future is None:
            return None
        return self._await_reply(request.request_id, future)

    async def get(self, url: str) -> Any:
        return await self.call("GET", url, want_reply=True)  # type: ignore[misc]

    async def put(self, url: str, body: Mapping[str, Any]) -> Any:
        return await self.call("PUT", url, body, want_reply=True)  # type: ignore[misc]

    # ------------------------------------------------------------------
    def dispatch(self, message: Mapping[str, Any]) -> bool:
        """Resolve the waiter for *message*; ``False`` when nothing was waiting."""

        request_id = reply_id(message)
        if request_id is None:
            return False
        future = self._pending.pop(request_id, None)
        label = self._pending_urls.pop(request_id, "")
        if future is None:
            return False
        if future.done():
            return True

        try:
            reply = HttpReply.from_dict(message)
        except ValueError as exc:
            future.set_exception(exc)
            return True
        if reply.ok:
            future.set_result(reply.response_body)
        else:
            verb, _, url = label.partition(" ")
            future.set_exception(
                RemoteRequestError(verb, url, int(reply.response_code or 0), reply.response_body)
            )
        return True

    def fail_pending(self, exc: BaseException) -> int:
        """Fail every waiting call with *exc*; returns how many were waiting."""

        pending = list(self._pending.values())
        self._pending.clear()
        self._pending_urls.clear()
        for future in pending:
            if not future.done():
                future.set_exception(exc)
        return len(pending)

    # ------------------------------------------------------------------
    async def _await_reply(self, request_id: int, future: asyncio.Future[Any]) -> Any:
        if self._timeout_s is None:
            return await future
        try:
            return await asyncio.wait_for(future, timeout=self._timeout_s)
        except asyncio.TimeoutError:
            url = self._pending_urls.get(request_id, "")
            self._forget(request_id)
            raise RequestTimeoutError(request_id, url, self._timeout_s) from None

    def _call_direct(self, request: HttpRequest, want_reply: bool) -> Optional[Awaitable[Any]]:
        channel = self._request_channel
        assert channel is not None
        timeout_s = self._timeout_s

        async def _request() -> Any:
            pending = channel.request(request.verb, request.url, request.body)
            if timeout_s is None:
                return await pending
            try:
                return await asyncio.wait_for(pending, timeout=timeout_s)
            except asyncio.TimeoutError:
                raise RequestTimeoutError(request.request_id, request.url, timeout_s) from None

        if want_reply:
            return _request()

        task = asyncio.get_running_loop().create_task(_request())
        self._background.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._background.discard(t)
            if t.cancelled():
                return
            exc = t.exception()
            if exc is not None:
                logger.warning("%s %s failed: %s", request.verb, request.url, exc)

        task.add_done_callback(_done)
        return None

    def _forget(self, request_id: int) -> None:
        self._pending.pop(request_id, None)
        self._pending_urls.pop(request_id, None)


__all__ = ["RequestChannel", "RequestMultiplexer"]

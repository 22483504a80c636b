"""Push-channel lifecycle: connect, receive, reconnect and monitor shutdown."""

from __future__ import annotations

import asyncio
import enum
import functools
import logging
import sys
from contextlib import suppress
from typing import Any, Awaitable, Callable, Optional

import websockets

from preset_sync.errors import ConnectivityError

logger = logging.getLogger(__name__)


Connector = Callable[[str], Awaitable[Any]]


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"


class ConnectionManager:
    """Owns the single WebSocket to the host.

    State only moves ``DISCONNECTED → CONNECTING → OPEN → DISCONNECTED``; a
    failed or closed socket always lands back in ``DISCONNECTED`` and a timer
    calls :meth:`connect` again after ``reconnect_delay_s``.  In monitor mode a
    second timer terminates the process when the host stays unreachable for
    ``monitor_grace_s``.

    Outbound frames go through a queue drained by a sender task so that
    :meth:`send_text` stays synchronous and ordered.
    """

    def __init__(
        self,
        url: str,
        *,
        on_open: Optional[Callable[[], None]] = None,
        on_message: Optional[Callable[[str], None]] = None,
        on_close: Optional[Callable[[], None]] = None,
        reconnect_delay_s: float = 1.0,
        monitor: bool = False,
        monitor_grace_s: float = 15.0,
        connector: Optional[Connector] = None,
        terminate: Optional[Callable[[], None]] = None,
    ) -> None:
        self.url = url
        self.on_open = on_open
        self.on_message = on_message
        self.on_close = on_close
        self.reconnect_delay_s = float(reconnect_delay_s)
        self.monitor = bool(monitor)
        self.monitor_grace_s = float(monitor_grace_s)
        self._connector: Connector = connector or websockets.connect
        self._terminate = terminate or functools.partial(sys.exit, 1)
        self._state = ConnectionState.DISCONNECTED
        self._task: Optional[asyncio.Task[None]] = None
        self._websocket: Any = None
        self._outbox: Optional[asyncio.Queue[str]] = None
        self._reconnect_handle: Optional[asyncio.TimerHandle] = None
        self._quit_handle: Optional[asyncio.TimerHandle] = None
        self._stopped = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def quit_timer_armed(self) -> bool:
        return self._quit_handle is not None

    @property
    def reconnect_scheduled(self) -> bool:
        return self._reconnect_handle is not None

    # ------------------------------------------------------------------
    def connect(self) -> None:
        """Start a connection attempt unless one is open or in flight."""

        if self._state is not ConnectionState.DISCONNECTED:
            return
        self._stopped = False
        self._cancel_reconnect()
        self._state = ConnectionState.CONNECTING
        logger.info("Connecting to push channel at %s", self.url)
        self._task = asyncio.get_running_loop().create_task(self._run())

    def send_text(self, text: str) -> None:
        outbox = self._outbox
        if self._state is not ConnectionState.OPEN or outbox is None:
            raise ConnectivityError("push channel is not connected")
        outbox.put_nowait(text)

    async def stop(self) -> None:
        """Close the socket and cancel every timer; no reconnect follows."""

        self._stopped = True
        self._cancel_reconnect()
        self._cancel_quit_timer()
        ws = self._websocket
        if ws is not None:
            with suppress(Exception):
                await ws.close()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._task = None
        self._state = ConnectionState.DISCONNECTED

    # ------------------------------------------------------------------
    async def _run(self) -> None:
        try:
            ws = await self._connector(self.url)
        except Exception as exc:
            self._handle_error(exc)
            self._handle_close()
            return

        outbox: asyncio.Queue[str] = asyncio.Queue()
        self._websocket = ws
        self._outbox = outbox
        sender = asyncio.get_running_loop().create_task(self._sender(ws, outbox))
        try:
            self._handle_open()
            async for raw in ws:
                text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else str(raw)
                if self.on_message is None:
                    continue
                try:
                    self.on_message(text)
                except Exception:
                    logger.debug("push channel message dispatch failed", exc_info=True)
        except Exception as exc:
            self._handle_error(exc)
        finally:
            sender.cancel()
            self._websocket = None
            self._outbox = None
            self._handle_close()

    async def _sender(self, ws: Any, outbox: asyncio.Queue[str]) -> None:
        while True:
            msg = await outbox.get()
            try:
                await ws.send(msg)
            except Exception as exc:
                logger.info("Push channel send failed (%s); closing", str(exc) or exc.__class__.__name__)
                break
        # Refuse further frames; the receive loop ends once the socket closes.
        if self._outbox is outbox:
            self._outbox = None
        with suppress(Exception):
            await ws.close()

    def _handle_open(self) -> None:
        self._cancel_quit_timer()
        self._state = ConnectionState.OPEN
        logger.info("Connected to push channel %s", self.url)
        if self.on_open is not None:
            try:
                self.on_open()
            except Exception:
                logger.debug("on_open callback failed", exc_info=True)

    def _handle_error(self, exc: BaseException) -> None:
        msg = str(exc) or exc.__class__.__name__
        logger.info("Push channel error: %s", msg)

    def _handle_close(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        if self.on_close is not None:
            try:
                self.on_close()
            except Exception:
                logger.debug("on_close callback failed", exc_info=True)
        if self._stopped:
            return

        loop = asyncio.get_running_loop()
        logger.info("Push channel closed; reconnecting in %.1fs", self.reconnect_delay_s)
        self._cancel_reconnect()
        self._reconnect_handle = loop.call_later(self.reconnect_delay_s, self.connect)
        if self.monitor and self._quit_handle is None:
            self._quit_handle = loop.call_later(self.monitor_grace_s, self._quit)

    def _quit(self) -> None:
        self._quit_handle = None
        logger.error("Host unreachable for %.0fs in monitor mode; terminating", self.monitor_grace_s)
        self._terminate()

    def _cancel_reconnect(self) -> None:
        handle = self._reconnect_handle
        self._reconnect_handle = None
        if handle is not None:
            handle.cancel()

    def _cancel_quit_timer(self) -> None:
        handle = self._quit_handle
        self._quit_handle = None
        if handle is not None:
            handle.cancel()


__all__ = ["ConnectionManager", "ConnectionState", "Connector"]

"""Session object owning the connection, caches and public operations."""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from preset_sync.client.connection import ConnectionManager, Connector
from preset_sync.client.http_channel import HttpRequestChannel
from preset_sync.client.request_mux import RequestChannel, RequestMultiplexer
from preset_sync.config import SyncConfig
from preset_sync.errors import ConnectivityError
from preset_sync.protocol import parse_event
from preset_sync.state.models import Preset
from preset_sync.state.notifier import CONNECTED, VIEW, ChangeNotifier
from preset_sync.state.payload_store import PayloadTreeStore
from preset_sync.state.reconciler import PresetReconciler
from preset_sync.state.views import View, ViewStore

logger = logging.getLogger(__name__)


class PresetSyncSession:
    """Mirror of one host's presets, values and views.

    The session is the single owner of every cache; readers get deep copies
    or read-only mappings and observe changes through :attr:`notifier`.
    Call :meth:`start` from inside a running event loop and :meth:`stop`
    before the loop shuts down.
    """

    def __init__(
        self,
        config: Optional[SyncConfig] = None,
        *,
        connector: Optional[Connector] = None,
        request_channel: Optional[RequestChannel] = None,
        terminate: Optional[Callable[[], None]] = None,
    ) -> None:
        self.config = config or SyncConfig()
        if request_channel is None and self.config.request_transport == "http":
            request_channel = HttpRequestChannel(self.config.http_url, timeout_s=self.config.request_timeout_s)
        self._request_channel = request_channel

        self.notifier = ChangeNotifier()
        self.payloads = PayloadTreeStore()
        self.views = ViewStore(on_change=self._on_view_change)
        self.connection = ConnectionManager(
            self.config.websocket_url,
            on_open=self._on_open,
            on_message=self._on_message,
            on_close=self._on_close,
            reconnect_delay_s=self.config.reconnect_delay_s,
            monitor=self.config.monitor,
            monitor_grace_s=self.config.monitor_grace_s,
            connector=connector,
            terminate=terminate,
        )
        self.mux = RequestMultiplexer(
            self.connection.send_text,
            request_channel=request_channel,
            timeout_s=self.config.request_timeout_s,
        )
        self.reconciler = PresetReconciler(
            self.mux,
            self.payloads,
            self.views,
            self.notifier,
            api_prefix=self.config.api_prefix,
        )
        self._poll_task: Optional[asyncio.Task[None]] = None

    # ------------------------------------------------------------------
    # Lifecycle

    async def start(self) -> None:
        self.connection.connect()
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def stop(self) -> None:
        task = self._poll_task
        self._poll_task = None
        if task is not None:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        await self.connection.stop()
        close = getattr(self._request_channel, "close", None)
        if callable(close):
            close()

    def is_connected(self) -> bool:
        return self.connection.is_open

    async def _poll_loop(self) -> None:
        interval = self.config.poll_interval_s
        while True:
            await asyncio.sleep(interval)
            if self.connection.is_open:
                self.reconciler.poll()

    # ------------------------------------------------------------------
    # Channel callbacks

    def _on_open(self) -> None:
        self.notifier.publish(CONNECTED, True)
        self.reconciler.spawn(self._initial_reconcile())

    async def _initial_reconcile(self) -> None:
        try:
            await self.reconciler.full_reconcile(pull_values=True)
        except Exception:
            logger.warning("initial reconciliation failed", exc_info=True)

    def _on_message(self, text: str) -> None:
        try:
            message = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Failed to parse message: %.200s", text)
            return
        if not isinstance(message, dict):
            logger.debug("ignoring non-object message: %.200s", text)
            return

        if self.mux.dispatch(message):
            return

        try:
            event = parse_event(message)
        except ValueError as exc:
            logger.warning("Dropping malformed event (%s): %.200s", exc, text)
            return
        if event is None:
            return
        logger.debug("event %s", event)
        self.reconciler.handle_event(event)

    def _on_close(self) -> None:
        failed = self.mux.fail_pending(ConnectivityError("push channel closed"))
        if failed:
            logger.debug("failed %d pending request(s) on close", failed)
        self.reconciler.clear()
        self.payloads.clear()
        self.views.clear()
        self.notifier.forget()
        self.notifier.publish(CONNECTED, False)

    def _on_view_change(self, preset: str, view: View) -> None:
        self.notifier.emit(VIEW, view, preset)

    # ------------------------------------------------------------------
    # Reads

    def presets(self) -> List[Preset]:
        return self.reconciler.presets

    def payload(self, preset: str) -> Optional[Mapping[str, Any]]:
        return self.payloads.preset(preset)

    def all_payloads(self) -> Mapping[str, Mapping[str, Any]]:
        return self.payloads.snapshot()

    def view(self, preset: str) -> Optional[View]:
        return self.views.get(preset)

    # ------------------------------------------------------------------
    # Writes; failures are logged and not propagated

    def set_payload(self, preset: str, payload: Mapping[str, Any]) -> None:
        self.payloads.set_preset(preset, payload)

    async def set_payload_value(self, preset: str, property_id: str, value: Any) -> None:
        """Write a property value; ``None`` resets the property to its default."""

        body: Dict[str, Any] = {"GenerateTransaction": True}
        if value is not None:
            body["PropertyValue"] = value
        else:
            body["ResetToDefault"] = True
        try:
            await self.mux.put(self.reconciler.preset_url(preset, "property", property_id), body)
        except Exception as exc:
            logger.warning("Failed to set preset data %s/%s: %s", preset, property_id, exc)

    async def execute_function(self, preset: str, function_id: str, args: Mapping[str, Any]) -> None:
        try:
            await self.mux.put(
                self.reconciler.preset_url(preset, "function", function_id),
                {"Parameters": dict(args), "GenerateTransaction": True},
            )
        except Exception as exc:
            logger.warning("Failed to execute function %s/%s: %s", preset, function_id, exc)

    async def set_property_metadata(self, preset: str, property_id: str, key: str, value: str) -> None:
        url = self.reconciler.preset_url(preset, "property", property_id, "metadata", key)
        try:
            await self.mux.put(url, {"value": value})
        except Exception as exc:
            logger.warning("Failed to set property metadata %s/%s[%s]: %s", preset, property_id, key, exc)
            return
        self.reconciler.apply_metadata(preset, property_id, key, value)

    async def set_view(self, preset: str, view: View) -> None:
        serialized = self.views.prepare(preset, view)
        try:
            await self.mux.put(self.reconciler.preset_url(preset, "metadata", "view"), {"Value": serialized})
        except Exception as exc:
            logger.warning("Failed to store view of preset %r: %s", preset, exc)

    async def search(self, query: str, types: Sequence[str], prefix: str, count: int) -> List[Dict[str, Any]]:
        body = {
            "Query": query,
            "Limit": int(count),
            "Filter": {
                "ClassNames": list(types),
                "PackagePaths": [prefix],
                "RecursivePaths": True,
            },
        }
        try:
            reply = await self.mux.put(self.reconciler.url("search", "assets"), body)
        except Exception as exc:
            logger.warning("Asset search %r failed: %s", query, exc)
            return []
        assets = reply.get("Assets") if isinstance(reply, Mapping) else None
        return [dict(a) for a in assets or () if isinstance(a, Mapping)]


__all__ = ["PresetSyncSession"]

"""Preset cache kept in step with the host by polling and pushed events."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Awaitable, Dict, List, Mapping, Optional, Protocol
from urllib.parse import quote

from preset_sync.protocol import (
    REGISTER_MESSAGE_NAME,
    UNREGISTER_MESSAGE_NAME,
    FieldsChangedEvent,
    MetadataModifiedEvent,
    PresetEvent,
    PresetEventFrame,
    PresetNotice,
    register_parameters,
    unregister_parameters,
)
from preset_sync.state.models import Preset
from preset_sync.state.notifier import PAYLOADS, PRESETS, VALUE, ChangeNotifier
from preset_sync.state.payload_store import PayloadTree, PayloadTreeStore, set_leaf
from preset_sync.state.structural import structural_equal
from preset_sync.state.views import ViewStore

logger = logging.getLogger(__name__)


class RequestClient(Protocol):
    def send(self, name: str, parameters: Optional[Mapping[str, Any]] = None) -> int: ...

    def get(self, url: str) -> Awaitable[Any]: ...


def _segment(value: str) -> str:
    return quote(str(value), safe="")


def extract_property_value(reply: Any) -> Any:
    """Pull ``PropertyValues[0].PropertyValue`` out of a value reply."""

    if not isinstance(reply, Mapping):
        return None
    values = reply.get("PropertyValues")
    if not isinstance(values, list) or not values:
        return None
    first = values[0]
    if not isinstance(first, Mapping):
        return None
    return first.get("PropertyValue")


class PresetReconciler:
    """Owns the preset list and drives full and incremental reconciliation.

    A full pass rebuilds a candidate preset list from the host and only
    replaces the cache (and notifies) when it differs structurally.  Passes
    never overlap: a pass requested while another is running is folded into
    a single follow-up pass.  :meth:`clear` starts a new cache generation so
    that a pass begun before a disconnect cannot publish afterwards.
    """

    def __init__(
        self,
        client: RequestClient,
        payloads: PayloadTreeStore,
        views: ViewStore,
        notifier: ChangeNotifier,
        *,
        api_prefix: str = "/remote",
    ) -> None:
        self._client = client
        self._payloads = payloads
        self._views = views
        self._notifier = notifier
        self._prefix = api_prefix.rstrip("/")
        self._presets: List[Preset] = []
        self._generation = 0
        self._active: Optional[asyncio.Future[None]] = None
        self._rerun = False
        self._rerun_pull = False
        self._tasks: set[asyncio.Task[Any]] = set()
        self._registered: set[str] = set()

    # ------------------------------------------------------------------
    # Read accessors

    @property
    def presets(self) -> List[Preset]:
        return copy.deepcopy(self._presets)

    def find(self, name: str) -> Optional[Preset]:
        for preset in self._presets:
            if preset.name == name:
                return preset
        return None

    @property
    def in_flight(self) -> bool:
        return self._active is not None and not self._active.done()

    # ------------------------------------------------------------------
    # URLs

    def url(self, *parts: str) -> str:
        return self._prefix + "/" + "/".join(parts)

    def preset_url(self, preset: str, *parts: str) -> str:
        return self.url("preset", _segment(preset), *(_segment(p) for p in parts))

    # ------------------------------------------------------------------
    # Full reconciliation

    async def full_reconcile(self, pull_values: bool = False) -> None:
        """Run (or join) a reconciliation pass.

        Returns once a pass that started after this call has completed.
        """

        self._rerun = True
        self._rerun_pull = self._rerun_pull or pull_values
        if not self.in_flight:
            self._active = asyncio.ensure_future(self._drain())
        assert self._active is not None
        await asyncio.shield(self._active)

    def poll(self) -> bool:
        """Periodic tick; skipped while a pass is already in flight."""

        if self.in_flight:
            logger.debug("poll skipped; reconciliation already in flight")
            return False
        self.spawn(self.full_reconcile(False))
        return True

    def spawn(self, coro: Awaitable[Any]) -> asyncio.Task[Any]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)

        def _done(t: asyncio.Task[Any]) -> None:
            self._tasks.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.warning("background reconciliation failed", exc_info=t.exception())

        task.add_done_callback(_done)
        return task

    async def _drain(self) -> None:
        while self._rerun:
            pull = self._rerun_pull
            self._rerun = False
            self._rerun_pull = False
            await self._reconcile_once(pull)

    async def _reconcile_once(self, pull_values: bool) -> None:
        generation = self._generation
        try:
            summary = await self._client.get(self.url("presets"))
        except Exception as exc:
            logger.warning("Failed to pull presets data: %s", exc)
            return

        summaries = summary.get("Presets") if isinstance(summary, Mapping) else None
        candidates: List[Preset] = []
        candidate_payloads: PayloadTree = {}
        for entry in summaries or ():
            name = entry.get("Name") if isinstance(entry, Mapping) else None
            if not name:
                continue
            preset = await self._pull_preset(str(name))
            if generation != self._generation:
                logger.debug("reconcile: cache generation changed mid-pass; discarding")
                return
            if preset is None:
                continue
            candidates.append(preset)
            if pull_values:
                candidate_payloads[preset.name] = await self._pull_values(preset)

        if generation != self._generation:
            logger.debug("reconcile: cache generation changed mid-pass; discarding")
            return
        self._publish(candidates, candidate_payloads if pull_values else None)

    def _publish(self, candidates: List[Preset], candidate_payloads: Optional[PayloadTree]) -> None:
        names = [p.name for p in candidates]
        for gone in sorted(n for n in self._registered if n not in names):
            self._unregister(gone)
        self._views.prune(names)

        if not structural_equal(self._presets, candidates):
            self._presets = candidates
            logger.info("presets updated: %s", names)
        # gated against the last publish, not the cache
        self._notifier.publish(PRESETS, self._presets)

        payloads_changed = False
        if candidate_payloads is not None:
            payloads_changed = self._payloads.replace(candidate_payloads)
        payloads_changed = bool(self._payloads.prune(names)) or payloads_changed
        for preset in self._presets:
            if self._payloads.retain(preset.name, [p.id for p in preset.exposed_properties]):
                payloads_changed = True
        if payloads_changed:
            self._notifier.emit(PAYLOADS, self._payloads.to_dict())

    async def _pull_preset(self, name: str) -> Optional[Preset]:
        try:
            if self.find(name) is None:
                self._client.send(REGISTER_MESSAGE_NAME, register_parameters(name))
                self._registered.add(name)
                reply = await self._client.get(self.preset_url(name, "metadata", "view"))
                view_json = reply.get("Value") if isinstance(reply, Mapping) else None
                self._views.refresh(name, view_json)

            reply = await self._client.get(self.preset_url(name))
            record = reply.get("Preset") if isinstance(reply, Mapping) else None
            if not isinstance(record, Mapping):
                return None
            return Preset.from_record(record)
        except Exception as exc:
            logger.warning("Failed to pull preset %r data: %s", name, exc)
            return None

    async def _pull_values(self, preset: Preset) -> Dict[str, Any]:
        tree: PayloadTree = {preset.name: {}}
        for prop in preset.exposed_properties:
            try:
                reply = await self._client.get(self.preset_url(preset.name, "property", prop.id))
            except Exception as exc:
                logger.warning("Failed to pull value %s/%s: %s", preset.name, prop.id, exc)
                continue
            set_leaf(tree, preset.name, prop.id, extract_property_value(reply))
        return tree[preset.name]

    def _unregister(self, name: str) -> None:
        self._registered.discard(name)
        try:
            self._client.send(UNREGISTER_MESSAGE_NAME, unregister_parameters(name))
        except Exception as exc:
            logger.debug("unregister %r skipped: %s", name, exc)

    # ------------------------------------------------------------------
    # Pushed events

    def handle_event(self, event: PresetEventFrame) -> None:
        if isinstance(event, FieldsChangedEvent):
            self._apply_fields_changed(event)
            return

        if isinstance(event, MetadataModifiedEvent):
            view_json = event.view
            if view_json is None:
                return
            self.evict(event.preset_name)
            self.spawn(self._refresh_then_view(event.preset_name, view_json))
            return

        if isinstance(event, PresetNotice):
            if event.type in (PresetEvent.FIELDS_ADDED, PresetEvent.FIELDS_REMOVED):
                self.spawn(self.full_reconcile(False))
                return
            # EntitiesModified, FieldsRenamed and ActorModified carry nothing
            # the cache tracks.
            logger.debug("ignoring %s for preset %r", event.type.value, event.preset_name)

    def _apply_fields_changed(self, event: FieldsChangedEvent) -> None:
        preset = self.find(event.preset_name)
        if preset is None:
            return
        for changed in event.changed_fields:
            prop = preset.property_by_label(changed.property_label)
            if prop is None:
                continue
            if self._payloads.set_leaf(preset.name, prop.id, changed.property_value):
                self._notifier.emit(VALUE, changed.property_value, preset.name, prop.id)

    async def _refresh_then_view(self, preset: str, view_json: str) -> None:
        await self.full_reconcile(False)
        if self.find(preset) is not None:
            self._views.refresh(preset, view_json)

    # ------------------------------------------------------------------
    # Local mutation

    def evict(self, name: str) -> None:
        self._presets = [p for p in self._presets if p.name != name]

    def apply_metadata(self, preset_name: str, property_id: str, key: str, value: str) -> bool:
        preset = self.find(preset_name)
        entity = preset.exposed.get(property_id) if preset is not None else None
        if entity is None:
            return False
        if entity.metadata.get(key) == value:
            return True
        entity.metadata[key] = value
        self._notifier.publish(PRESETS, self._presets)
        return True

    def clear(self) -> None:
        self._generation += 1
        self._presets = []
        self._registered = set()
        self._rerun = False
        self._rerun_pull = False


__all__ = ["PresetReconciler", "RequestClient", "extract_property_value"]

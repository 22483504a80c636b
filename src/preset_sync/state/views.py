"""Layout views attached to presets and the store that caches them.

A view is a tree ``View → tabs → panels``; a panel holds either widgets or
items, and every item holds nested panels.  ``Tabs`` widgets carry their own
tab list, each with further widgets.  Hosts may store views whose nodes have
no ``id``; :meth:`View.assign_ids` back-fills those in place and never touches
an id that is already set.  Keys this client does not model are carried
through untouched in ``extra``.
"""

from __future__ import annotations

import copy
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Set

from preset_sync.state.structural import structural_equal

logger = logging.getLogger(__name__)


TABS_WIDGET = "Tabs"

IdFactory = Callable[[], str]


def new_id() -> str:
    return uuid.uuid4().hex


def _mapping(value: Any, context: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{context} must be a mapping")
    return value


def _sequence(value: Any, context: str) -> Sequence[Any]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        raise ValueError(f"{context} must be a JSON array")
    return value


def _node_id(data: Mapping[str, Any]) -> Optional[str]:
    value = data.get("id")
    if value is None or value == "":
        return None
    return str(value)


def _extra(data: Mapping[str, Any], known: Sequence[str]) -> Dict[str, Any]:
    return {key: copy.deepcopy(value) for key, value in data.items() if key not in known}


def _with_id(node_id: Optional[str], extra: Mapping[str, Any]) -> Dict[str, Any]:
    data = copy.deepcopy(dict(extra))
    if node_id is not None:
        data["id"] = node_id
    return data


def _adopt(node: Any, previous: Any, used: Set[str]) -> None:
    if node.id or not previous.id or previous.id in used:
        return
    node.id = previous.id
    used.add(previous.id)


def _adopt_each(nodes: Optional[Sequence[Any]], previous: Optional[Sequence[Any]], used: Set[str]) -> None:
    for node, prev in zip(nodes or (), previous or ()):
        node.adopt_ids(prev, used)


def _walk(node: Any) -> Iterator[Any]:
    yield node
    for child in node.children():
        yield from _walk(child)


@dataclass
class Widget:
    id: Optional[str]
    widget: Optional[str]
    extra: Dict[str, Any] = field(default_factory=dict)

    def assign_ids(self, make_id: IdFactory) -> None:
        if not self.id:
            self.id = make_id()

    def adopt_ids(self, previous: "Widget", used: Set[str]) -> None:
        if type(previous) is type(self) and previous.widget == self.widget:
            _adopt(self, previous, used)

    def children(self) -> List[Any]:
        return []

    def to_dict(self) -> Dict[str, Any]:
        data = _with_id(self.id, self.extra)
        if self.widget is not None:
            data["widget"] = self.widget
        return data


@dataclass
class WidgetTab:
    id: Optional[str]
    widgets: Optional[List[Widget]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def assign_ids(self, make_id: IdFactory) -> None:
        if not self.id:
            self.id = make_id()
        for widget in self.widgets or ():
            widget.assign_ids(make_id)

    def adopt_ids(self, previous: "WidgetTab", used: Set[str]) -> None:
        _adopt(self, previous, used)
        _adopt_each(self.widgets, previous.widgets, used)

    def children(self) -> List[Any]:
        return list(self.widgets or ())

    def to_dict(self) -> Dict[str, Any]:
        data = _with_id(self.id, self.extra)
        if self.widgets is not None:
            data["widgets"] = [w.to_dict() for w in self.widgets]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "WidgetTab":
        mapping = _mapping(data, "widget tab")
        raw_widgets = mapping.get("widgets")
        return cls(
            id=_node_id(mapping),
            widgets=None if raw_widgets is None else _widgets(raw_widgets),
            extra=_extra(mapping, ("id", "widgets")),
        )


@dataclass
class TabsWidget(Widget):
    tabs: Optional[List[WidgetTab]] = None

    def assign_ids(self, make_id: IdFactory) -> None:
        super().assign_ids(make_id)
        for tab in self.tabs or ():
            tab.assign_ids(make_id)

    def adopt_ids(self, previous: Widget, used: Set[str]) -> None:
        super().adopt_ids(previous, used)
        if isinstance(previous, TabsWidget):
            _adopt_each(self.tabs, previous.tabs, used)

    def children(self) -> List[Any]:
        return list(self.tabs or ())

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.tabs is not None:
            data["tabs"] = [t.to_dict() for t in self.tabs]
        return data


def widget_from_dict(data: Any) -> Widget:
    mapping = _mapping(data, "widget")
    kind = mapping.get("widget")
    kind = None if kind is None else str(kind)
    if kind == TABS_WIDGET:
        raw_tabs = mapping.get("tabs")
        return TabsWidget(
            id=_node_id(mapping),
            widget=kind,
            tabs=None if raw_tabs is None else [WidgetTab.from_dict(t) for t in _sequence(raw_tabs, "widget tabs")],
            extra=_extra(mapping, ("id", "widget", "tabs")),
        )
    return Widget(id=_node_id(mapping), widget=kind, extra=_extra(mapping, ("id", "widget")))


def _widgets(raw: Any) -> List[Widget]:
    return [widget_from_dict(w) for w in _sequence(raw, "widgets")]


@dataclass
class PanelItem:
    id: Optional[str]
    panels: List["Panel"] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def assign_ids(self, make_id: IdFactory) -> None:
        if not self.id:
            self.id = make_id()
        for panel in self.panels:
            panel.assign_ids(make_id)

    def adopt_ids(self, previous: "PanelItem", used: Set[str]) -> None:
        _adopt(self, previous, used)
        _adopt_each(self.panels, previous.panels, used)

    def children(self) -> List[Any]:
        return list(self.panels)

    def to_dict(self) -> Dict[str, Any]:
        data = _with_id(self.id, self.extra)
        data["panels"] = [p.to_dict() for p in self.panels]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "PanelItem":
        mapping = _mapping(data, "panel item")
        return cls(
            id=_node_id(mapping),
            panels=_panels(mapping.get("panels") or ()),
            extra=_extra(mapping, ("id", "panels")),
        )


@dataclass
class Panel:
    """A panel holds widgets or items; when both are present widgets win."""

    id: Optional[str]
    widgets: Optional[List[Widget]] = None
    items: Optional[List[PanelItem]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def assign_ids(self, make_id: IdFactory) -> None:
        if not self.id:
            self.id = make_id()
        if self.widgets is not None:
            for widget in self.widgets:
                widget.assign_ids(make_id)
            return
        for item in self.items or ():
            item.assign_ids(make_id)

    def adopt_ids(self, previous: "Panel", used: Set[str]) -> None:
        _adopt(self, previous, used)
        _adopt_each(self.widgets, previous.widgets, used)
        _adopt_each(self.items, previous.items, used)

    def children(self) -> List[Any]:
        return list(self.widgets or ()) + list(self.items or ())

    def to_dict(self) -> Dict[str, Any]:
        data = _with_id(self.id, self.extra)
        if self.widgets is not None:
            data["widgets"] = [w.to_dict() for w in self.widgets]
        if self.items is not None:
            data["items"] = [i.to_dict() for i in self.items]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "Panel":
        mapping = _mapping(data, "panel")
        raw_widgets = mapping.get("widgets")
        raw_items = mapping.get("items")
        return cls(
            id=_node_id(mapping),
            widgets=None if raw_widgets is None else _widgets(raw_widgets),
            items=None if raw_items is None else [PanelItem.from_dict(i) for i in _sequence(raw_items, "items")],
            extra=_extra(mapping, ("id", "widgets", "items")),
        )


def _panels(raw: Any) -> List[Panel]:
    return [Panel.from_dict(p) for p in _sequence(raw, "panels")]


@dataclass
class ViewTab:
    id: Optional[str]
    panels: Optional[List[Panel]] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    def assign_ids(self, make_id: IdFactory) -> None:
        if not self.id:
            self.id = make_id()
        for panel in self.panels or ():
            panel.assign_ids(make_id)

    def adopt_ids(self, previous: "ViewTab", used: Set[str]) -> None:
        _adopt(self, previous, used)
        _adopt_each(self.panels, previous.panels, used)

    def children(self) -> List[Any]:
        return list(self.panels or ())

    def to_dict(self) -> Dict[str, Any]:
        data = _with_id(self.id, self.extra)
        if self.panels is not None:
            data["panels"] = [p.to_dict() for p in self.panels]
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "ViewTab":
        mapping = _mapping(data, "tab")
        raw_panels = mapping.get("panels")
        return cls(
            id=_node_id(mapping),
            panels=None if raw_panels is None else _panels(raw_panels),
            extra=_extra(mapping, ("id", "panels")),
        )


@dataclass
class View:
    tabs: List[ViewTab] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    def assign_ids(self, make_id: IdFactory = new_id) -> "View":
        for tab in self.tabs:
            tab.assign_ids(make_id)
        return self

    def adopt_ids(self, previous: "View") -> "View":
        """Copy ids from *previous* onto id-less nodes at the same position.

        A node only inherits from a counterpart of the same kind, and an id
        already present anywhere in this view is never taken twice.
        """

        used = {node.id for tab in self.tabs for node in _walk(tab) if node.id}
        _adopt_each(self.tabs, previous.tabs, used)
        return self

    def to_dict(self) -> Dict[str, Any]:
        data = copy.deepcopy(self.extra)
        data["tabs"] = [t.to_dict() for t in self.tabs]
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Any) -> "View":
        mapping = _mapping(data, "view")
        return cls(
            tabs=[ViewTab.from_dict(t) for t in _sequence(mapping.get("tabs") or (), "tabs")],
            extra=_extra(mapping, ("tabs",)),
        )

    @classmethod
    def from_json(cls, text: str) -> "View":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"view is not valid JSON: {exc}") from exc
        return cls.from_dict(data)


def assign_ids(view: View, make_id: IdFactory = new_id) -> View:
    """Fill every missing tab/panel/item/widget id of *view* in place."""

    return view.assign_ids(make_id)


class ViewStore:
    """Per-preset cache of parsed views.

    ``on_change`` is called with ``(preset, view)`` whenever a refresh
    replaces the cached tree with a structurally different one.
    """

    def __init__(
        self,
        *,
        on_change: Optional[Callable[[str, View], None]] = None,
        make_id: IdFactory = new_id,
    ) -> None:
        self._views: Dict[str, View] = {}
        self._on_change = on_change
        self._make_id = make_id

    def get(self, preset: str) -> Optional[View]:
        view = self._views.get(preset)
        return copy.deepcopy(view) if view is not None else None

    def __contains__(self, preset: object) -> bool:
        return preset in self._views

    def __len__(self) -> int:
        return len(self._views)

    def prepare(self, preset: str, view: View) -> str:
        """Assign ids, cache *view* and return its serialized form for upload."""

        view.assign_ids(self._make_id)
        self._views[preset] = copy.deepcopy(view)
        return view.to_json()

    def refresh(self, preset: str, view_json: Optional[str]) -> bool:
        """Parse *view_json* and replace the cached view when it changed.

        Malformed input is logged and leaves the cached view untouched.
        """

        if not view_json:
            return False
        try:
            view = View.from_json(view_json)
        except (ValueError, TypeError):
            logger.warning("Failed to parse view of preset %r", preset, exc_info=True)
            return False

        previous = self._views.get(preset)
        if previous is not None:
            view.adopt_ids(previous)
        view.assign_ids(self._make_id)
        if previous is not None and structural_equal(previous.to_dict(), view.to_dict()):
            return False

        self._views[preset] = view
        if self._on_change is not None:
            self._on_change(preset, copy.deepcopy(view))
        return True

    def discard(self, preset: str) -> None:
        self._views.pop(preset, None)

    def prune(self, keep: Sequence[str]) -> None:
        keep_set = set(keep)
        for name in [n for n in self._views if n not in keep_set]:
            del self._views[name]

    def clear(self) -> None:
        self._views = {}


__all__ = [
    "TABS_WIDGET",
    "Panel",
    "PanelItem",
    "TabsWidget",
    "View",
    "ViewStore",
    "ViewTab",
    "Widget",
    "WidgetTab",
    "assign_ids",
    "new_id",
    "widget_from_dict",
]

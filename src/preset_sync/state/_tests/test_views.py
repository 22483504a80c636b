from __future__ import annotations

import itertools
import json

from preset_sync.state.views import (
    Panel,
    TabsWidget,
    View,
    ViewStore,
    Widget,
    assign_ids,
)


def _counter_ids():
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


def _nested_view() -> dict:
    return {
        "tabs": [
            {
                "name": "Main",
                "panels": [
                    {
                        "type": "stack",
                        "widgets": [
                            {"widget": "Slider", "property": "p1"},
                            {
                                "widget": "Tabs",
                                "tabs": [
                                    {"label": "Inner", "widgets": [{"widget": "Toggle"}]},
                                ],
                            },
                        ],
                    },
                    {
                        "type": "list",
                        "items": [
                            {"label": "Row", "panels": [{"widgets": [{"widget": "Button", "id": "keep"}]}]},
                        ],
                    },
                ],
            },
            {"name": "Empty"},
        ],
        "version": 3,
    }


def _all_ids(view: View) -> list[str]:
    ids: list[str] = []

    def widgets(ws):
        for w in ws or ():
            ids.append(w.id)
            if isinstance(w, TabsWidget):
                for tab in w.tabs or ():
                    ids.append(tab.id)
                    widgets(tab.widgets)

    def panels(ps):
        for p in ps or ():
            ids.append(p.id)
            widgets(p.widgets)
            for item in p.items or ():
                ids.append(item.id)
                panels(item.panels)

    for tab in view.tabs:
        ids.append(tab.id)
        panels(tab.panels)
    return ids


def test_widget_variant_dispatch() -> None:
    view = View.from_dict(_nested_view())
    widgets = view.tabs[0].panels[0].widgets
    assert type(widgets[0]) is Widget
    assert isinstance(widgets[1], TabsWidget)
    assert widgets[1].tabs[0].widgets[0].widget == "Toggle"


def test_assign_ids_fills_every_node_and_keeps_existing() -> None:
    view = assign_ids(View.from_dict(_nested_view()), _counter_ids())
    ids = _all_ids(view)
    assert all(ids)
    assert len(set(ids)) == len(ids)
    assert "keep" in ids


def test_assign_ids_is_idempotent() -> None:
    view = assign_ids(View.from_dict(_nested_view()))
    first = view.to_dict()
    assign_ids(view)
    assert view.to_dict() == first


def test_round_trip_preserves_unknown_keys() -> None:
    raw = _nested_view()
    data = View.from_dict(raw).to_dict()
    assert data["version"] == 3
    assert data["tabs"][0]["name"] == "Main"
    assert data["tabs"][0]["panels"][0]["widgets"][0]["property"] == "p1"
    assert "panels" not in data["tabs"][1]


def test_panel_with_widgets_ignores_items_for_ids() -> None:
    panel = Panel.from_dict({"widgets": [{"widget": "Slider"}], "items": [{"panels": []}]})
    panel.assign_ids(_counter_ids())
    assert panel.widgets[0].id
    assert panel.items[0].id is None


def test_refresh_caches_and_notifies_only_on_change() -> None:
    changes: list[tuple[str, View]] = []
    store = ViewStore(on_change=lambda preset, view: changes.append((preset, view)))
    text = json.dumps({"tabs": [{"id": "t", "panels": [{"id": "p", "widgets": []}]}]})

    assert store.refresh("A", text) is True
    assert store.refresh("A", text) is False
    assert len(changes) == 1
    assert changes[0][0] == "A"
    assert store.get("A").tabs[0].panels[0].id == "p"


def test_refresh_with_malformed_json_keeps_previous_view() -> None:
    store = ViewStore()
    store.refresh("A", json.dumps({"tabs": [{"id": "t"}]}))

    assert store.refresh("A", "{not json") is False
    assert store.refresh("A", json.dumps({"tabs": "nope"})) is False
    assert store.get("A").tabs[0].id == "t"


def test_refresh_ignores_empty_payload() -> None:
    store = ViewStore()
    assert store.refresh("A", "") is False
    assert store.refresh("A", None) is False
    assert store.get("A") is None


def test_prepare_assigns_ids_and_serializes() -> None:
    store = ViewStore(make_id=_counter_ids())
    view = View.from_dict({"tabs": [{"panels": [{"widgets": [{"widget": "Slider"}]}]}]})

    text = store.prepare("A", view)

    data = json.loads(text)
    assert data["tabs"][0]["id"] == "id-1"
    assert data["tabs"][0]["panels"][0]["widgets"][0]["id"] == "id-3"
    assert store.get("A").to_dict() == data


def test_get_returns_a_copy() -> None:
    store = ViewStore()
    store.refresh("A", json.dumps({"tabs": [{"id": "t"}]}))
    copy = store.get("A")
    copy.tabs[0].id = "changed"
    assert store.get("A").tabs[0].id == "t"


def test_refresh_of_id_less_view_keeps_ids_and_stays_quiet() -> None:
    changes: list = []
    store = ViewStore(on_change=lambda preset, view: changes.append(view), make_id=_counter_ids())
    text = json.dumps(_nested_view())

    assert store.refresh("A", text) is True
    first = store.get("A").to_dict()

    assert store.refresh("A", text) is False
    assert store.get("A").to_dict() == first
    assert len(changes) == 1


def test_refresh_carries_ids_over_to_matching_nodes_only() -> None:
    store = ViewStore(make_id=_counter_ids())
    store.refresh("A", json.dumps({"tabs": [{"panels": [{"widgets": [{"widget": "Slider"}]}]}]}))
    before = store.get("A")

    changed = {"tabs": [{"panels": [{"widgets": [{"widget": "Toggle"}, {"widget": "Slider"}]}]}]}
    assert store.refresh("A", json.dumps(changed)) is True
    after = store.get("A")

    assert after.tabs[0].id == before.tabs[0].id
    assert after.tabs[0].panels[0].id == before.tabs[0].panels[0].id
    new_widgets = after.tabs[0].panels[0].widgets
    assert new_widgets[0].id != before.tabs[0].panels[0].widgets[0].id
    assert len(set(_all_ids(after))) == len(_all_ids(after))


def test_adopt_ids_never_duplicates_an_explicit_id() -> None:
    previous = View.from_dict({"tabs": [{"id": "t1"}, {"id": "t2"}]})
    view = View.from_dict({"tabs": [{}, {"id": "t1"}]})

    view.adopt_ids(previous)
    assign_ids(view, _counter_ids())

    assert view.tabs[1].id == "t1"
    assert view.tabs[0].id == "id-1"

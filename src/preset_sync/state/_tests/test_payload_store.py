from __future__ import annotations

import pytest

from preset_sync.state.payload_store import PayloadTreeStore, set_leaf


def test_set_leaf_creates_preset_level() -> None:
    tree: dict = {}
    set_leaf(tree, "A", "p1", 1)
    set_leaf(tree, "A", "p2", [1, 2])
    assert tree == {"A": {"p1": 1, "p2": [1, 2]}}


@pytest.mark.parametrize("preset, prop", [("", "p"), ("A", "")])
def test_set_leaf_rejects_empty_path(preset: str, prop: str) -> None:
    with pytest.raises(ValueError):
        set_leaf({}, preset, prop, 1)


def test_store_set_leaf_reports_changes_only() -> None:
    store = PayloadTreeStore()
    assert store.set_leaf("A", "p", {"R": 1}) is True
    assert store.set_leaf("A", "p", {"R": 1}) is False
    assert store.set_leaf("A", "p", {"R": 2}) is True
    assert store.value("A", "p") == {"R": 2}


def test_store_keeps_its_own_copies() -> None:
    store = PayloadTreeStore()
    value = {"R": 1}
    store.set_leaf("A", "p", value)
    value["R"] = 5
    assert store.value("A", "p") == {"R": 1}

    store.value("A", "p")["R"] = 9
    assert store.value("A", "p") == {"R": 1}


def test_snapshot_is_read_only() -> None:
    store = PayloadTreeStore()
    store.set_preset("A", {"p": 1})
    snap = store.snapshot()
    with pytest.raises(TypeError):
        snap["A"]["p"] = 2  # type: ignore[index]
    with pytest.raises(TypeError):
        snap["B"] = {}  # type: ignore[index]


def test_replace_is_gated_on_structure() -> None:
    store = PayloadTreeStore()
    assert store.replace({"A": {"p": 1}}) is True
    assert store.replace({"A": {"p": 1}}) is False
    assert store.replace({"A": {"p": 1.0}}) is True
    assert store.to_dict() == {"A": {"p": 1.0}}


def test_prune_drops_unknown_presets() -> None:
    store = PayloadTreeStore()
    store.replace({"A": {"p": 1}, "B": {"q": 2}, "C": {}})

    assert store.prune(["A"]) == ["B", "C"]
    assert "A" in store
    assert "B" not in store
    assert len(store) == 1
    assert store.prune(["A"]) == []


def test_preset_and_clear() -> None:
    store = PayloadTreeStore()
    assert store.preset("A") is None
    store.set_leaf("A", "p", 1)
    assert dict(store.preset("A")) == {"p": 1}
    store.clear()
    assert len(store) == 0
    assert store.value("A", "p", "missing") == "missing"

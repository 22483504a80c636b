"""Preset → property → value tree mirrored from the host."""

from __future__ import annotations

import copy
import logging
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, MutableMapping, Optional

from preset_sync.state.structural import structural_equal

logger = logging.getLogger(__name__)


PayloadTree = Dict[str, Dict[str, Any]]


def set_leaf(tree: MutableMapping[str, Any], preset: str, property_id: str, value: Any) -> None:
    """Write *value* at ``tree[preset][property_id]``, creating the preset level."""

    if not preset or not property_id:
        raise ValueError("payload path requires preset and property id")
    subtree = tree.get(preset)
    if not isinstance(subtree, MutableMapping):
        subtree = {}
        tree[preset] = subtree
    subtree[property_id] = value


def _freeze(tree: Mapping[str, Mapping[str, Any]]) -> Mapping[str, Mapping[str, Any]]:
    return MappingProxyType(
        {name: MappingProxyType(copy.deepcopy(dict(values))) for name, values in tree.items()}
    )


class PayloadTreeStore:
    """Owns the live payload tree; readers only ever get frozen copies."""

    def __init__(self) -> None:
        self._tree: PayloadTree = {}

    def set_leaf(self, preset: str, property_id: str, value: Any) -> bool:
        """Set one value; returns ``False`` when the stored value was already equal."""

        current = self._tree.get(preset, {})
        if property_id in current and structural_equal(current[property_id], value):
            return False
        set_leaf(self._tree, preset, property_id, copy.deepcopy(value))
        return True

    def value(self, preset: str, property_id: str, default: Any = None) -> Any:
        return copy.deepcopy(self._tree.get(preset, {}).get(property_id, default))

    def preset(self, preset: str) -> Optional[Mapping[str, Any]]:
        values = self._tree.get(preset)
        if values is None:
            return None
        return MappingProxyType(copy.deepcopy(values))

    def snapshot(self) -> Mapping[str, Mapping[str, Any]]:
        return _freeze(self._tree)

    def to_dict(self) -> PayloadTree:
        return copy.deepcopy(self._tree)

    def set_preset(self, preset: str, payload: Mapping[str, Any]) -> None:
        self._tree[preset] = copy.deepcopy(dict(payload))

    def replace(self, tree: Mapping[str, Mapping[str, Any]]) -> bool:
        """Swap in a freshly polled tree; returns ``True`` when it differs."""

        if structural_equal(self._tree, tree):
            return False
        self._tree = {name: copy.deepcopy(dict(values)) for name, values in tree.items()}
        return True

    def prune(self, keep: Iterable[str]) -> list[str]:
        """Drop subtrees of presets not in *keep*; returns the dropped names."""

        keep_set = set(keep)
        dropped = [name for name in self._tree if name not in keep_set]
        for name in dropped:
            del self._tree[name]
        if dropped:
            logger.debug("payload prune: dropped=%s", dropped)
        return dropped

    def retain(self, preset: str, keep: Iterable[str]) -> list[str]:
        """Drop leaves of *preset* whose property id is not in *keep*."""

        values = self._tree.get(preset)
        if not values:
            return []
        keep_set = set(keep)
        dropped = [prop for prop in values if prop not in keep_set]
        for prop in dropped:
            del values[prop]
        if dropped:
            logger.debug("payload retain: preset=%s dropped=%s", preset, dropped)
        return dropped

    def clear(self) -> None:
        self._tree = {}

    def __len__(self) -> int:
        return len(self._tree)

    def __contains__(self, preset: object) -> bool:
        return preset in self._tree


__all__ = ["PayloadTree", "PayloadTreeStore", "set_leaf"]

"""Typed preset records built from the host's grouped preset description."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

FUNCTION_TYPE = "Function"
BUTTON_WIDGET = "Button"
WIDGET_METADATA_KEY = "Widget"

PROPERTY_KIND = "property"
FUNCTION_KIND = "function"

_ENTITY_KEYS = ("ID", "DisplayName", "Metadata", "Type")


@dataclass
class ExposedEntity:
    """A property or function exposed by a preset."""

    id: str
    display_name: str
    type: Optional[str]
    kind: str = PROPERTY_KIND
    metadata: Dict[str, str] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_function(self) -> bool:
        return self.kind == FUNCTION_KIND

    @classmethod
    def property_from_record(cls, record: Mapping[str, Any]) -> "ExposedEntity":
        underlying = record.get("UnderlyingProperty")
        prop_type = underlying.get("Type") if isinstance(underlying, Mapping) else record.get("Type")
        return cls(
            id=_entity_id(record),
            display_name=str(record.get("DisplayName") or ""),
            type=None if prop_type is None else str(prop_type),
            kind=PROPERTY_KIND,
            metadata=_metadata(record.get("Metadata")),
            extra=_extra(record),
        )

    @classmethod
    def function_from_record(cls, record: Mapping[str, Any]) -> "ExposedEntity":
        # Functions always render as a button, whatever the host says.
        metadata = _metadata(record.get("Metadata"))
        metadata[WIDGET_METADATA_KEY] = BUTTON_WIDGET
        return cls(
            id=_entity_id(record),
            display_name=str(record.get("DisplayName") or ""),
            type=FUNCTION_TYPE,
            kind=FUNCTION_KIND,
            metadata=metadata,
            extra=_extra(record),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = copy.deepcopy(self.extra)
        data.update(
            {
                "ID": self.id,
                "DisplayName": self.display_name,
                "Type": self.type,
                "Metadata": dict(self.metadata),
            }
        )
        return data


@dataclass
class PresetGroup:
    name: str
    exposed_properties: List[ExposedEntity] = field(default_factory=list)
    exposed_functions: List[ExposedEntity] = field(default_factory=list)


@dataclass
class Preset:
    """A named preset plus its flattened lookup views.

    ``exposed_properties`` and ``exposed_functions`` concatenate the groups in
    order; ``exposed`` maps every entity id (property or function) to the
    same entity object held by the groups.
    """

    name: str
    path: Optional[str] = None
    id: Optional[str] = None
    groups: List[PresetGroup] = field(default_factory=list)
    exposed_properties: List[ExposedEntity] = field(default_factory=list, compare=False)
    exposed_functions: List[ExposedEntity] = field(default_factory=list, compare=False)
    exposed: Dict[str, ExposedEntity] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        self.reindex()

    def reindex(self) -> None:
        self.exposed_properties = []
        self.exposed_functions = []
        self.exposed = {}
        for group in self.groups:
            for prop in group.exposed_properties:
                self.exposed[prop.id] = prop
            for func in group.exposed_functions:
                self.exposed[func.id] = func
            self.exposed_properties.extend(group.exposed_properties)
            self.exposed_functions.extend(group.exposed_functions)

    def property_by_label(self, label: str) -> Optional[ExposedEntity]:
        for prop in self.exposed_properties:
            if prop.display_name == label:
                return prop
        return None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Preset":
        name = record.get("Name")
        if not isinstance(name, str) or not name:
            raise ValueError("preset record requires 'Name'")
        groups = []
        for raw_group in record.get("Groups") or ():
            if not isinstance(raw_group, Mapping):
                raise ValueError(f"preset {name!r} has a malformed group")
            groups.append(
                PresetGroup(
                    name=str(raw_group.get("Name") or ""),
                    exposed_properties=[
                        ExposedEntity.property_from_record(p) for p in raw_group.get("ExposedProperties") or ()
                    ],
                    exposed_functions=[
                        ExposedEntity.function_from_record(f) for f in raw_group.get("ExposedFunctions") or ()
                    ],
                )
            )
        path = record.get("Path")
        preset_id = record.get("ID")
        return cls(
            name=name,
            path=None if path is None else str(path),
            id=None if preset_id is None else str(preset_id),
            groups=groups,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Name": self.name,
            "Path": self.path,
            "ID": self.id,
            "Groups": [
                {
                    "Name": group.name,
                    "ExposedProperties": [p.to_dict() for p in group.exposed_properties],
                    "ExposedFunctions": [f.to_dict() for f in group.exposed_functions],
                }
                for group in self.groups
            ],
            "ExposedProperties": [p.to_dict() for p in self.exposed_properties],
            "ExposedFunctions": [f.to_dict() for f in self.exposed_functions],
            "Exposed": {key: entity.to_dict() for key, entity in self.exposed.items()},
        }


def _entity_id(record: Mapping[str, Any]) -> str:
    if not isinstance(record, Mapping):
        raise ValueError("exposed entity must be a mapping")
    value = record.get("ID")
    if value is None or value == "":
        raise ValueError("exposed entity requires 'ID'")
    return str(value)


def _metadata(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, Mapping):
        return {}
    return {str(key): str(value) for key, value in raw.items()}


def _extra(record: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: copy.deepcopy(value) for key, value in record.items() if key not in _ENTITY_KEYS}


__all__ = [
    "BUTTON_WIDGET",
    "FUNCTION_KIND",
    "FUNCTION_TYPE",
    "PROPERTY_KIND",
    "WIDGET_METADATA_KEY",
    "ExposedEntity",
    "Preset",
    "PresetGroup",
]

"""Message dataclasses for the host's remote-control push channel.

Outbound traffic is either a plain channel envelope (``MessageName``/``Id``/
``Parameters``) or a request tunnelled through the ``http`` message name.
Inbound traffic is either a reply correlated by ``RequestId`` or a preset
event identified by ``Type``.  Every frame is a flat dataclass with explicit
``to_dict``/``from_dict`` helpers; malformed payloads raise ``ValueError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Sequence, Tuple

HTTP_MESSAGE_NAME = "http"
REGISTER_MESSAGE_NAME = "preset.register"
UNREGISTER_MESSAGE_NAME = "preset.unregister"

VIEW_METADATA_KEY = "view"

_VERBS = ("GET", "PUT", "POST", "DELETE")


class PresetEvent(str, Enum):
    FIELDS_RENAMED = "PresetFieldsRenamed"
    FIELDS_CHANGED = "PresetFieldsChanged"
    FIELDS_ADDED = "PresetFieldsAdded"
    FIELDS_REMOVED = "PresetFieldsRemoved"
    METADATA_MODIFIED = "PresetMetadataModified"
    ACTOR_MODIFIED = "PresetActorModified"
    ENTITIES_MODIFIED = "PresetEntitiesModified"


def _strip_none(mapping: Dict[str, Any]) -> Dict[str, Any]:
    """Return *mapping* without keys whose value is ``None``."""

    return {key: value for key, value in mapping.items() if value is not None}


def _as_mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{field_name} must be a mapping")
    return value


def _as_sequence(value: Any, field_name: str) -> Sequence[Any]:
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        raise ValueError(f"{field_name} must be a JSON array")
    return value


def _require_str(mapping: Mapping[str, Any], key: str, context: str) -> str:
    value = mapping.get(key)
    if not isinstance(value, str) or not value:
        raise ValueError(f"{context} requires non-empty string '{key}'")
    return value


def _optional_int(value: Any, field_name: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{field_name} must be an integer") from exc


# ---------------------------------------------------------------------------
# Outbound


@dataclass(slots=True)
class ChannelEnvelope:
    """Fire-and-forget message sent over the push channel."""

    message_name: str
    id: int
    parameters: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "MessageName": self.message_name,
            "Id": int(self.id),
            "Parameters": dict(self.parameters),
        }


@dataclass(slots=True)
class HttpRequest:
    """Request/response call; tunnelled as the parameters of an ``http`` envelope."""

    request_id: int
    verb: str
    url: str
    body: Dict[str, Any] | None = None

    def __post_init__(self) -> None:
        verb = str(self.verb).upper()
        if verb not in _VERBS:
            raise ValueError(f"unsupported verb {self.verb!r}")
        self.verb = verb

    def to_dict(self) -> Dict[str, Any]:
        return _strip_none(
            {
                "RequestId": int(self.request_id),
                "Verb": self.verb,
                "URL": self.url,
                "Body": dict(self.body) if self.body is not None else None,
            }
        )


def register_parameters(preset_name: str) -> Dict[str, Any]:
    return {"PresetName": preset_name, "IgnoreRemoteChanges": True}


def unregister_parameters(preset_name: str) -> Dict[str, Any]:
    return {"PresetName": preset_name}


# ---------------------------------------------------------------------------
# Inbound


@dataclass(slots=True)
class HttpReply:
    request_id: int
    response_code: int | None
    response_body: Any

    @property
    def ok(self) -> bool:
        return self.response_code is None or self.response_code < 400

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HttpReply":
        mapping = _as_mapping(data, "reply")
        request_id = _optional_int(mapping.get("RequestId"), "reply RequestId")
        if request_id is None:
            raise ValueError("reply requires 'RequestId'")
        return cls(
            request_id=request_id,
            response_code=_optional_int(mapping.get("ResponseCode"), "reply ResponseCode"),
            response_body=mapping.get("ResponseBody"),
        )


def reply_id(data: Mapping[str, Any]) -> int | None:
    """Return the correlation id carried by *data*, if it looks like a reply."""

    raw = data.get("RequestId")
    if raw is None or isinstance(raw, bool):
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return None
    return value or None


@dataclass(slots=True, frozen=True)
class ChangedField:
    property_label: str
    property_value: Any


@dataclass(slots=True, frozen=True)
class FieldsChangedEvent:
    preset_name: str
    changed_fields: Tuple[ChangedField, ...]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FieldsChangedEvent":
        context = PresetEvent.FIELDS_CHANGED.value
        fields_seq = _as_sequence(data.get("ChangedFields", ()), f"{context} ChangedFields")
        changed = []
        for entry in fields_seq:
            mapping = _as_mapping(entry, f"{context} ChangedFields[]")
            changed.append(
                ChangedField(
                    property_label=_require_str(mapping, "PropertyLabel", context),
                    property_value=mapping.get("PropertyValue"),
                )
            )
        return cls(
            preset_name=_require_str(data, "PresetName", context),
            changed_fields=tuple(changed),
        )


@dataclass(slots=True, frozen=True)
class MetadataModifiedEvent:
    preset_name: str
    metadata: Dict[str, Any]

    @property
    def view(self) -> str | None:
        value = self.metadata.get(VIEW_METADATA_KEY)
        if isinstance(value, str) and value:
            return value
        return None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MetadataModifiedEvent":
        context = PresetEvent.METADATA_MODIFIED.value
        metadata = data.get("Metadata")
        return cls(
            preset_name=_require_str(data, "PresetName", context),
            metadata=dict(_as_mapping(metadata, f"{context} Metadata")) if metadata is not None else {},
        )


@dataclass(slots=True, frozen=True)
class PresetNotice:
    """Event whose only effect is to name the preset it concerns."""

    type: PresetEvent
    preset_name: str | None

    @classmethod
    def from_dict(cls, event_type: PresetEvent, data: Mapping[str, Any]) -> "PresetNotice":
        name = data.get("PresetName")
        return cls(type=event_type, preset_name=str(name) if name is not None else None)


PresetEventFrame = FieldsChangedEvent | MetadataModifiedEvent | PresetNotice


def parse_event(data: Mapping[str, Any]) -> PresetEventFrame | None:
    """Decode a pushed preset event; unknown or untyped messages yield ``None``."""

    mapping = _as_mapping(data, "event")
    raw_type = mapping.get("Type")
    if raw_type is None:
        return None
    try:
        event_type = PresetEvent(str(raw_type))
    except ValueError:
        return None
    if event_type is PresetEvent.FIELDS_CHANGED:
        return FieldsChangedEvent.from_dict(mapping)
    if event_type is PresetEvent.METADATA_MODIFIED:
        return MetadataModifiedEvent.from_dict(mapping)
    return PresetNotice.from_dict(event_type, mapping)


__all__ = [
    "HTTP_MESSAGE_NAME",
    "REGISTER_MESSAGE_NAME",
    "UNREGISTER_MESSAGE_NAME",
    "VIEW_METADATA_KEY",
    "ChangedField",
    "ChannelEnvelope",
    "FieldsChangedEvent",
    "HttpReply",
    "HttpRequest",
    "MetadataModifiedEvent",
    "PresetEvent",
    "PresetEventFrame",
    "PresetNotice",
    "parse_event",
    "register_parameters",
    "reply_id",
    "unregister_parameters",
]

"""In-memory mirror of the host's presets, values and layout views."""

from .models import ExposedEntity, Preset, PresetGroup
from .notifier import ChangeNotifier
from .payload_store import PayloadTreeStore, set_leaf
from .reconciler import PresetReconciler
from .structural import structural_equal
from .views import View, ViewStore, assign_ids

__all__ = [
    "ChangeNotifier",
    "ExposedEntity",
    "PayloadTreeStore",
    "Preset",
    "PresetGroup",
    "PresetReconciler",
    "View",
    "ViewStore",
    "assign_ids",
    "set_leaf",
    "structural_equal",
]

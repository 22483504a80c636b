"""Configuration dataclasses and logging policy for the preset-sync client."""

from .logging_policy import DebugPolicy, LoggingToggles, apply_debug_policy, load_debug_policy
from .models import SyncConfig, load_sync_config

__all__ = [
    "DebugPolicy",
    "LoggingToggles",
    "SyncConfig",
    "apply_debug_policy",
    "load_debug_policy",
    "load_sync_config",
]

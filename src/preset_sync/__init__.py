"""
preset-sync: keep a local mirror of a host engine's remote-control presets

The client listens on the host's push channel for preset events and polls
the request/response API to reconcile presets, property values and layout
views into an in-memory cache that downstream consumers subscribe to.
"""

__version__ = "0.1.0"

__all__ = ["PresetSyncSession", "SyncConfig", "__version__"]


def __getattr__(name: str):
    if name == "PresetSyncSession":
        from preset_sync.session import PresetSyncSession

        return PresetSyncSession
    if name == "SyncConfig":
        from preset_sync.config import SyncConfig

        return SyncConfig
    raise AttributeError(name)

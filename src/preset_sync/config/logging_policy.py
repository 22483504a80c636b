from __future__ import annotations

"""Debug/logging policy for the preset-sync client."""

import json
import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class LoggingToggles:
    log_channel: bool = False
    log_events: bool = False
    log_reconcile: bool = False
    log_views: bool = False


@dataclass(frozen=True)
class DebugPolicy:
    enabled: bool
    logging: LoggingToggles


_LOG_FLAG_MAP: dict[str, Iterable[str]] = {
    "channel": ("log_channel",),
    "events": ("log_events",),
    "reconcile": ("log_reconcile",),
    "views": ("log_views",),
}

# Logger names that each toggle raises to DEBUG.
_TOGGLE_LOGGERS: dict[str, Iterable[str]] = {
    "log_channel": ("preset_sync.client.connection", "preset_sync.client.request_mux"),
    "log_events": ("preset_sync.session",),
    "log_reconcile": ("preset_sync.state.reconciler", "preset_sync.state.payload_store"),
    "log_views": ("preset_sync.state.views",),
}

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def _coerce_bool(value: object, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        val = value.strip().lower()
        if val in _TRUTHY:
            return True
        if val in _FALSY:
            return False
    return default


def _split_flags(raw: object) -> set[str]:
    result: set[str] = set()
    items: Iterable[object]
    if raw is None:
        return result
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, Iterable):
        items = raw
    else:
        return result
    for item in items:
        token = str(item).strip().lower()
        if token:
            result.add(token)
    return result


def _load_debug_config(env: Mapping[str, str]) -> tuple[bool, dict[str, object]]:
    raw = env.get("PRESET_SYNC_DEBUG")
    if raw is None:
        return False, {}
    raw_str = raw.strip()
    if raw_str.lower() in _FALSY:
        return False, {}
    if raw_str.lower() in _TRUTHY:
        return True, {"flags": list(_LOG_FLAG_MAP)}
    try:
        parsed = json.loads(raw_str)
        if isinstance(parsed, dict):
            enabled = _coerce_bool(parsed.get("enabled", True), True)
            return enabled, parsed
        if isinstance(parsed, (list, tuple)):
            return True, {"flags": parsed}
    except Exception:
        logger.debug("Failed to parse PRESET_SYNC_DEBUG JSON; treating as flag list", exc_info=True)
    return True, {"flags": raw_str}


def load_debug_policy(env: Optional[Mapping[str, str]] = None) -> DebugPolicy:
    env = env if env is not None else os.environ
    enabled, cfg = _load_debug_config(env)

    flags = _split_flags(cfg.get("flags")) if enabled else set()
    log_kwargs = {name: False for name in LoggingToggles.__annotations__.keys()}
    for flag, attrs in _LOG_FLAG_MAP.items():
        if flag in flags:
            for attr in attrs:
                log_kwargs[attr] = True

    return DebugPolicy(enabled=enabled, logging=LoggingToggles(**log_kwargs))


def apply_debug_policy(policy: DebugPolicy) -> list[str]:
    """Attach a local DEBUG handler to the loggers the policy enables.

    Returns the logger names that were switched to DEBUG.
    """

    if not policy.enabled:
        return []
    enabled: list[str] = []
    for toggle, names in _TOGGLE_LOGGERS.items():
        if not getattr(policy.logging, toggle, False):
            continue
        for name in names:
            target = logging.getLogger(name)
            has_local = any(getattr(h, "_preset_sync_local", False) for h in target.handlers)
            if not has_local:
                handler = logging.StreamHandler()
                handler.setFormatter(logging.Formatter(LOG_FORMAT))
                handler.setLevel(logging.DEBUG)
                setattr(handler, "_preset_sync_local", True)
                target.addHandler(handler)
            target.setLevel(logging.DEBUG)
            target.propagate = False
            enabled.append(name)
    return enabled


__all__ = [
    "LOG_FORMAT",
    "DebugPolicy",
    "LoggingToggles",
    "apply_debug_policy",
    "load_debug_policy",
]

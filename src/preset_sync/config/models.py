"""Configuration dataclasses for the preset-sync client."""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from preset_sync.config.logging_policy import _coerce_bool

logger = logging.getLogger(__name__)


TRANSPORTS = ("websocket", "http")


@dataclass(frozen=True)
class SyncConfig:
    """Top-level client configuration values."""

    host: str = "localhost"
    websocket_port: int = 30020
    http_port: int = 30010
    api_prefix: str = "/remote"
    poll_interval_s: float = 1.0
    reconnect_delay_s: float = 1.0
    monitor: bool = False
    monitor_grace_s: float = 15.0
    request_timeout_s: Optional[float] = 30.0
    request_transport: str = "websocket"  # "websocket" | "http"

    def __post_init__(self) -> None:
        if self.request_transport not in TRANSPORTS:
            raise ValueError(f"request_transport must be one of {TRANSPORTS}, got {self.request_transport!r}")
        if self.poll_interval_s <= 0:
            raise ValueError("poll_interval_s must be > 0")
        if self.reconnect_delay_s < 0:
            raise ValueError("reconnect_delay_s must be >= 0")

    @property
    def websocket_url(self) -> str:
        return f"ws://{self.host}:{self.websocket_port}"

    @property
    def http_url(self) -> str:
        return f"http://{self.host}:{self.http_port}"

    def with_overrides(self, **overrides: Any) -> "SyncConfig":
        values = {key: value for key, value in overrides.items() if value is not None}
        return dataclasses.replace(self, **values)


def _coerce_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            logger.warning("ignoring non-integer config value %r", value)
    return int(default)


def _coerce_float(value: object, default: Optional[float]) -> Optional[float]:
    if isinstance(value, bool):
        return float(int(value))
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            logger.warning("ignoring non-numeric config value %r", value)
    return default


def _timeout(value: str, default: Optional[float]) -> Optional[float]:
    token = value.strip().lower()
    if token in {"", "none", "off"}:
        return None
    timeout = _coerce_float(token, default)
    if timeout is not None and timeout <= 0:
        return None
    return timeout


def load_sync_config(env: Optional[Mapping[str, str]] = None) -> SyncConfig:
    """Resolve a :class:`SyncConfig` from ``PRESET_SYNC_*`` environment variables."""

    env = env if env is not None else os.environ
    base = SyncConfig()
    values: dict[str, Any] = {}

    host = env.get("PRESET_SYNC_HOST")
    if host:
        values["host"] = host.strip()
    if "PRESET_SYNC_WS_PORT" in env:
        values["websocket_port"] = _coerce_int(env["PRESET_SYNC_WS_PORT"], base.websocket_port)
    if "PRESET_SYNC_HTTP_PORT" in env:
        values["http_port"] = _coerce_int(env["PRESET_SYNC_HTTP_PORT"], base.http_port)
    prefix = env.get("PRESET_SYNC_API_PREFIX")
    if prefix is not None:
        values["api_prefix"] = prefix.strip()
    if "PRESET_SYNC_POLL_S" in env:
        values["poll_interval_s"] = _coerce_float(env["PRESET_SYNC_POLL_S"], base.poll_interval_s)
    if "PRESET_SYNC_RECONNECT_S" in env:
        values["reconnect_delay_s"] = _coerce_float(env["PRESET_SYNC_RECONNECT_S"], base.reconnect_delay_s)
    if "PRESET_SYNC_MONITOR" in env:
        values["monitor"] = _coerce_bool(env["PRESET_SYNC_MONITOR"], base.monitor)
    if "PRESET_SYNC_MONITOR_GRACE_S" in env:
        values["monitor_grace_s"] = _coerce_float(env["PRESET_SYNC_MONITOR_GRACE_S"], base.monitor_grace_s)
    if "PRESET_SYNC_REQUEST_TIMEOUT_S" in env:
        values["request_timeout_s"] = _timeout(env["PRESET_SYNC_REQUEST_TIMEOUT_S"], base.request_timeout_s)
    transport = env.get("PRESET_SYNC_TRANSPORT")
    if transport:
        values["request_transport"] = transport.strip().lower()

    return dataclasses.replace(base, **values)


__all__ = ["TRANSPORTS", "SyncConfig", "load_sync_config"]

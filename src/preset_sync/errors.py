"""Error kinds raised by the synchronization client."""

from __future__ import annotations

from typing import Any


class PresetSyncError(RuntimeError):
    """Base class for preset-sync failures."""


class ConnectivityError(PresetSyncError):
    """Raised when a send or call is attempted while the push channel is not open."""


class RemoteRequestError(PresetSyncError):
    """Raised when the host answers a request with an error status."""

    def __init__(self, verb: str, url: str, status: int, body: Any = None) -> None:
        super().__init__(f"{verb} {url} failed with status {status}")
        self.verb = verb
        self.url = url
        self.status = int(status)
        self.body = body


class RequestTimeoutError(PresetSyncError):
    """Raised when a reply does not arrive within the configured timeout."""

    def __init__(self, request_id: int, url: str, timeout_s: float) -> None:
        super().__init__(f"request {request_id} ({url}) timed out after {timeout_s:.1f}s")
        self.request_id = int(request_id)
        self.url = url
        self.timeout_s = float(timeout_s)

"""Transport-facing pieces: push-channel lifecycle and request correlation."""

from .connection import ConnectionManager, ConnectionState
from .http_channel import HttpRequestChannel
from .request_mux import RequestMultiplexer

__all__ = [
    "ConnectionManager",
    "ConnectionState",
    "HttpRequestChannel",
    "RequestMultiplexer",
]

"""Named notification channels for downstream consumers.

Publishing is gated: a value is only delivered when it differs structurally
from the last value delivered on the same channel and key.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Callable, Dict, Hashable, List, Tuple

from preset_sync.state.structural import structural_equal

logger = logging.getLogger(__name__)


CONNECTED = "connected"
PRESETS = "presets"
PAYLOADS = "payloads"
VALUE = "value"
VIEW = "view"

CHANNELS = (CONNECTED, PRESETS, PAYLOADS, VALUE, VIEW)

_ChannelKey = Tuple[str, Tuple[Hashable, ...]]


class ChangeNotifier:
    """Publish/subscribe hub with structural-change gating.

    Subscribers of keyed channels (``value`` keyed by preset and property id,
    ``view`` keyed by preset) receive the key parts followed by the value;
    unkeyed channels receive the value alone.
    """

    def __init__(self) -> None:
        self._subscribers: Dict[str, List[Callable[..., None]]] = {name: [] for name in CHANNELS}
        self._last: Dict[_ChannelKey, Any] = {}

    def subscribe(self, channel: str, callback: Callable[..., None]) -> Callable[[], None]:
        """Register *callback* on *channel*; returns an unsubscribe function."""

        if channel not in self._subscribers:
            raise ValueError(f"unknown notification channel {channel!r}")
        callbacks = self._subscribers[channel]
        callbacks.append(callback)

        def _unsubscribe() -> None:
            try:
                callbacks.remove(callback)
            except ValueError:
                pass

        return _unsubscribe

    def publish(self, channel: str, value: Any, *key: Hashable) -> bool:
        """Deliver *value* unless it matches the last publish for ``(channel, key)``."""

        if channel not in self._subscribers:
            raise ValueError(f"unknown notification channel {channel!r}")
        slot = (channel, tuple(key))
        if slot in self._last and structural_equal(self._last[slot], value):
            return False
        self.emit(channel, value, *key)
        return True

    def emit(self, channel: str, value: Any, *key: Hashable) -> None:
        """Deliver *value* without gating.

        For callers that already compared against their own store, which may
        have moved since the last publish on this channel.
        """

        if channel not in self._subscribers:
            raise ValueError(f"unknown notification channel {channel!r}")
        self._last[(channel, tuple(key))] = copy.deepcopy(value)
        for callback in list(self._subscribers[channel]):
            try:
                callback(*key, copy.deepcopy(value))
            except Exception:
                logger.debug("notification callback failed (channel=%s key=%s)", channel, key, exc_info=True)

    def forget(self, *channels: str) -> None:
        """Drop the remembered state of *channels* (all but ``connected`` by default)."""

        targets = set(channels) if channels else set(CHANNELS) - {CONNECTED}
        for slot in [s for s in self._last if s[0] in targets]:
            del self._last[slot]


__all__ = [
    "CHANNELS",
    "CONNECTED",
    "PAYLOADS",
    "PRESETS",
    "VALUE",
    "VIEW",
    "ChangeNotifier",
]

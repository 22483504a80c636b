"""
Command-line entry point for the preset-sync client.

Connects to a host, keeps the preset mirror running and logs every
notification it publishes until interrupted.
"""

import argparse
import asyncio
import logging
import os
from typing import Optional, Sequence

from preset_sync.config import apply_debug_policy, load_debug_policy, load_sync_config
from preset_sync.config.logging_policy import LOG_FORMAT
from preset_sync.session import PresetSyncSession
from preset_sync.state.notifier import CONNECTED, PAYLOADS, PRESETS, VALUE, VIEW

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Mirror remote-control presets from a host engine")
    parser.add_argument("--host", help="Host running the remote-control API")
    parser.add_argument("--ws-port", type=int, dest="websocket_port", help="Push channel (WebSocket) port")
    parser.add_argument("--http-port", type=int, dest="http_port", help="Request/response (HTTP) port")
    parser.add_argument(
        "--transport",
        choices=("websocket", "http"),
        dest="request_transport",
        help="Channel used for request/response calls",
    )
    parser.add_argument("--poll", type=float, dest="poll_interval_s", help="Seconds between full reconciliations")
    parser.add_argument(
        "--monitor",
        action="store_true",
        default=None,
        help="Exit when the host stays unreachable past the grace period",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    return parser


def _attach_log_subscribers(session: PresetSyncSession) -> None:
    notifier = session.notifier
    notifier.subscribe(CONNECTED, lambda connected: logger.info("connected=%s", connected))
    notifier.subscribe(PRESETS, lambda presets: logger.info("presets: %s", [p.name for p in presets]))
    notifier.subscribe(PAYLOADS, lambda payloads: logger.info("payloads for %d preset(s)", len(payloads)))
    notifier.subscribe(VALUE, lambda preset, prop, value: logger.info("value %s/%s = %r", preset, prop, value))
    notifier.subscribe(VIEW, lambda preset, view: logger.info("view of %s updated (%d tab(s))", preset, len(view.tabs)))


async def run(session: PresetSyncSession) -> None:
    await session.start()
    try:
        await asyncio.Event().wait()
    finally:
        await session.stop()


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    debug = bool(args.debug)
    if os.getenv("PRESET_SYNC_DEBUG", "").lower() in ("1", "true", "yes"):
        debug = True
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, format=LOG_FORMAT)
    enabled = apply_debug_policy(load_debug_policy())
    if enabled:
        logger.debug("debug logging enabled for %s", ", ".join(enabled))

    config = load_sync_config().with_overrides(
        host=args.host,
        websocket_port=args.websocket_port,
        http_port=args.http_port,
        request_transport=args.request_transport,
        poll_interval_s=args.poll_interval_s,
        monitor=args.monitor,
    )
    logger.info("Starting preset sync for %s (transport=%s)", config.websocket_url, config.request_transport)

    session = PresetSyncSession(config)
    _attach_log_subscribers(session)
    try:
        asyncio.run(run(session))
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Run a crossstore hub on an MQTT broker.

Permissions and broker details come from the environment
(``CROSSSTORE_PERMISSIONS``, ``CROSSSTORE_MQTT_HOST`` and friends, see
``crossstore.config``).  The hub keeps its store in memory, so data lives
as long as the process.

Use ``--check`` to run a client against the hub through the same broker
and exit after one set/get round trip.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import logging
import signal
import sys
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from crossstore import ClientConfig, CrossStoreClient, CrossStoreHub, HubConfig, MqttSettings  # noqa: E402
from crossstore._mqtt import MqttTransport  # noqa: E402


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Serve a crossstore hub over MQTT.",
    )
    parser.add_argument(
        "--origin",
        required=True,
        help="Origin the hub answers on (e.g. https://hub.example.com).",
    )
    parser.add_argument(
        "--parent",
        default=None,
        help="Origin to send the ready handshake to on startup.",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--check",
        metavar="CLIENT_ORIGIN",
        default=None,
        help="Run one set/get round trip from CLIENT_ORIGIN and exit.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


async def _round_trip(settings: MqttSettings, hub_origin: str, client_origin: str) -> None:
    # a second connection needs its own client id or the broker drops the hub session
    transport = MqttTransport(client_origin, dataclasses.replace(settings, client_id=""))
    await transport.start()
    try:
        async with CrossStoreClient(transport, hub_origin, config=ClientConfig.from_env()) as client:
            await asyncio.wait_for(client.on_connect(), 10)
            await client.set("crossstore:check", "ok", 10_000)
            value = await client.get("crossstore:check")
            print(f"round trip via {settings.host}: {value!r}")
    finally:
        await transport.stop()


async def _serve(args: argparse.Namespace) -> int:
    settings = MqttSettings.from_env()
    config = HubConfig.from_env()
    if not config.permissions:
        logging.getLogger(__name__).warning("No permission rules configured, every request will be denied")

    transport = MqttTransport(args.origin, settings)
    await transport.start()
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop.set)

    try:
        async with CrossStoreHub(transport, config=config, parent=args.parent):
            print(f"hub listening as {transport.origin} on {settings.host}:{settings.port}")
            if args.check:
                await _round_trip(settings, transport.origin, args.check)
                return 0
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop.wait(), args.duration or None)
    finally:
        await transport.stop()
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(_serve(args))


if __name__ == "__main__":
    raise SystemExit(_main())

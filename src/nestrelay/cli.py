"""Command-line entry point.

Usage::

    NESTRELAY_CONFIG=relay.json nestrelay serve --port 8080
    nestrelay checkup --config relay.json
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from datetime import timedelta

from aiohttp import web

from nestrelay.auditor import PeriodicAuditor
from nestrelay.config import RelayConfig
from nestrelay.exceptions import RelayConfigError
from nestrelay.linker import OAuthLinker
from nestrelay.provider import NestClient
from nestrelay.relay import TelemetryRelay
from nestrelay.server import build_app
from nestrelay.store import SqliteDocumentStore

_logger = logging.getLogger("nestrelay")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="nestrelay", description="Thermostat telemetry relay")
    parser.add_argument("--config", help="Path to the JSON config (default: $NESTRELAY_CONFIG)")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP relay and the periodic auditor")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=None, help="Listening port (default: from config)")

    checkup = sub.add_parser("checkup", help="Run one auditor checkup and exit")
    checkup.add_argument("--refresh", action="store_true", help="Poll the provider before checking")
    return parser.parse_args(argv)


def _load_config(args: argparse.Namespace) -> RelayConfig:
    if args.config:
        return RelayConfig.from_file(args.config)
    return RelayConfig.from_env()


async def _checkup_once(config: RelayConfig, refresh: bool) -> int:
    async with SqliteDocumentStore(config.store_path) as store, NestClient(config) as nest:
        linker = OAuthLinker(config, store, nest)
        relay = TelemetryRelay(store, nest, linker, local_device_name=config.local_device_name)
        auditor = PeriodicAuditor(
            relay,
            interval=config.checkup_interval_seconds,
            stale_after=timedelta(seconds=config.stale_after_seconds),
            refresh=refresh,
        )
        stale = await auditor.checkup()
    for device in stale:
        print(f"{device.name}\t{device.last_seen.isoformat()}")
    return 1 if stale else 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = _load_config(args)
    except RelayConfigError as exc:
        _logger.error("%s", exc)
        return 2

    if args.command == "checkup":
        return asyncio.run(_checkup_once(config, args.refresh))

    port = args.port if args.port is not None else config.port
    _logger.info("Listening on %s:%d.", args.host, port)
    web.run_app(build_app(config), host=args.host, port=port, print=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())

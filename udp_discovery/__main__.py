"""Discovery node entry point.

Usage:
    python -m udp_discovery listen [--config CONFIG_PATH]
    python -m udp_discovery announce NAME --data '{"port": 80}' [--interval MS]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal

from .config import DiscoveryConfig
from .discovery import UDPDiscovery

logger = logging.getLogger("udp_discovery")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m udp_discovery",
        description="UDP multicast service discovery",
    )
    parser.add_argument("--config", "-c", default=None, help="Path to config.json")
    parser.add_argument("--port", type=int, default=None, help="UDP port (overrides config)")
    parser.add_argument("--group", default=None, help="Multicast group (overrides config)")
    parser.add_argument("--bind", default=None, help="Bind address (overrides config)")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("listen", help="Print service availability and bus messages")

    announce = sub.add_parser("announce", help="Announce a service and print bus messages")
    announce.add_argument("name", help="Service name")
    announce.add_argument("--data", default="{}", help="Service data as JSON")
    announce.add_argument("--interval", type=int, default=None, help="Announce interval in ms")
    announce.add_argument(
        "--unavailable", action="store_true", help="Announce the service as unavailable"
    )
    return parser


def load_config(args: argparse.Namespace) -> DiscoveryConfig:
    config = DiscoveryConfig.load(args.config) if args.config else DiscoveryConfig()
    config = DiscoveryConfig.from_env(base=config)
    if args.port:
        config.port = args.port
    if args.group:
        config.multicast_address = args.group
    if args.bind is not None:
        config.bind_address = args.bind
    return config


def _print_available(name, record, reason) -> None:
    print(f"{name}: available ({reason.value}) {json.dumps(record.data)}")


def _print_unavailable(name, record, reason) -> None:
    print(f"{name}: unavailable ({reason.value})")


def _print_message(event_name, data) -> None:
    print(f"event {event_name}: {json.dumps(data)}")


async def run(args: argparse.Namespace, stop: asyncio.Event) -> int:
    discovery = UDPDiscovery(load_config(args))
    discovery.on("available", _print_available)
    discovery.on("unavailable", _print_unavailable)
    discovery.on("message", _print_message)

    async with discovery:
        if args.command == "announce":
            try:
                data = json.loads(args.data)
            except json.JSONDecodeError as exc:
                logger.error("--data is not valid JSON: %s", exc)
                return 2
            if not discovery.register_and_announce(
                args.name, data, args.interval, not args.unavailable
            ):
                return 1
        await stop.wait()
    return 0


def main() -> None:
    args = _build_parser().parse_args()

    level = logging.DEBUG if args.debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    loop = asyncio.new_event_loop()
    stop = asyncio.Event()

    def _shutdown(sig: int) -> None:
        logger.info("Received signal %d, shutting down", sig)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _shutdown, sig)

    try:
        code = loop.run_until_complete(run(args, stop))
    except KeyboardInterrupt:
        code = 0
    finally:
        loop.close()
    raise SystemExit(code)


if __name__ == "__main__":
    main()

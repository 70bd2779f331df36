"""UDP multicast service discovery node.

Announces local services on the group at their interval, keeps a registry
of everything heard, times out services that go quiet, and routes
application events by service name, name list or predicate.

Usage::

    async with UDPDiscovery() as discovery:
        discovery.on("available", lambda name, record, reason: ...)
        discovery.register_and_announce("edge-node-1", {"port": 80}, interval=500)
"""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from typing import Any, Callable, Optional

from .announcer import Announcer
from .config import DiscoveryConfig
from .dispatcher import ProtocolDispatcher
from .liveness import LivenessMonitor
from .notify import Listener, Notifier
from .records import ServiceRecord
from .registry import Registry
from .router import EventRouter
from .transport import MulticastTransport, Transport

logger = logging.getLogger(__name__)


class UDPDiscovery:
    """One discovery peer: registry, liveness, announcer, dispatcher and router."""

    def __init__(
        self,
        config: DiscoveryConfig | None = None,
        transport: Transport | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = (config or DiscoveryConfig()).validate()
        cfg = self.config

        self.transport: Transport = transport or MulticastTransport(
            family=cfg.family,
            reuse_address=cfg.reuse_address,
            multicast_ttl=cfg.multicast_ttl,
            multicast_loopback=cfg.multicast_loopback,
        )
        self.notifier = Notifier()
        self.registry = Registry(
            self.notifier, clock=clock, default_interval=cfg.default_interval_ms
        )
        self.announcer = Announcer(
            self.registry, self.transport, cfg.multicast_address, cfg.port
        )
        self.registry.attach_announcer(self.announcer)
        self.liveness = LivenessMonitor(self.registry, cfg.timeout_check_ms)
        self.dispatcher = ProtocolDispatcher(self.registry, self.notifier)
        self.router = EventRouter(
            self.registry, self.transport, self.notifier, cfg.multicast_address, cfg.port
        )
        self._running = False

    # ── Lifecycle ──────────────────────────────────────────────────

    async def start(self) -> None:
        """Bind the socket, join the group and start the liveness sweep."""
        if self._running:
            return
        cfg = self.config
        await self.notifier.start()
        self.announcer.bind_loop(asyncio.get_running_loop())
        self.transport.on_message(self.dispatcher.handle_datagram)
        try:
            await self.transport.bind(cfg.port, cfg.bind_address)
            self.transport.join_multicast_group(cfg.multicast_address)
        except Exception:
            logger.exception("Failed to start discovery on port %d", cfg.port)
            self.transport.close()
            await self.notifier.stop()
            raise
        await self.liveness.start()
        self._running = True
        logger.info(
            "Discovery started on %s:%d (tick=%d ms)",
            cfg.multicast_address, cfg.port, cfg.timeout_check_ms,
        )

    async def stop(self) -> None:
        """Cancel every timer, close the socket and flush notifications."""
        if not self._running:
            return
        self._running = False
        await self.liveness.stop()
        tasks = [h for h in self.registry.cancel_all() if isinstance(h, asyncio.Task)]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.transport.close()
        await self.notifier.stop()
        logger.info("Discovery stopped")

    async def __aenter__(self) -> UDPDiscovery:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    @property
    def running(self) -> bool:
        return self._running

    # ── Listeners ──────────────────────────────────────────────────

    def on(self, kind: str, listener: Listener) -> None:
        """Subscribe to ``available``, ``unavailable`` or ``message``."""
        self.notifier.on(kind, listener)

    def off(self, kind: str, listener: Listener) -> bool:
        return self.notifier.off(kind, listener)

    # ── Services ───────────────────────────────────────────────────

    def register_and_announce(
        self,
        name: str,
        data: Any,
        interval: Optional[int] = None,
        available: bool = True,
    ) -> bool:
        """Register a local service and start announcing it every *interval* ms."""
        return self.registry.register(
            name, _copy(data), interval, available, is_local=True
        )

    def update_local(
        self,
        name: str,
        data: Any,
        interval: Optional[int] = None,
        available: bool = True,
    ) -> bool:
        """Replace a service's data, interval and availability."""
        return self.registry.update_local(name, _copy(data), interval, available)

    update = update_local

    def pause(self, name: str) -> bool:
        return self.registry.pause(name)

    def resume(self, name: str, interval: Optional[int] = None) -> bool:
        return self.registry.resume(name, interval)

    def get_data(self, name: str) -> Any:
        return self.registry.get(name)

    def services(self) -> dict[str, ServiceRecord]:
        """Snapshot of every known service, keyed by name."""
        return self.registry.snapshot()

    # ── Events ─────────────────────────────────────────────────────

    def send_event(self, event_name: str, data: Any = None) -> bool:
        return self.router.send_event(event_name, data)

    def send_event_to(self, destination: Any, event_name: str, data: Any = None) -> bool:
        """Send to a name, an iterable of names, or every record matching a predicate."""
        return self.router.send_event_to(destination, event_name, data)


def _copy(data: Any) -> Any:
    return None if data is None else copy.copy(data)

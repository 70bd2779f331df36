"""Liveness monitor: periodic sweep that times out silent services."""

from __future__ import annotations

import asyncio
import logging

from .config import DEFAULT_TIMEOUT_CHECK_MS
from .records import ServiceRecord
from .registry import Registry

logger = logging.getLogger(__name__)


class LivenessMonitor:
    """Removes records not announced within ``2 * interval``.

    Runs on its own fixed tick, independent of any service interval.
    """

    def __init__(self, registry: Registry, tick_ms: int = DEFAULT_TIMEOUT_CHECK_MS) -> None:
        self.registry = registry
        self.tick_ms = tick_ms if tick_ms > 0 else DEFAULT_TIMEOUT_CHECK_MS
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the background sweep loop."""
        if self._running:
            logger.warning("Liveness monitor is already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("Liveness monitor started (tick=%d ms)", self.tick_ms)

    async def stop(self) -> None:
        """Stop the background sweep loop."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Liveness monitor stopped")

    def check(self) -> list[ServiceRecord]:
        """Run a single sweep. Returns snapshots of the records removed."""
        if not len(self.registry):
            logger.debug("Liveness check: no services")
            return []
        return self.registry.expire()

    @property
    def running(self) -> bool:
        return self._running

    async def _loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.tick_ms / 1000)
            try:
                self.check()
            except Exception:
                logger.exception("Liveness check failed")

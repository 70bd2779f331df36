"""Periodic announcement tasks for local services."""

from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Future
from typing import TYPE_CHECKING, Optional, Union

from . import codec
from .errors import EncodeError, StateConflictError, TransportError

if TYPE_CHECKING:
    from .registry import Registry
    from .transport import Transport

logger = logging.getLogger(__name__)

AnnounceHandle = Union[asyncio.Task, Future]


class Announcer:
    """Runs one task per announcing service, each on that service's interval.

    Every firing reads the record's current state from the registry, so a
    task only ever carries the service name and its interval.
    """

    def __init__(
        self,
        registry: Registry,
        transport: Transport,
        group: str,
        port: int,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.group = group
        self.port = port
        self._loop = loop

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def start(self, name: str, interval: int) -> AnnounceHandle:
        """Schedule the periodic announcement of *name* every *interval* ms."""
        coro = self._run(name, interval / 1000)
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is not None and (self._loop is None or running is self._loop):
            return running.create_task(coro, name=f"announce:{name}")
        if self._loop is not None:
            return asyncio.run_coroutine_threadsafe(coro, self._loop)
        coro.close()
        raise StateConflictError("announcer has no event loop to schedule on")

    def cancel(self, handle: AnnounceHandle) -> None:
        handle.cancel()

    def announce_once(self, name: str) -> bool:
        """Encode and send the current state of *name* to the multicast group.

        Refreshes the record's ``last_seen_at`` whether or not the send
        succeeds, so only a paused local service can time out.
        """
        announcement = self.registry.announcement_for(name)
        if announcement is None:
            logger.debug("No record for %s, nothing to announce", name)
            return False

        # An announcing service is alive even while its sends fail
        self.registry.touch(name)
        try:
            payload = codec.encode(announcement)
        except EncodeError as exc:
            logger.warning("Could not encode announcement for %s: %s", name, exc)
            return False

        try:
            self.transport.send(payload, self.port, self.group)
        except TransportError as exc:
            logger.warning("Announcement for %s not sent: %s", name, exc)
            return False

        logger.debug("Announced %s to %s:%d", name, self.group, self.port)
        return True

    async def _run(self, name: str, period: float) -> None:
        while True:
            await asyncio.sleep(period)
            if name not in self.registry:
                logger.debug("Stopping announcements for removed service %s", name)
                return
            try:
                self.announce_once(name)
            except Exception:
                logger.exception("Unexpected error announcing %s", name)

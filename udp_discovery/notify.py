"""Listener registration and notification delivery.

Before :meth:`Notifier.start` is awaited, ``publish`` calls listeners
inline. After it, notifications are queued and a drain task delivers them,
so listeners never run inside the registry lock or the datagram callback.
Coroutine listeners run as their own tasks; :meth:`Notifier.stop` waits
for them.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

from .errors import InputValidationError
from .records import KINDS, Notification

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class Notifier:
    """Observer registry for ``available``, ``unavailable`` and ``message``."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {kind: [] for kind in KINDS}
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._queue: Optional[asyncio.Queue[Optional[Notification]]] = None
        self._task: Optional[asyncio.Task] = None
        self._pending: set[asyncio.Task] = set()

    # ── Subscription ───────────────────────────────────────────────

    def on(self, kind: str, listener: Listener) -> None:
        """Subscribe *listener* to notifications of *kind*."""
        if kind not in self._listeners:
            raise InputValidationError(f"Unknown notification kind: {kind!r}")
        self._listeners[kind].append(listener)

    def off(self, kind: str, listener: Listener) -> bool:
        try:
            self._listeners[kind].remove(listener)
        except (KeyError, ValueError):
            return False
        return True

    def listener_count(self, kind: str) -> int:
        return len(self._listeners.get(kind, ()))

    # ── Lifecycle ──────────────────────────────────────────────────

    async def start(self) -> None:
        """Switch to queued delivery on the running loop."""
        if self._task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._task = asyncio.create_task(self._drain())

    async def stop(self) -> None:
        """Deliver whatever is queued, then return to inline delivery."""
        if self._task is None:
            return
        self._queue.put_nowait(None)
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        self._task = None
        self._queue = None
        self._loop = None

    @property
    def running(self) -> bool:
        return self._task is not None

    # ── Publishing ─────────────────────────────────────────────────

    def publish(self, notification: Notification) -> None:
        if self._queue is None or self._loop is None:
            self._deliver_inline(notification)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            self._queue.put_nowait(notification)
        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, notification)

    def _deliver_inline(self, notification: Notification) -> None:
        for listener in list(self._listeners[notification.kind]):
            try:
                result = listener(*notification.args)
                if inspect.isawaitable(result):
                    self._schedule(result, notification.kind)
            except Exception:
                logger.exception("Error in %s listener", notification.kind)

    def _schedule(self, awaitable: Any, kind: str) -> None:
        try:
            loop = asyncio.get_running_loop()
            self._track(asyncio.ensure_future(awaitable, loop=loop), kind)
        except RuntimeError:
            logger.warning("Async %s listener called without a running loop", kind)
            if inspect.iscoroutine(awaitable):
                awaitable.close()

    async def _drain(self) -> None:
        while True:
            notification = await self._queue.get()
            if notification is None:
                return
            for listener in list(self._listeners[notification.kind]):
                try:
                    result = listener(*notification.args)
                    if inspect.isawaitable(result):
                        self._track(asyncio.ensure_future(result), notification.kind)
                except Exception:
                    logger.exception("Error in %s listener", notification.kind)

    def _track(self, task: asyncio.Future, kind: str) -> None:
        # Slow coroutine listeners run alongside the drain instead of blocking it
        self._pending.add(task)

        def _done(t: asyncio.Future) -> None:
            self._pending.discard(t)
            if not t.cancelled() and t.exception() is not None:
                logger.error("Error in %s listener", kind, exc_info=t.exception())

        task.add_done_callback(_done)

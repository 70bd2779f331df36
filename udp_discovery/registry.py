"""Service registry: the single owner of the name to record mapping.

Every mutation (application calls, inbound announcements, timeout sweeps)
goes through this class and runs under one lock. Notifications produced by
a mutation are collected while the lock is held and published after it is
released.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional, Protocol

from .config import DEFAULT_INTERVAL_MS
from .errors import DiscoveryError, InputValidationError, StateConflictError
from .notify import Notifier
from .records import Notification, Reason, ServiceRecord

logger = logging.getLogger(__name__)

Predicate = Callable[[ServiceRecord], bool]


class AnnounceScheduler(Protocol):
    """What the registry needs from the announcer."""

    def start(self, name: str, interval: int) -> Any: ...

    def cancel(self, handle: Any) -> None: ...


class Registry:
    """Thread-safe, dict-backed registry of known services."""

    def __init__(
        self,
        notifier: Notifier,
        announcer: AnnounceScheduler | None = None,
        clock: Callable[[], float] = time.monotonic,
        default_interval: int = DEFAULT_INTERVAL_MS,
    ) -> None:
        self._lock = threading.Lock()
        self._services: dict[str, ServiceRecord] = {}
        self._notifier = notifier
        self._announcer = announcer
        self._clock = clock
        self.default_interval = default_interval

    def attach_announcer(self, announcer: AnnounceScheduler) -> None:
        self._announcer = announcer

    # ── Creation / update ──────────────────────────────────────────

    def register(
        self,
        name: str,
        data: Any,
        interval: Optional[int] = None,
        available: bool = True,
        is_local: bool = False,
        origin_address: Optional[str] = None,
    ) -> bool:
        """Create a new record. Fails if *name* is already known."""
        try:
            with self._lock:
                note = self._add_locked(name, data, interval, available, is_local, origin_address)
        except DiscoveryError as exc:
            logger.warning("register(%r) rejected: %s", name, exc)
            return False
        self._notifier.publish(note)
        return True

    def upsert_from_remote(
        self,
        name: str,
        data: Any,
        interval: Optional[int],
        available: bool,
        origin_address: Optional[str] = None,
    ) -> bool:
        """Apply an announcement heard on the network."""
        notes: list[Notification] = []
        try:
            _require_name(name)
            with self._lock:
                record = self._services.get(name)
                if record is None:
                    notes.append(
                        self._add_locked(name, data, interval, available, False, origin_address)
                    )
                elif record.local:
                    # Our own announcement looped back; we are the authority on its state.
                    record.last_seen_at = self._clock()
                else:
                    record.last_seen_at = self._clock()
                    notes.extend(
                        self._update_locked(record, data, interval, available, origin_address)
                    )
        except DiscoveryError as exc:
            logger.warning("Announcement for %r rejected: %s", name, exc)
            return False
        for note in notes:
            self._notifier.publish(note)
        return True

    def update_local(
        self,
        name: str,
        data: Any,
        interval: Optional[int] = None,
        available: bool = True,
    ) -> bool:
        """Application-driven update of an existing record."""
        try:
            _require_name(name)
            _require_data(data)
            with self._lock:
                record = self._services.get(name)
                if record is None:
                    raise StateConflictError(f"no entry for {name!r}")
                notes = self._update_locked(record, data, interval, available, None)
        except DiscoveryError as exc:
            logger.warning("update(%r) rejected: %s", name, exc)
            return False
        for note in notes:
            self._notifier.publish(note)
        return True

    def touch(self, name: str) -> bool:
        """Refresh ``last_seen_at`` without changing anything else."""
        with self._lock:
            record = self._services.get(name)
            if record is None:
                return False
            record.last_seen_at = self._clock()
            return True

    # ── Announce task control ──────────────────────────────────────

    def pause(self, name: str) -> bool:
        """Stop periodic announcements for a local service."""
        try:
            _require_name(name)
            with self._lock:
                record = self._services.get(name)
                if record is None:
                    raise StateConflictError(f"no entry for {name!r}")
                if not record.announcing:
                    raise StateConflictError(f"not announcing {name!r}")
                self._announcer.cancel(record.announce_task)
                record.announce_task = None
        except DiscoveryError as exc:
            logger.warning("pause(%r) rejected: %s", name, exc)
            return False
        logger.info("Paused announcements for %s", name)
        return True

    def resume(self, name: str, interval: Optional[int] = None) -> bool:
        """Restart periodic announcements, optionally with a new interval."""
        try:
            _require_name(name)
            with self._lock:
                record = self._services.get(name)
                if record is None:
                    raise StateConflictError(f"no entry for {name!r}")
                if record.announcing:
                    raise StateConflictError(f"already announcing {name!r}")
                if self._announcer is None:
                    raise StateConflictError("no announcer attached")
                record.interval = new_interval = self._valid_interval(interval)
                record.announce_task = self._announcer.start(name, new_interval)
        except DiscoveryError as exc:
            logger.warning("resume(%r) rejected: %s", name, exc)
            return False
        logger.info("Resumed announcements for %s every %d ms", name, new_interval)
        return True

    # ── Liveness ───────────────────────────────────────────────────

    def expire(self, now: Optional[float] = None) -> list[ServiceRecord]:
        """Remove every record past ``2 * interval`` and notify ``timedOut``.

        Returns the last-known snapshots of the removed records.
        """
        now = self._clock() if now is None else now
        notes: list[Notification] = []
        with self._lock:
            expired = [r for r in self._services.values() if r.is_expired(now)]
            for record in expired:
                del self._services[record.name]
                if record.announcing and self._announcer is not None:
                    self._announcer.cancel(record.announce_task)
                record.announce_task = None
                record.available = False
                notes.append(Notification.availability(record, Reason.TIMED_OUT))
        for note in notes:
            logger.info("Service %s timed out", note.args[0])
            self._notifier.publish(note)
        return [note.args[1] for note in notes]

    # ── Reads ──────────────────────────────────────────────────────

    def get(self, name: str) -> Any:
        """Return the data payload for *name*, or ``None`` if unknown."""
        if not isinstance(name, str) or not name:
            return None
        with self._lock:
            record = self._services.get(name)
            return None if record is None else record.data

    def get_record(self, name: str) -> Optional[ServiceRecord]:
        with self._lock:
            record = self._services.get(name)
            return None if record is None else record.snapshot()

    def announcement_for(self, name: str):
        """Transport view of a record (bookkeeping stripped), or ``None``."""
        with self._lock:
            record = self._services.get(name)
            return None if record is None else record.to_announcement()

    def snapshot(self) -> dict[str, ServiceRecord]:
        with self._lock:
            return {name: r.snapshot() for name, r in self._services.items()}

    def select(self, predicate: Predicate) -> list[str]:
        """Names of records for which *predicate* returns True.

        The predicate runs on snapshots, outside the lock.
        """
        matches = []
        for record in self.snapshot().values():
            try:
                if predicate(record) is True:
                    matches.append(record.name)
            except Exception:
                logger.exception("Destination predicate failed on %s", record.name)
        return matches

    def __len__(self) -> int:
        with self._lock:
            return len(self._services)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._services

    # ── Shutdown ───────────────────────────────────────────────────

    def cancel_all(self) -> list:
        """Cancel every active announce task and return the handles. Records are kept."""
        cancelled = []
        with self._lock:
            for record in self._services.values():
                if record.announcing:
                    self._announcer.cancel(record.announce_task)
                    cancelled.append(record.announce_task)
                    record.announce_task = None
        return cancelled

    # ── Internal (call with the lock held) ─────────────────────────

    def _valid_interval(self, interval: Optional[int]) -> int:
        if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
            return self.default_interval
        return int(interval)

    def _add_locked(
        self,
        name: str,
        data: Any,
        interval: Optional[int],
        available: bool,
        is_local: bool,
        origin_address: Optional[str],
    ) -> Notification:
        _require_name(name)
        _require_data(data)
        if name in self._services:
            raise StateConflictError(f"{name!r} already exists")

        record = ServiceRecord(
            name=name,
            data=data,
            interval=self._valid_interval(interval),
            available=bool(available),
            local=bool(is_local),
            address=origin_address or None,
            last_seen_at=self._clock(),
        )
        if is_local:
            if self._announcer is None:
                raise StateConflictError("no announcer attached for a local service")
            record.announce_task = self._announcer.start(name, record.interval)
        self._services[name] = record
        logger.info(
            "New %s service %s (%s, every %d ms)",
            "local" if is_local else "remote",
            name,
            "available" if record.available else "unavailable",
            record.interval,
        )
        return Notification.availability(record, Reason.NEW)

    def _update_locked(
        self,
        record: ServiceRecord,
        data: Any,
        interval: Optional[int],
        available: bool,
        origin_address: Optional[str],
    ) -> list[Notification]:
        record.data = data
        record.interval = self._valid_interval(interval)
        if origin_address and not record.address:
            record.address = origin_address

        available = bool(available)
        if available == record.available:
            return []
        record.available = available
        logger.info(
            "Service %s is now %s", record.name, "available" if available else "unavailable"
        )
        return [Notification.availability(record, Reason.AVAILABILITY_CHANGE)]


def _require_name(name: Any) -> None:
    if not isinstance(name, str) or not name:
        raise InputValidationError(f"missing or empty name: {name!r}")


def _require_data(data: Any) -> None:
    if data is None:
        raise InputValidationError("no data: what is being announced?")


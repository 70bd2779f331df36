"""Service records and the notifications emitted about them."""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field, replace
from typing import Any, Optional

from .codec import Announcement

# Notification kinds
AVAILABLE = "available"
UNAVAILABLE = "unavailable"
MESSAGE = "message"

KINDS = (AVAILABLE, UNAVAILABLE, MESSAGE)


class Reason(str, enum.Enum):
    NEW = "new"
    AVAILABILITY_CHANGE = "availabilityChange"
    TIMED_OUT = "timedOut"


@dataclass
class ServiceRecord:
    """One entry per announced service name.

    ``name`` is the registry key and cannot be reassigned after construction.
    ``interval`` is in milliseconds; ``last_seen_at`` is a clock reading in
    seconds taken from the owning registry's clock.
    """

    name: str
    data: Any
    interval: int
    available: bool = True
    local: bool = False
    address: Optional[str] = None
    last_seen_at: float = 0.0
    announce_task: Optional[asyncio.Task] = field(default=None, repr=False, compare=False)

    def __setattr__(self, key: str, value: Any) -> None:
        if key == "name" and "name" in self.__dict__:
            raise AttributeError("ServiceRecord.name is read-only")
        super().__setattr__(key, value)

    @property
    def announcing(self) -> bool:
        return self.announce_task is not None

    def is_expired(self, now: float) -> bool:
        """True once ``2 * interval`` has passed without an announcement."""
        return (now - self.last_seen_at) * 1000 > 2 * self.interval

    def snapshot(self) -> ServiceRecord:
        """Shallow copy handed to listeners; not a live reference."""
        return replace(self)

    def to_announcement(self) -> Announcement:
        return Announcement(
            name=self.name,
            data=self.data,
            interval=self.interval,
            available=self.available,
        )


@dataclass(frozen=True)
class Notification:
    """Something listeners are told about.

    Availability notifications carry ``(name, record, reason)``; message
    notifications carry ``(event_name, data)``.
    """

    kind: str
    args: tuple

    @classmethod
    def availability(cls, record: ServiceRecord, reason: Reason) -> Notification:
        kind = AVAILABLE if record.available else UNAVAILABLE
        return cls(kind, (record.name, record.snapshot(), reason))

    @classmethod
    def message(cls, event_name: str, data: Any = None) -> Notification:
        return cls(MESSAGE, (event_name, data))

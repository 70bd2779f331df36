"""Wire codec for discovery datagrams.

Two message shapes travel as UTF-8 JSON objects:

  Announcement: {"name", "data", "interval", "available"}
  Event:        {"eventName", "data"}

The presence of ``eventName`` is the only thing that tells them apart.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from typing import Any, Union

from .errors import DecodeError, EncodeError

logger = logging.getLogger(__name__)

EVENT_NAME_KEY = "eventName"


@dataclass(frozen=True)
class Announcement:
    """Periodic broadcast describing a service's current state."""

    name: str
    data: Any
    interval: int
    available: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "data": self.data,
            "interval": self.interval,
            "available": self.available,
        }

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> Announcement:
        name = obj.get("name")
        return cls(
            name=name if isinstance(name, str) else "",
            data=obj.get("data"),
            interval=_coerce_interval(obj.get("interval")),
            available=bool(obj.get("available", True)),
        )


@dataclass(frozen=True)
class Event:
    """One-shot application message addressed by event name."""

    event_name: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {EVENT_NAME_KEY: self.event_name, "data": self.data}

    @classmethod
    def from_dict(cls, obj: dict[str, Any]) -> Event:
        return cls(event_name=str(obj[EVENT_NAME_KEY]), data=obj.get("data"))


Message = Union[Announcement, Event]


def _coerce_interval(value: Any) -> int:
    # bool is an int subclass; a stray true/false is not an interval
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    # json accepts NaN, Infinity and 1e400
    if isinstance(value, float) and not math.isfinite(value):
        return 0
    return int(value)


def _dumps(obj: dict[str, Any]) -> bytes:
    try:
        text = json.dumps(obj, separators=(",", ":"), sort_keys=True, allow_nan=False)
    except (TypeError, ValueError) as exc:
        raise EncodeError(f"Payload is not JSON-serializable: {exc}") from exc
    return text.encode("utf-8")


def encode(message: Message) -> bytes:
    """Serialize an :class:`Announcement` or :class:`Event` to datagram bytes."""
    return _dumps(message.to_dict())


def encode_event(event_name: str, data: Any = None) -> bytes:
    return encode(Event(event_name=event_name, data=data))


def decode(payload: bytes) -> Message:
    """Parse datagram bytes into an :class:`Announcement` or :class:`Event`.

    Raises :class:`DecodeError` for anything that is not a UTF-8 JSON object.
    """
    try:
        obj = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(f"Malformed datagram: {exc}") from exc

    if not isinstance(obj, dict) or not obj:
        raise DecodeError(f"Datagram is not a non-empty JSON object: {obj!r}")

    if obj.get(EVENT_NAME_KEY):
        return Event.from_dict(obj)
    return Announcement.from_dict(obj)

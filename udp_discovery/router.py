"""Event routing by service name, name set, or predicate.

A destination is resolved once to a concrete list of names. Each name is
then delivered in-process (local services) or as a unicast Event datagram
to the service's learned address (remote services).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from . import codec
from .errors import DiscoveryError, EncodeError, InputValidationError, TransportError
from .notify import Notifier
from .records import Notification, ServiceRecord
from .registry import Registry
from .transport import Transport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ByName:
    name: str


@dataclass(frozen=True)
class ByNames:
    names: tuple[str, ...]


@dataclass(frozen=True)
class ByPredicate:
    predicate: Callable[[ServiceRecord], bool]


Destination = Union[ByName, ByNames, ByPredicate]


def to_destination(value: Any) -> Destination:
    """Coerce a name, an iterable of names or a callable into a Destination."""
    if isinstance(value, (ByName, ByNames, ByPredicate)):
        dest = value
    elif isinstance(value, str):
        dest = ByName(value)
    elif callable(value):
        dest = ByPredicate(value)
    elif isinstance(value, Iterable) and not isinstance(value, (bytes, dict)):
        dest = ByNames(tuple(value))
    else:
        raise InputValidationError(f"bad destination: {value!r}")

    if isinstance(dest, ByName) and not dest.name:
        raise InputValidationError("empty destination name")
    if isinstance(dest, ByNames):
        if not dest.names or not all(isinstance(n, str) and n for n in dest.names):
            raise InputValidationError(f"bad destination names: {dest.names!r}")
    return dest


class EventRouter:
    """Sends application events to the group or to specific services."""

    def __init__(
        self,
        registry: Registry,
        transport: Transport,
        notifier: Notifier,
        group: str,
        port: int,
    ) -> None:
        self.registry = registry
        self.transport = transport
        self.notifier = notifier
        self.group = group
        self.port = port

    def send_event(self, event_name: str, data: Any = None) -> bool:
        """Broadcast an event to every peer on the multicast group."""
        try:
            _require_event_name(event_name)
            self.transport.send(codec.encode_event(event_name, data), self.port, self.group)
        except DiscoveryError as exc:
            logger.warning("send_event(%r) failed: %s", event_name, exc)
            return False
        return True

    def send_event_to(self, destination: Any, event_name: str, data: Any = None) -> bool:
        """Deliver an event to the services selected by *destination*.

        Local services get the event through ``message`` listeners; remote
        services with a known address get a unicast datagram. Remote services
        without an address are skipped.
        """
        try:
            dest = to_destination(destination)
            _require_event_name(event_name)
        except InputValidationError as exc:
            logger.warning("send_event_to rejected: %s", exc)
            return False

        payload: Optional[bytes] = None
        for name in self.resolve(dest):
            record = self.registry.get_record(name)
            if record is None:
                logger.debug("No such service %r, event %r skipped", name, event_name)
                continue
            if record.local:
                self.notifier.publish(Notification.message(event_name, data))
                continue
            if not record.address:
                logger.debug("No address for %r, event %r skipped", name, event_name)
                continue
            try:
                if payload is None:
                    payload = codec.encode_event(event_name, data)
                self.transport.send(payload, self.port, record.address)
            except EncodeError as exc:
                logger.warning("Event %r not sent: %s", event_name, exc)
                return False
            except TransportError as exc:
                logger.warning("Event %r to %s (%s) failed: %s", event_name, name, record.address, exc)
        return True

    def resolve(self, destination: Destination) -> list[str]:
        """Concrete, de-duplicated target names for *destination*."""
        if isinstance(destination, ByName):
            return [destination.name]
        if isinstance(destination, ByNames):
            return list(dict.fromkeys(destination.names))
        return self.registry.select(destination.predicate)


def _require_event_name(event_name: Any) -> None:
    if not isinstance(event_name, str) or not event_name:
        raise InputValidationError(f"bad event name: {event_name!r}")

"""Inbound datagram handling."""

from __future__ import annotations

import logging
from typing import Optional

from . import codec
from .errors import DecodeError
from .notify import Notifier
from .records import Notification
from .registry import Registry

logger = logging.getLogger(__name__)


class ProtocolDispatcher:
    """Decodes datagrams and routes them to the registry or to listeners."""

    def __init__(self, registry: Registry, notifier: Notifier) -> None:
        self.registry = registry
        self.notifier = notifier

    def handle_datagram(self, payload: bytes, origin_address: Optional[str] = None) -> bool:
        """Process one datagram. Never raises for bad input.

        Events go straight to ``message`` listeners; announcements update
        the registry.
        """
        if not payload:
            return False
        try:
            message = codec.decode(payload)
        except DecodeError as exc:
            logger.warning("Bad datagram from %s: %s", origin_address, exc)
            return False

        if isinstance(message, codec.Event):
            logger.debug("Event %r from %s", message.event_name, origin_address)
            self.notifier.publish(Notification.message(message.event_name, message.data))
            return True

        if not message.name:
            logger.warning("Announcement from %s has no name, dropped", origin_address)
            return False

        return self.registry.upsert_from_remote(
            message.name,
            message.data,
            message.interval,
            message.available,
            origin_address,
        )

    __call__ = handle_datagram

"""Exception types raised inside udp_discovery.

Public operations keep a boolean contract; these are raised by internal
helpers and caught at the operation boundary where they are logged.
"""

from __future__ import annotations


class DiscoveryError(Exception):
    """Base class for all discovery errors."""


class InputValidationError(DiscoveryError, ValueError):
    """Empty or missing name, missing payload, malformed destination."""


class StateConflictError(DiscoveryError):
    """Operation is not valid for the current state of a service."""


class DecodeError(DiscoveryError, ValueError):
    """An inbound datagram could not be decoded."""


class EncodeError(DiscoveryError, ValueError):
    """An outbound message could not be serialized."""


class TransportError(DiscoveryError, OSError):
    """A datagram could not be sent."""

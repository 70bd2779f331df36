"""UDP multicast service discovery.

Peers on one subnet announce named services with JSON metadata, track each
other's availability with timeouts, and exchange application events.
"""

from .config import DiscoveryConfig
from .discovery import UDPDiscovery
from .errors import (
    DecodeError,
    DiscoveryError,
    EncodeError,
    InputValidationError,
    StateConflictError,
    TransportError,
)
from .records import AVAILABLE, MESSAGE, UNAVAILABLE, Reason, ServiceRecord
from .router import ByName, ByNames, ByPredicate

__version__ = "0.1.0"
__all__ = [
    "AVAILABLE",
    "MESSAGE",
    "UNAVAILABLE",
    "ByName",
    "ByNames",
    "ByPredicate",
    "DecodeError",
    "DiscoveryConfig",
    "DiscoveryError",
    "EncodeError",
    "InputValidationError",
    "Reason",
    "ServiceRecord",
    "StateConflictError",
    "TransportError",
    "UDPDiscovery",
]

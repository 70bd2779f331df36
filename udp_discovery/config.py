"""Configuration for the UDP discovery node."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Mapping

from .errors import InputValidationError

logger = logging.getLogger(__name__)

MULTICAST_ADDRESS = "224.0.0.234"
DEFAULT_UDP_PORT = 44201
DEFAULT_TIMEOUT_CHECK_MS = 1000
DEFAULT_INTERVAL_MS = 3000

FAMILIES = ("udp4", "udp6")

# env var -> (field, converter)
_ENV_OVERRIDES = {
    "UDP_DISCOVERY_PORT": ("port", int),
    "UDP_DISCOVERY_GROUP": ("multicast_address", str),
    "UDP_DISCOVERY_BIND": ("bind_address", str),
    "UDP_DISCOVERY_TIMEOUT_MS": ("timeout_check_ms", int),
    "UDP_DISCOVERY_INTERVAL_MS": ("default_interval_ms", int),
}


@dataclass
class DiscoveryConfig:
    """Discovery node configuration, loaded from config.json or the environment."""

    port: int = DEFAULT_UDP_PORT
    multicast_address: str = MULTICAST_ADDRESS
    bind_address: str = ""  # empty = all interfaces
    family: str = "udp4"

    # Liveness tick, independent of any service interval
    timeout_check_ms: int = DEFAULT_TIMEOUT_CHECK_MS
    # Used when a service is registered with a non-positive interval
    default_interval_ms: int = DEFAULT_INTERVAL_MS

    # Socket
    reuse_address: bool = True
    multicast_ttl: int = 1
    multicast_loopback: bool = True

    @classmethod
    def load(cls, path: str | Path) -> DiscoveryConfig:
        path = Path(path)
        if path.exists():
            with open(path) as f:
                data = json.load(f)
            known = {f.name for f in fields(cls)}
            filtered = {k: v for k, v in data.items() if k in known}
            return cls(**filtered)
        logger.warning("Config not found at %s, using defaults", path)
        return cls()

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        base: DiscoveryConfig | None = None,
    ) -> DiscoveryConfig:
        """Apply ``UDP_DISCOVERY_*`` overrides on top of *base* (or defaults)."""
        environ = os.environ if environ is None else environ
        cfg = base or cls()
        for var, (attr, convert) in _ENV_OVERRIDES.items():
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            try:
                setattr(cfg, attr, convert(raw))
            except ValueError:
                logger.warning("Ignoring invalid %s=%r", var, raw)
        return cfg

    def save(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)

    def validate(self) -> DiscoveryConfig:
        if self.family not in FAMILIES:
            raise InputValidationError(f"Unknown socket family: {self.family!r}")
        if not 0 < self.port < 65536:
            raise InputValidationError(f"Invalid port: {self.port}")
        if self.timeout_check_ms <= 0:
            raise InputValidationError("timeout_check_ms must be positive")
        if self.default_interval_ms <= 0:
            raise InputValidationError("default_interval_ms must be positive")
        if not self.multicast_address:
            raise InputValidationError("multicast_address is required")
        return self

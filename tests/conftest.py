"""pytest configuration and shared fakes for udp_discovery tests."""

from __future__ import annotations

import json
from typing import Any, Optional
from unittest.mock import MagicMock

import pytest

from udp_discovery.errors import TransportError
from udp_discovery.notify import Notifier
from udp_discovery.registry import Registry


# Configure asyncio mode for pytest-asyncio
def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as async"
    )


class FakeClock:
    """Manually advanced clock, in seconds."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance_ms(self, ms: float) -> None:
        self.now += ms / 1000


class FakeTransport:
    """Records sends instead of touching the network."""

    def __init__(self) -> None:
        self.sent: list[tuple[bytes, int, str]] = []
        self.callback = None
        self.bound: Optional[tuple[str, int]] = None
        self.groups: list[str] = []
        self.closed = False
        self.fail = False

    async def bind(self, port: int, bind_address: str = "") -> None:
        self.bound = (bind_address, port)

    def join_multicast_group(self, address: str) -> None:
        self.groups.append(address)

    def on_message(self, callback) -> None:
        self.callback = callback

    def send(self, payload: bytes, port: int, address: str) -> None:
        if self.fail:
            raise TransportError("network unreachable")
        self.sent.append((payload, port, address))

    def close(self) -> None:
        self.closed = True

    def deliver(self, message: Any, origin: Optional[str] = "10.0.0.5") -> None:
        """Feed an inbound datagram (dict or raw bytes) to the registered callback."""
        payload = message if isinstance(message, bytes) else json.dumps(message).encode()
        self.callback(payload, origin)

    def sent_messages(self) -> list[dict]:
        return [json.loads(p) for p, _, _ in self.sent]


class Recorder:
    """Collects every notification published on a Notifier."""

    def __init__(self, notifier: Notifier) -> None:
        self.events: list[tuple] = []
        for kind in ("available", "unavailable", "message"):
            notifier.on(kind, self._make(kind))

    def _make(self, kind: str):
        def _listener(*args):
            self.events.append((kind, *args))
        return _listener

    def of(self, kind: str) -> list[tuple]:
        return [e for e in self.events if e[0] == kind]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def recorder(notifier):
    return Recorder(notifier)


@pytest.fixture
def announcer():
    mock = MagicMock()
    mock.start.side_effect = lambda name, interval: MagicMock(name=f"task:{name}")
    return mock


@pytest.fixture
def registry(notifier, announcer, clock):
    return Registry(notifier, announcer=announcer, clock=clock, default_interval=3000)


@pytest.fixture
def transport():
    return FakeTransport()

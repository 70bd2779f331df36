"""UDP multicast transport.

Thin asyncio datagram endpoint: binds a reusable UDP socket, joins the
multicast group, hands every datagram to one callback and sends raw bytes.
Everything above it only sees ``bytes`` and an origin address string.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import struct
from typing import Callable, Optional, Protocol

from .errors import TransportError

logger = logging.getLogger(__name__)

MessageCallback = Callable[[bytes, Optional[str]], None]


class Transport(Protocol):
    """The datagram collaborator the discovery core depends on."""

    async def bind(self, port: int, bind_address: str = "") -> None: ...

    def join_multicast_group(self, address: str) -> None: ...

    def on_message(self, callback: MessageCallback) -> None: ...

    def send(self, payload: bytes, port: int, address: str) -> None: ...

    def close(self) -> None: ...


class MulticastTransport(asyncio.DatagramProtocol):
    """asyncio UDP endpoint with multicast group membership."""

    def __init__(
        self,
        family: str = "udp4",
        reuse_address: bool = True,
        multicast_ttl: int = 1,
        multicast_loopback: bool = True,
    ) -> None:
        self.family = socket.AF_INET6 if family == "udp6" else socket.AF_INET
        self.reuse_address = reuse_address
        self.multicast_ttl = multicast_ttl
        self.multicast_loopback = multicast_loopback
        self._sock: Optional[socket.socket] = None
        self._transport: Optional[asyncio.DatagramTransport] = None
        self._callback: Optional[MessageCallback] = None

    # ── Collaborator interface ─────────────────────────────────────

    async def bind(self, port: int, bind_address: str = "") -> None:
        sock = socket.socket(self.family, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        try:
            if self.reuse_address:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if self.family == socket.AF_INET6:
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_HOPS, self.multicast_ttl)
                sock.setsockopt(
                    socket.IPPROTO_IPV6, socket.IPV6_MULTICAST_LOOP, int(self.multicast_loopback)
                )
            else:
                sock.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.multicast_ttl)
                sock.setsockopt(
                    socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, int(self.multicast_loopback)
                )
            sock.bind((bind_address or "", port))
            sock.setblocking(False)
        except OSError as exc:
            sock.close()
            raise TransportError(f"Could not bind UDP port {port}: {exc}") from exc

        loop = asyncio.get_running_loop()
        self._sock = sock
        self._transport, _ = await loop.create_datagram_endpoint(lambda: self, sock=sock)
        logger.info("UDP socket bound to %s:%d", bind_address or "*", port)

    def join_multicast_group(self, address: str) -> None:
        if self._sock is None:
            raise TransportError("Socket is not bound")
        try:
            if self.family == socket.AF_INET6:
                mreq = socket.inet_pton(socket.AF_INET6, address) + struct.pack("@I", 0)
                self._sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_JOIN_GROUP, mreq)
            else:
                mreq = struct.pack("4s4s", socket.inet_aton(address), socket.inet_aton("0.0.0.0"))
                self._sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
        except OSError as exc:
            raise TransportError(f"Could not join multicast group {address}: {exc}") from exc
        logger.info("Joined multicast group %s", address)

    def on_message(self, callback: MessageCallback) -> None:
        self._callback = callback

    def send(self, payload: bytes, port: int, address: str) -> None:
        if self._transport is None or self._transport.is_closing():
            raise TransportError("Transport is closed")
        try:
            self._transport.sendto(payload, (address, port))
        except OSError as exc:
            raise TransportError(f"sendto {address}:{port} failed: {exc}") from exc
        logger.debug("Sent %d bytes to %s:%d", len(payload), address, port)

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        self._sock = None

    @property
    def closed(self) -> bool:
        return self._transport is None

    # ── asyncio.DatagramProtocol ───────────────────────────────────

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        if self._callback is None:
            return
        try:
            self._callback(data, addr[0] if addr else None)
        except Exception:
            logger.exception("Error handling datagram from %s", addr)

    def error_received(self, exc: Exception) -> None:
        logger.warning("UDP socket error: %s", exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        if exc is not None:
            logger.warning("UDP socket closed with error: %s", exc)

"""Ephemeral UDP port allocation for stream sessions."""

from __future__ import annotations

import logging
import socket
import time
from collections.abc import Callable

from hikbridge.constants import PORT_RESERVE_TIMEOUT_S
from hikbridge.errors import TransportError

logger = logging.getLogger(__name__)


class UdpPortAllocator:
    """Hand out OS-chosen UDP ports that are not reused while reserved.

    A port is picked by binding a UDP socket to port 0 and reading back the
    assigned number; the socket is closed immediately. Picked ports stay
    reserved until released or until `reserve_timeout_s` elapses, so two
    sessions prepared back to back never receive the same port.
    """

    def __init__(
        self,
        *,
        reserve_timeout_s: float = PORT_RESERVE_TIMEOUT_S,
        max_attempts: int = 32,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._reserve_timeout_s = reserve_timeout_s
        self._max_attempts = max_attempts
        self._clock = clock
        self._reserved: dict[int, float] = {}

    @property
    def reserved(self) -> set[int]:
        self._expire()
        return set(self._reserved)

    def allocate(self, *, ipv6: bool = False) -> int:
        """Return a free UDP port.

        Raises:
            TransportError: If no unreserved port could be bound
        """
        self._expire()
        for _ in range(self._max_attempts):
            port = self._bind_ephemeral(ipv6)
            if port in self._reserved:
                continue
            self._reserved[port] = self._clock()
            return port
        raise TransportError(f"Could not allocate a UDP port after {self._max_attempts} attempts")

    def allocate_many(self, count: int, *, ipv6: bool = False) -> list[int]:
        """Allocate `count` distinct ports; on failure none stay reserved."""
        ports: list[int] = []
        try:
            for _ in range(count):
                ports.append(self.allocate(ipv6=ipv6))
        except TransportError:
            self.release(*ports)
            raise
        return ports

    def release(self, *ports: int) -> None:
        """Return ports to the pool; releasing an unknown port is a no-op."""
        for port in ports:
            self._reserved.pop(port, None)

    def _expire(self) -> None:
        now = self._clock()
        expired = [port for port, at in self._reserved.items() if now - at >= self._reserve_timeout_s]
        for port in expired:
            del self._reserved[port]

    def _bind_ephemeral(self, ipv6: bool) -> int:
        family = socket.AF_INET6 if ipv6 else socket.AF_INET
        host = "::" if ipv6 else "0.0.0.0"
        try:
            with socket.socket(family, socket.SOCK_DGRAM) as sock:
                sock.bind((host, 0))
                return int(sock.getsockname()[1])
        except OSError as exc:
            raise TransportError(f"Failed to bind UDP socket: {exc}", cause=exc) from exc


__all__ = ["UdpPortAllocator"]

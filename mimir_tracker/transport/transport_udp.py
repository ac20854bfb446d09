# mimir_tracker/transport/transport_udp.py
import logging
import socket
from typing import Optional

from mimir_tracker.constants import RESPONSE_BUFFER_SIZE
from mimir_tracker.transport.transport_base import (
    Address, Datagram, DatagramTransport, TransportPermanentError, TransportTransientError,
)
from mimir_tracker.utils import parse_listen_address

log = logging.getLogger("Tracker.Transport.UDP")


class UDPAdapter(DatagramTransport):
    """
    Single UDP socket bound to "[address]:port" (IPv6 or IPv4).

    • one socket for both directions
    • datagrams larger than buffer_size are cut to buffer_size
    • recv() wakes up every poll_interval seconds
    """

    name = "udp"

    def __init__(self, listen_address: str, buffer_size: int = RESPONSE_BUFFER_SIZE,
                 poll_interval: float = 0.5):
        self.listen_address = listen_address
        self.buffer_size = buffer_size
        self.poll_interval = poll_interval
        self._socket: Optional[socket.socket] = None

    def bind(self) -> None:
        try:
            host, port = parse_listen_address(self.listen_address)
            family, _, _, _, sockaddr = socket.getaddrinfo(
                host, port, type=socket.SOCK_DGRAM
            )[0]
            sock = socket.socket(family, socket.SOCK_DGRAM)
            try:
                sock.bind(sockaddr)
            except OSError:
                sock.close()
                raise
            sock.settimeout(self.poll_interval)
        except (OSError, ValueError) as e:
            raise TransportPermanentError(f"Unable to bind to {self.listen_address}: {e}") from e

        self._socket = sock
        log.info(f"[UDP] bound {self.listen_address} -> {sock.getsockname()}")

    @property
    def local_address(self) -> Optional[Address]:
        if not self._socket:
            return None
        return self._socket.getsockname()

    def recv(self) -> Optional[Datagram]:
        if not self._socket:
            raise TransportPermanentError("Socket is not bound")
        try:
            data, addr = self._socket.recvfrom(self.buffer_size)
        except socket.timeout:
            return None
        except OSError as e:
            # e.g. ICMP port unreachable surfacing on some platforms
            raise TransportTransientError(f"Receive failed: {e}") from e
        return Datagram(payload=data, source=addr)

    def send(self, payload: bytes, addr: Address) -> None:
        if not self._socket:
            raise TransportPermanentError("Socket is not bound")
        try:
            self._socket.sendto(payload, addr)
        except OSError as e:
            raise TransportTransientError(f"Send to {addr} failed: {e}") from e

    def healthz(self) -> dict:
        if not self._socket:
            return {"status": "down", "transport": self.name}
        host, port = self._socket.getsockname()[:2]
        return {"status": "ok", "transport": self.name, "local_address": f"{host}:{port}"}

    def close(self) -> None:
        if self._socket:
            self._socket.close()
            self._socket = None
            log.info(f"[UDP] closed {self.listen_address}")

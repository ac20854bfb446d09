# mimir_tracker/transport/__init__.py
from mimir_tracker.transport.transport_base import (
    Datagram,
    DatagramTransport,
    TransportError,
    TransportPermanentError,
    TransportTransientError,
)
from mimir_tracker.transport.transport_local import LocalAdapter
from mimir_tracker.transport.transport_udp import UDPAdapter


def transport_factory(mode: str = "udp", listen_address: str = ""):
    """
    mode:
      - "udp"   → socket bound to listen_address
      - "local" → in-process loopback
    """
    mode = (mode or "udp").lower()

    if mode == "udp":
        return UDPAdapter(listen_address)

    if mode == "local":
        return LocalAdapter()

    raise ValueError(f"Unknown transport: {mode}")


__all__ = [
    "Datagram",
    "DatagramTransport",
    "LocalAdapter",
    "TransportError",
    "TransportPermanentError",
    "TransportTransientError",
    "UDPAdapter",
    "transport_factory",
]

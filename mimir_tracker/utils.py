"""
mimir_tracker.utils
-------------------
Small helpers for hex formatting, timestamps and address handling.
"""

from __future__ import annotations
import ipaddress, time
from typing import Tuple


def to_hex(buf: bytes) -> str:
    # Uppercase, as identities are printed in server logs
    return buf.hex().upper()


def now_epoch() -> int:
    return int(time.time())


def format_ipv6(raw: bytes) -> str:
    return str(ipaddress.IPv6Address(raw))


def pack_ipv6(address: str | bytes) -> bytes:
    """Return the 16 raw bytes of an IPv6 address given as text or bytes."""
    if isinstance(address, (bytes, bytearray)):
        if len(address) != 16:
            raise ValueError(f"IPv6 address must be 16 bytes, got {len(address)}")
        return bytes(address)
    return ipaddress.IPv6Address(address).packed


def parse_listen_address(value: str) -> Tuple[str, int]:
    """
    Split a listen address into host and port.

    Accepts "[2001:db8::1]:5050", "[::]:5050", "127.0.0.1:5050" and
    "localhost:5050". Raises ValueError on anything else.
    """
    value = value.strip()
    if value.startswith("["):
        host, sep, port = value[1:].partition("]:")
        if not sep:
            raise ValueError(f"Invalid listen address: {value}")
    else:
        host, sep, port = value.rpartition(":")
        if not sep or ":" in host:
            raise ValueError(f"Invalid listen address: {value}")
    try:
        port_num = int(port)
    except ValueError as err:
        raise ValueError(f"Invalid port in listen address: {value}") from err
    if not 0 <= port_num <= 0xFFFF:
        raise ValueError(f"Port out of range in listen address: {value}")
    return host, port_num

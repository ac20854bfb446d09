# mimir_tracker/storage/models.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict

from mimir_tracker.constants import RESOLVE_TTL
from mimir_tracker.utils import format_ipv6, to_hex


@dataclass
class AddressRecord:
    """
    Storage-level representation of one (identity, address) registration.

    `ttl_seconds` is what the store granted on the last write and drives
    expiry. `ttl` is what gets exposed on the wire for a resolve, which is
    pinned to RESOLVE_TTL so clients come back for fresh addresses.
    """
    identity: bytes
    address: bytes
    signature: bytes
    port: int
    priority: int = 0
    client_tag: int = 0
    registered_at: int = 0
    ttl_seconds: int = 0
    ttl: int = RESOLVE_TTL

    @property
    def expires_at(self) -> int:
        return self.registered_at + self.ttl_seconds

    def is_live(self, now: int) -> bool:
        return now <= self.expires_at

    @property
    def ip(self) -> str:
        return format_ipv6(self.address)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identity": to_hex(self.identity),
            "address": self.ip,
            "port": self.port,
            "priority": self.priority,
            "client_tag": self.client_tag,
            "registered_at": self.registered_at,
            "ttl_seconds": self.ttl_seconds,
            "ttl": self.ttl,
        }

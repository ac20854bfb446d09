# mimir_tracker/storage/provider.py
from __future__ import annotations
from typing import List

from mimir_tracker.storage.models import AddressRecord


class StorageError(Exception):
    pass


class StorageProvider:
    """
    Interface every address store implements.

    save_address() never raises for a failed write: it answers with
    DEGRADED_TTL instead, because the wire protocol has no error reply.
    """
    name: str = "base"

    def save_address(
        self,
        identity: bytes,
        address: bytes,
        signature: bytes,
        port: int,
        priority: int,
        client_tag: int,
    ) -> int:
        raise NotImplementedError

    def get_addresses(self, identity: bytes) -> List[AddressRecord]:
        raise NotImplementedError

    def is_address_saved(self, identity: bytes, address: bytes) -> bool:
        raise NotImplementedError

    def close(self) -> None:
        return

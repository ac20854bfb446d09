from typing import Callable, Dict, List, Optional, Tuple
import threading
from dataclasses import replace

from mimir_tracker.constants import DEFAULT_TTL, RESOLVE_TTL
from mimir_tracker.storage.models import AddressRecord
from mimir_tracker.storage.provider import StorageProvider
from mimir_tracker.utils import now_epoch


class InMemoryStorage(StorageProvider):
    name = "memory"

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        # dicts keep insertion order, which get_addresses relies on
        self.records: Dict[Tuple[bytes, bytes], AddressRecord] = {}
        self.clock = clock or now_epoch
        self._lock = threading.Lock()

    def save_address(self, identity, address, signature, port, priority, client_tag) -> int:
        key = (bytes(identity), bytes(address))
        with self._lock:
            rec = self.records.get(key)
            if rec is None:
                self.records[key] = AddressRecord(
                    identity=key[0],
                    address=key[1],
                    signature=bytes(signature),
                    port=port,
                    priority=priority,
                    client_tag=client_tag,
                    registered_at=self.clock(),
                    ttl_seconds=DEFAULT_TTL,
                )
            else:
                rec.port = port
                rec.priority = priority
                rec.registered_at = self.clock()
                rec.ttl_seconds = DEFAULT_TTL
        return DEFAULT_TTL

    def get_addresses(self, identity) -> List[AddressRecord]:
        now = self.clock()
        identity = bytes(identity)
        with self._lock:
            return [
                replace(rec, ttl=RESOLVE_TTL)
                for (rec_id, _), rec in self.records.items()
                if rec_id == identity and rec.is_live(now)
            ]

    def is_address_saved(self, identity, address) -> bool:
        return (bytes(identity), bytes(address)) in self.records

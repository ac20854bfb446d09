from __future__ import annotations
from typing import Callable, List, Optional
import logging, sqlite3, os, threading

from mimir_tracker.constants import DEFAULT_DB_PATH, DEFAULT_PORT, DEFAULT_TTL, DEGRADED_TTL, RESOLVE_TTL
from mimir_tracker.storage.models import AddressRecord
from mimir_tracker.storage.provider import StorageError, StorageProvider
from mimir_tracker.utils import now_epoch, to_hex

log = logging.getLogger("Tracker.Storage.SQLite")

SQL_UPSERT_ADDRESS = """
    INSERT INTO clients (identity, address, signature, port, priority, client_tag, registered_at, ttl)
    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
    ON CONFLICT(identity, address) DO UPDATE SET
      port = excluded.port,
      priority = excluded.priority,
      registered_at = excluded.registered_at,
      ttl = excluded.ttl
"""
CLIENT_COLUMNS = ("identity", "address", "signature", "port", "priority", "client_tag", "registered_at", "ttl")

SQL_SELECT_ADDRESSES = (
    "SELECT identity, address, signature, port, priority, client_tag, registered_at, ttl "
    "FROM clients WHERE identity=? ORDER BY rowid"
)


class SQLiteStorage(StorageProvider):
    name = "sqlite"

    def __init__(self, path=DEFAULT_DB_PATH, clock: Optional[Callable[[], int]] = None):
        # If no directory, default to current working directory
        dir_path = os.path.dirname(path) or "."
        os.makedirs(dir_path, exist_ok=True)
        self.path = path
        self.clock = clock or now_epoch
        self._lock = threading.Lock()

        try:
            self.db = sqlite3.connect(path, check_same_thread=False)
            self._init()
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open address database {path}: {e}") from e

    def _init(self) -> None:
        c = self.db.cursor()
        columns = [row[1] for row in c.execute("PRAGMA table_info(clients)")]
        missing = [col for col in CLIENT_COLUMNS if columns and col not in columns]
        if missing:
            self.db.close()
            raise StorageError(
                f"{self.path} has an incompatible clients table (missing {', '.join(missing)})"
            )

        c.execute("""CREATE TABLE IF NOT EXISTS clients(
            identity BLOB NOT NULL,
            address BLOB NOT NULL,
            signature BLOB NOT NULL,
            port INTEGER,
            priority INTEGER,
            client_tag INTEGER,
            registered_at INTEGER,
            ttl INTEGER
        )""")
        c.execute("CREATE UNIQUE INDEX IF NOT EXISTS clients_identity_address ON clients (identity, address)")
        c.execute("CREATE INDEX IF NOT EXISTS clients_identity ON clients (identity)")

        self.db.commit()

    def save_address(self, identity: bytes, address: bytes, signature: bytes,
                     port: int, priority: int, client_tag: int) -> int:
        # signature and client_tag are only written when the row is first created
        with self._lock:
            try:
                self.db.execute(
                    SQL_UPSERT_ADDRESS,
                    (identity, address, signature, port, priority, client_tag, self.clock(), DEFAULT_TTL),
                )
                self.db.commit()
            except sqlite3.Error as e:
                log.error(f"[SQLITE] save failed for {to_hex(identity)}: {e}")
                try:
                    self.db.rollback()
                except sqlite3.Error:
                    log.exception("[SQLITE] rollback failed")
                return DEGRADED_TTL
        return DEFAULT_TTL

    def get_addresses(self, identity: bytes) -> List[AddressRecord]:
        now = self.clock()
        try:
            rows = self.db.execute(SQL_SELECT_ADDRESSES, (identity,)).fetchall()
        except sqlite3.Error as e:
            log.error(f"[SQLITE] select failed for {to_hex(identity)}: {e}")
            return []

        result = []
        for identity_, address, signature, port, priority, client_tag, registered_at, ttl in rows:
            rec = AddressRecord(
                identity=identity_,
                address=address,
                signature=signature,
                port=DEFAULT_PORT if port is None else port,
                priority=priority or 0,
                client_tag=client_tag or 0,
                registered_at=registered_at or 0,
                ttl_seconds=DEFAULT_TTL if ttl is None else ttl,
                ttl=RESOLVE_TTL,
            )
            if not rec.is_live(now):
                continue
            result.append(rec)
        return result

    def is_address_saved(self, identity: bytes, address: bytes) -> bool:
        cur = self.db.execute("SELECT 1 FROM clients WHERE identity=? AND address=?", (identity, address))
        return cur.fetchone() is not None

    def close(self):
        self.db.close()

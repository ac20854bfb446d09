# mimir_tracker/storage/__init__.py

from .models import AddressRecord
from .provider import StorageError, StorageProvider
from .providers.memory_provider import InMemoryStorage
from .providers.sqlite_provider import SQLiteStorage
from mimir_tracker.constants import DEFAULT_DB_PATH


def load_storage_provider(config: dict | None = None) -> StorageProvider:
    """
    Factory resolver for selecting the runtime storage backend.

        - sqlite (default), file path from "sqlite_path"
        - memory
    """
    config = config or {}
    provider = config.get("provider") or "sqlite"
    clock = config.get("clock")

    if provider == "memory":
        return InMemoryStorage(clock=clock)

    if provider == "sqlite":
        db_path = config.get("sqlite_path") or DEFAULT_DB_PATH
        return SQLiteStorage(db_path, clock=clock)

    raise ValueError(f"Unknown storage provider: {provider}")


__all__ = [
    "AddressRecord",
    "StorageError",
    "StorageProvider",
    "InMemoryStorage",
    "SQLiteStorage",
    "load_storage_provider",
]

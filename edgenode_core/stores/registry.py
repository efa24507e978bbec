from __future__ import annotations

from edgenode_core.config import Config
from edgenode_core.errors import ConfigurationError
from edgenode_core.stores.interfaces import PersistentStore
from edgenode_core.stores.json_store import JsonDeviceStore
from edgenode_core.stores.sqlite_store import SqliteDeviceStore


def get_persistent_store(config: Config) -> PersistentStore:
    backend = config.db_backend.strip().lower()
    if backend == "json":
        return JsonDeviceStore(config.db_uri())
    if backend == "sqlite":
        return SqliteDeviceStore(config.db_uri())
    raise ConfigurationError(f"Unsupported device store backend: {backend}")

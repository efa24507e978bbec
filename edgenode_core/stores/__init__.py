from edgenode_core.stores.interfaces import PersistentStore
from edgenode_core.stores.json_store import JsonDeviceStore
from edgenode_core.stores.sqlite_store import SqliteDeviceStore

__all__ = [
    "JsonDeviceStore",
    "PersistentStore",
    "SqliteDeviceStore",
]

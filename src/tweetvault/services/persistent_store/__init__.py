"""Persistent store package.

SQLite implementation of the keyed lookup/upsert store with separated
operations, schema and transaction concerns.
"""

from tweetvault.services.persistent_store.store import (
    PersistentStore,
    SQLitePersistentStore,
)

__all__ = ["PersistentStore", "SQLitePersistentStore"]

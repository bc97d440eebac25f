"""Collection stores package.

Provides the ``CollectionStore`` Protocol and concrete async store
implementations: an in-process store with compensating rollback and a
PostgreSQL store of JSONB document tables.

Usage:
    from fintrack_backup.stores import CollectionStore, InMemoryCollectionStore
    from fintrack_backup.stores import AsyncPostgresCollectionStore
"""

from fintrack_backup.stores.base import CollectionStore, WriteScope
from fintrack_backup.stores.memory import InMemoryCollectionStore
from fintrack_backup.stores.postgres import AsyncPostgresCollectionStore

__all__ = [
    "CollectionStore",
    "WriteScope",
    "InMemoryCollectionStore",
    "AsyncPostgresCollectionStore",
]

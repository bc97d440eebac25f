"""Collection store protocol definition.

Defines the ``CollectionStore`` Protocol that every store the engine backs
up must implement.  All I/O methods are ``async def``.

The engine knows nothing about drivers: "all collections" comes from
``list_collections()`` and atomic restore comes from ``transaction()``.

Usage:
    from fintrack_backup.stores.base import CollectionStore

    async def copy_users(store: CollectionStore) -> None:
        users = await store.read_all("users")
        async with store.transaction() as scope:
            await scope.delete_all("users_archive")
            await scope.insert_many("users_archive", users)
"""

from contextlib import AbstractAsyncContextManager
from typing import Protocol


class WriteScope(Protocol):
    """Writes bound to one open transaction.

    Writes made through a scope become visible atomically when the
    enclosing ``transaction()`` block exits cleanly and are discarded when
    it exits with an exception.
    """

    async def delete_all(self, collection: str) -> None:
        """Delete every document in ``collection`` within the scope."""
        ...

    async def insert_many(self, collection: str, documents: list[dict]) -> None:
        """Insert ``documents`` into ``collection`` within the scope.

        Creates the collection if the store does not have it yet.
        """
        ...


class CollectionStore(Protocol):
    """Store interface that the backup engine consumes.

    Documents are opaque field bags (JSON objects).  Every field, including
    the store-native identifier, must come back unchanged from
    ``read_all()`` after an ``insert_many()``.
    """

    async def list_collections(self) -> list[str]:
        """Return the names of all collections the store currently exposes.

        Example:
            names = await store.list_collections()
            # ["budgets", "transactions", "users"]
        """
        ...

    async def read_all(self, collection: str) -> list[dict]:
        """Return every document in ``collection``.

        Returns:
            List of dicts.  Empty list if the collection has no documents.
        """
        ...

    async def delete_all(self, collection: str) -> None:
        """Delete every document in ``collection`` (autocommit)."""
        ...

    async def insert_many(self, collection: str, documents: list[dict]) -> None:
        """Insert ``documents`` into ``collection`` (autocommit)."""
        ...

    def transaction(self) -> AbstractAsyncContextManager[WriteScope]:
        """Open an atomic multi-collection write scope.

        Example:
            async with store.transaction() as scope:
                await scope.delete_all("users")
                await scope.insert_many("users", docs)
            # committed here; rolled back if the block raised
        """
        ...

    async def close(self) -> None:
        """Release connections and other resources."""
        ...

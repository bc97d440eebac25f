"""In-process collection store.

Provides ``InMemoryCollectionStore``, a dict-of-lists implementation of the
``CollectionStore`` protocol.  It has no native transactions: its
``transaction()`` captures a pre-image of every collection before the first
write touches it and re-inserts those pre-images if the block fails.

Usage:
    from fintrack_backup.stores.memory import InMemoryCollectionStore

    store = InMemoryCollectionStore({"users": [{"_id": "u1"}]})
    async with store.transaction() as scope:
        await scope.delete_all("users")
        await scope.insert_many("users", [{"_id": "u2"}])
"""

import copy
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

logger = logging.getLogger(__name__)


class _CompensatingScope:
    """Write scope that records pre-images for compensating rollback."""

    def __init__(self, store: "InMemoryCollectionStore") -> None:
        self._store = store
        self._pre_images: dict[str, list[dict] | None] = {}

    def _capture(self, collection: str) -> None:
        if collection in self._pre_images:
            return
        existing = self._store._collections.get(collection)
        self._pre_images[collection] = copy.deepcopy(existing) if existing is not None else None

    async def delete_all(self, collection: str) -> None:
        self._capture(collection)
        await self._store.delete_all(collection)

    async def insert_many(self, collection: str, documents: list[dict]) -> None:
        self._capture(collection)
        await self._store.insert_many(collection, documents)

    def rollback(self) -> None:
        """Put every touched collection back to its pre-image."""
        for collection, image in self._pre_images.items():
            if image is None:
                self._store._collections.pop(collection, None)
            else:
                self._store._collections[collection] = image
        logger.info("Rolled back %d collection(s)", len(self._pre_images))


class InMemoryCollectionStore:
    """Dict-backed implementation of the ``CollectionStore`` protocol.

    Args:
        collections: Optional initial content, collection name to documents.
            Documents are deep-copied in and out so callers never share
            mutable state with the store.
    """

    def __init__(self, collections: dict[str, list[dict]] | None = None) -> None:
        self._collections: dict[str, list[dict]] = {
            name: copy.deepcopy(docs) for name, docs in (collections or {}).items()
        }

    async def list_collections(self) -> list[str]:
        return list(self._collections.keys())

    async def read_all(self, collection: str) -> list[dict]:
        if collection not in self._collections:
            raise KeyError(f"Unknown collection: {collection}")
        return copy.deepcopy(self._collections[collection])

    async def delete_all(self, collection: str) -> None:
        self._collections[collection] = []

    async def insert_many(self, collection: str, documents: list[dict]) -> None:
        self._collections.setdefault(collection, []).extend(copy.deepcopy(documents))

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[_CompensatingScope]:
        scope = _CompensatingScope(self)
        try:
            yield scope
        except BaseException:
            scope.rollback()
            raise

    async def close(self) -> None:
        """Nothing to release."""

    def snapshot(self) -> dict[str, list[dict]]:
        """Return a deep copy of the whole store (test and debug helper)."""
        return copy.deepcopy(self._collections)

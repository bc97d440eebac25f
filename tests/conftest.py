"""Shared fixtures: a controllable clock, seeded stores and an engine."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from fintrack_backup.backup.engine import BackupEngine
from fintrack_backup.config.models import BackupSettings
from fintrack_backup.stores.memory import InMemoryCollectionStore

START = datetime(2026, 1, 15, 10, 30, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FailingStore(InMemoryCollectionStore):
    """In-memory store whose inserts into one collection fail."""

    def __init__(self, collections=None, fail_on: str | None = None) -> None:
        super().__init__(collections)
        self.fail_on = fail_on

    async def insert_many(self, collection, documents):
        if collection == self.fail_on:
            raise RuntimeError(f"simulated insert failure on {collection}")
        await super().insert_many(collection, documents)


class SlowStore(InMemoryCollectionStore):
    """In-memory store with slow inserts and an optional read gate."""

    def __init__(self, collections=None, insert_delay: float = 0.0) -> None:
        super().__init__(collections)
        self.insert_delay = insert_delay
        self.read_gate: asyncio.Event | None = None

    async def read_all(self, collection):
        if self.read_gate is not None:
            await self.read_gate.wait()
        return await super().read_all(collection)

    async def insert_many(self, collection, documents):
        if self.insert_delay:
            await asyncio.sleep(self.insert_delay)
        await super().insert_many(collection, documents)


def sample_collections() -> dict[str, list[dict]]:
    return {
        "users": [
            {"_id": "u1", "username": "alice", "phone": "+6281200000001", "active": True},
            {"_id": "u2", "username": "budi", "phone": "+6281200000002", "active": False},
        ],
        "transactions": [
            {
                "_id": "t1",
                "user": "u1",
                "amount": 125000.5,
                "category": "makan",
                "tags": ["lunch", "kantor"],
                "meta": {"source": "whatsapp", "note": "nasi goreng é"},
            },
        ],
        "budgets": [],
    }


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def settings(tmp_path) -> BackupSettings:
    return BackupSettings(path=tmp_path / "backups")


@pytest.fixture
def store() -> InMemoryCollectionStore:
    return InMemoryCollectionStore(sample_collections())


@pytest.fixture
def engine(store, settings, clock) -> BackupEngine:
    return BackupEngine(store, settings, clock=clock)

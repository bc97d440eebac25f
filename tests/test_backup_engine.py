"""Tests for the BackupEngine facade.

Each engine operation is exercised end to end against an in-memory store
and a temporary backup directory, including the activity log entries the
operations leave behind.
"""

import asyncio
import hashlib
from datetime import timedelta

import pytest

from fintrack_backup.backup.activity import ActivityType
from fintrack_backup.backup.engine import BackupEngine
from fintrack_backup.backup.models import BackupType, CleanPolicy, RestoreState
from fintrack_backup.backup.validator import serialize_payload
from fintrack_backup.config.models import BackupSettings
from fintrack_backup.errors import (
    ConcurrencyError,
    IntegrityError,
    NotFoundError,
    RestoreFailedError,
    RetentionGuardError,
    StoreReadError,
    ValidationError,
)
from fintrack_backup.stores.memory import InMemoryCollectionStore

from conftest import SlowStore, sample_collections


class TestCreateAndRead:
    """create_backup, list_backups, get_backup, validate."""

    async def test_create_logs_activity(self, engine):
        record = await engine.create_backup(created_by="admin", description="before import")

        entries = engine.activity_entries(ActivityType.CREATE)
        assert len(entries) == 1
        assert entries[0].actor == "admin"
        assert entries[0].details["backupId"] == record.id
        assert entries[0].details["documentsCount"] == 3

    async def test_list_and_get(self, engine, clock):
        first = await engine.create_backup()
        clock.advance(minutes=1)
        second = await engine.create_backup()

        page = await engine.list_backups()
        assert [r.id for r in page.items] == [second.id, first.id]
        assert await engine.get_backup(first.filename) == first

    async def test_validate_and_check(self, engine):
        record = await engine.create_backup()
        assert (await engine.validate_backup(record.id)).is_valid is True

        engine.catalog.payload_path(record.id).write_bytes(b"{}")
        with pytest.raises(IntegrityError):
            await engine.validate_backup(record.id)
        assert (await engine.check_backup(record.id)).is_valid is False

    async def test_invalid_paging(self, engine):
        with pytest.raises(ValidationError):
            await engine.list_backups(page=0)


class TestUploadDownload:
    async def test_upload_then_restore(self, engine, store):
        """An uploaded payload can be restored like any other backup."""
        data = serialize_payload({"users": [{"_id": "u9"}], "transactions": [], "budgets": []})
        record = await engine.upload_backup(
            data,
            actor="admin",
            original_name="export.json",
            expected_checksum=hashlib.sha256(data).hexdigest(),
        )
        assert record.type == BackupType.UPLOAD

        await engine.restore(record.id, actor="admin")
        assert await store.read_all("users") == [{"_id": "u9"}]

        upload = engine.activity_entries(ActivityType.UPLOAD)[0]
        assert upload.details["originalName"] == "export.json"

    async def test_download(self, engine):
        record = await engine.create_backup()
        path = await engine.download_backup(record.id, actor="admin")

        assert path == engine.catalog.payload_path(record.id)
        assert hashlib.sha256(path.read_bytes()).hexdigest() == record.checksum
        assert engine.activity_entries(ActivityType.DOWNLOAD)[0].details == {"backupId": record.id}

    async def test_download_missing_payload(self, engine):
        record = await engine.create_backup()
        engine.catalog.payload_path(record.id).unlink()
        with pytest.raises(NotFoundError):
            await engine.download_backup(record.id)
        assert engine.activity_entries(ActivityType.DOWNLOAD) == []


class TestRestore:
    async def test_restore_logs_activity(self, engine, store):
        original = store.snapshot()
        record = await engine.create_backup()
        await store.insert_many("budgets", [{"_id": "b1"}])

        outcome = await engine.restore(record.id, actor="admin")

        assert store.snapshot() == original
        entry = engine.activity_entries(ActivityType.RESTORE)[0]
        assert entry.details["safetyBackupId"] == outcome.safety_backup_id
        assert entry.details["success"] is True

        created = [e.details["backupId"] for e in engine.activity_entries(ActivityType.CREATE)]
        assert sorted(created) == sorted([record.id, outcome.safety_backup_id])

    async def test_create_rejected_while_restoring(self, tmp_path, clock):
        store = SlowStore(sample_collections())
        engine = BackupEngine(store, BackupSettings(path=tmp_path / "backups"), clock=clock)
        record = await engine.create_backup()

        store.read_gate = asyncio.Event()
        task = asyncio.create_task(engine.restore(record.id))
        while engine.coordinator.state != RestoreState.SAFETY_BACKUP_IN_PROGRESS:
            await asyncio.sleep(0)

        with pytest.raises(ConcurrencyError):
            await engine.create_backup()
        with pytest.raises(ConcurrencyError):
            await engine.restore(record.id)

        store.read_gate.set()
        await task

    async def test_default_timeout_from_settings(self, tmp_path, clock):
        store = SlowStore(sample_collections())
        settings = BackupSettings(path=tmp_path / "backups", restore_timeout=0.1)
        engine = BackupEngine(store, settings, clock=clock)
        record = await engine.create_backup()
        store.insert_delay = 1.0

        with pytest.raises(RestoreFailedError):
            await engine.restore(record.id)


class TestRetention:
    async def test_clean_default_keep(self, engine, clock):
        for _ in range(7):
            await engine.create_backup()
            clock.advance(days=1)

        result = await engine.clean(actor="admin")

        assert result.deleted_count == 2
        assert result.remaining_count == 5
        entry = engine.activity_entries(ActivityType.CLEAN)[0]
        assert entry.details["deletedCount"] == 2
        assert entry.details["freedSpace"] == result.freed_bytes

    async def test_clean_guard(self, engine, clock):
        await engine.create_backup()
        clock.advance(hours=1)
        with pytest.raises(RetentionGuardError):
            await engine.clean(CleanPolicy(keep=0))
        assert engine.activity_entries(ActivityType.CLEAN) == []

    async def test_delete_backup(self, engine, clock):
        record = await engine.create_backup()
        clock.advance(days=2)

        result = await engine.delete_backup(record.id, actor="admin")

        assert result.deleted == [record.id]
        assert result.remaining_count == 0
        entry = engine.activity_entries(ActivityType.CLEAN)[0]
        assert entry.details["deleted"] == [record.id]
        assert entry.details["force"] is False


class TestScheduleAndStats:
    async def test_update_schedule_logs_activity(self, engine):
        config = await engine.update_schedule({"interval": "12h"}, actor="admin")

        assert engine.get_schedule() == config
        entry = engine.activity_entries(ActivityType.SCHEDULE_UPDATE)[0]
        assert entry.details["interval"] == "12h"
        assert (engine.settings.path / "schedule.json").exists()

    async def test_invalid_schedule(self, engine):
        with pytest.raises(ValidationError):
            await engine.update_schedule({"interval": "whenever"}, actor="admin")
        assert engine.activity_entries(ActivityType.SCHEDULE_UPDATE) == []

    async def test_stats(self, engine, clock):
        first = await engine.create_backup()
        clock.advance(hours=1)
        latest = await engine.create_backup(type=BackupType.STARTUP)

        stats = await engine.get_stats()

        assert stats.store.collections == 3
        assert stats.store.documents == 3
        assert stats.backups.total == 2
        assert stats.backups.by_type == {"manual": 1, "startup": 1}
        assert stats.backups.latest.id == latest.id
        assert stats.backups.oldest.id == first.id
        assert stats.schedule.next_backup == latest.created_at + timedelta(hours=24)

    async def test_stats_store_failure(self, settings, clock):
        class BrokenStore(InMemoryCollectionStore):
            async def list_collections(self):
                raise ConnectionError("db down")

        engine = BackupEngine(BrokenStore(), settings, clock=clock)
        with pytest.raises(StoreReadError):
            await engine.get_stats()


class TestLifecycle:
    async def test_startup_backup(self, tmp_path, store, clock):
        settings = BackupSettings(path=tmp_path / "backups", backup_on_startup=True)
        engine = BackupEngine(store, settings, clock=clock)

        record = await engine.startup()

        assert record.type == BackupType.STARTUP
        assert record.created_by == "system"

    async def test_startup_disabled(self, engine):
        assert await engine.startup() is None
        assert engine.catalog.records() == []

    async def test_shutdown_backup_and_close(self, tmp_path, store, clock):
        settings = BackupSettings(path=tmp_path / "backups", backup_on_shutdown=True)
        engine = BackupEngine(store, settings, clock=clock)
        closed = []

        async def close():
            closed.append(True)

        store.close = close
        record = await engine.shutdown(reason="SIGTERM")

        assert record.type == BackupType.SHUTDOWN
        assert record.description == "Backup created during SIGTERM shutdown"
        assert closed == [True]

    async def test_failed_shutdown_backup_still_closes(self, tmp_path, clock):
        class BrokenStore(InMemoryCollectionStore):
            async def list_collections(self):
                raise ConnectionError("db down")

        store = BrokenStore()
        closed = []

        async def close():
            closed.append(True)

        store.close = close
        settings = BackupSettings(path=tmp_path / "backups", backup_on_shutdown=True)
        engine = BackupEngine(store, settings, clock=clock)

        assert await engine.shutdown() is None
        assert closed == [True]

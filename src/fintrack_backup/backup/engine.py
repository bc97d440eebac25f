"""Backup engine facade.

``BackupEngine`` wires the snapshotter, validator, restore coordinator,
retention manager, activity log and schedule around one injected
``CollectionStore``.  It is the interface the HTTP layer calls; that layer
authenticates the actor and checks permissions before calling in.

Usage:
    from fintrack_backup import BackupEngine, BackupSettings
    from fintrack_backup.stores import AsyncPostgresCollectionStore

    store = AsyncPostgresCollectionStore("postgresql://localhost/fintrack")
    engine = BackupEngine(store, BackupSettings(path="backups"))

    record = await engine.create_backup(created_by="admin", description="Before import")
    page = await engine.list_backups(page=1, limit=10)
    outcome = await engine.restore(record.id, actor="admin")
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Iterator

from fintrack_backup.backup.activity import ActivityEntry, ActivityLog, ActivityType
from fintrack_backup.backup.catalog import BackupCatalog
from fintrack_backup.backup.models import (
    BackupPage,
    BackupRecord,
    BackupStats,
    BackupType,
    CleanPolicy,
    CleanResult,
    RestoreOutcome,
    ScheduleConfig,
    ScheduleSummary,
    StoreStats,
    ValidationResult,
    utcnow,
)
from fintrack_backup.backup.restore import RestoreCoordinator
from fintrack_backup.backup.retention import RetentionManager
from fintrack_backup.backup.schedule import ScheduleManager
from fintrack_backup.backup.snapshot import Snapshotter
from fintrack_backup.backup.validator import ChecksumValidator
from fintrack_backup.config.models import BackupSettings
from fintrack_backup.errors import (
    BackupEngineError,
    ConcurrencyError,
    InfrastructureError,
    NotFoundError,
    StoreReadError,
)
from fintrack_backup.stores.base import CollectionStore

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


@contextmanager
def _infrastructure(operation: str) -> Iterator[None]:
    """Log unexpected I/O failures in full and surface them generically."""
    try:
        yield
    except BackupEngineError:
        raise
    except OSError as e:
        logger.exception("%s failed", operation)
        raise InfrastructureError(f"{operation} failed") from e


class BackupEngine:
    """Backup & restore engine for one collection store.

    Args:
        store: Store to back up and restore.
        settings: Engine settings; defaults read ``BACKUP_*`` env vars.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        store: CollectionStore,
        settings: BackupSettings | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.settings = settings or BackupSettings()
        self.store = store
        root = Path(self.settings.path)

        self.catalog = BackupCatalog(root)
        self.activity = ActivityLog(root / "logs", clock=clock)
        self.validator = ChecksumValidator(self.catalog, self.settings.required_collections)
        self.snapshotter = Snapshotter(
            store,
            self.catalog,
            self.settings.required_collections,
            activity=self.activity,
            clock=clock,
        )
        self.retention = RetentionManager(self.catalog, self.settings.guard_hours, clock=clock)
        self.schedule = ScheduleManager(
            root / "schedule.json" if self.settings.persist_schedule else None,
            clock=clock,
        )
        self.coordinator = RestoreCoordinator(
            store, self.validator, self.snapshotter, self.activity, clock=clock
        )

    # ------------------------------------------------------------------
    # Create / Upload / Download
    # ------------------------------------------------------------------

    async def create_backup(
        self,
        type: BackupType = BackupType.MANUAL,
        created_by: str | None = None,
        description: str | None = None,
    ) -> BackupRecord:
        """Snapshot the store.

        Raises:
            ConcurrencyError: If a restore is in progress.
            StoreReadError: If the store could not be read.
            BackupStorageError: If the storage directory is not writable.
        """
        if self.coordinator.in_progress:
            raise ConcurrencyError("A restore is in progress; try again when it finishes")
        return await self.snapshotter.create_backup(
            type=type, created_by=created_by, description=description
        )

    async def upload_backup(
        self,
        data: bytes,
        actor: str | None = None,
        original_name: str | None = None,
        expected_checksum: str | None = None,
    ) -> BackupRecord:
        """Accept an uploaded payload as a new ``upload`` backup.

        Raises:
            ValidationError: If the upload is empty.
            IntegrityError: If the payload is malformed or incomplete.
        """
        record = await self.snapshotter.import_payload(
            data,
            created_by=actor,
            original_name=original_name,
            expected_checksum=expected_checksum,
        )
        self.activity.append(
            ActivityType.UPLOAD,
            actor,
            backupId=record.id,
            originalName=original_name,
            size=record.size_bytes,
        )
        return record

    async def download_backup(self, backup_id: str, actor: str | None = None) -> Path:
        """Return the payload path of a backup for streaming to the caller.

        Raises:
            NotFoundError: If the backup or its payload does not exist.
        """
        with _infrastructure("Locating backup"):
            record = self.retention.get(backup_id)
            path = self.catalog.payload_path(record.id)
            if not path.exists():
                raise NotFoundError(f"Payload of backup {record.id} not found")
        self.activity.append(ActivityType.DOWNLOAD, actor, backupId=record.id)
        return path

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    async def list_backups(
        self,
        type: BackupType | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> BackupPage:
        with _infrastructure("Listing backups"):
            return self.retention.list(type=type, page=page, limit=limit)

    async def get_backup(self, backup_id: str) -> BackupRecord:
        with _infrastructure("Reading backup"):
            return self.retention.get(backup_id)

    async def validate_backup(self, backup_id: str) -> ValidationResult:
        """Validate a backup; raises typed errors on failure."""
        with _infrastructure("Validating backup"):
            return await self.validator.validate(backup_id)

    async def check_backup(self, backup_id: str) -> ValidationResult:
        """Validate a backup; failures come back as ``is_valid=False``."""
        with _infrastructure("Validating backup"):
            return await self.validator.check(backup_id)

    def activity_entries(
        self,
        event_type: ActivityType | None = None,
        limit: int | None = None,
    ) -> list[ActivityEntry]:
        with _infrastructure("Reading activity log"):
            return self.activity.read(event_type=event_type, limit=limit)

    async def get_stats(self) -> BackupStats:
        """Aggregate counts and sizes of the store, the backups and the schedule."""
        try:
            names = await self.store.list_collections()
            documents = 0
            for name in names:
                documents += len(await self.store.read_all(name))
        except Exception as e:
            logger.exception("Reading store statistics failed")
            raise StoreReadError("Failed to read store statistics") from e

        with _infrastructure("Reading backup statistics"):
            totals = self.retention.totals()

        schedule = self.schedule.get()
        return BackupStats(
            store=StoreStats(collections=len(names), documents=documents),
            backups=totals,
            schedule=ScheduleSummary(
                enabled=schedule.enabled,
                interval=schedule.interval,
                next_backup=self.schedule.next_run(
                    totals.latest.created_at if totals.latest else None
                ),
            ),
        )

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    async def restore(
        self,
        backup_id: str,
        actor: str | None = None,
        timeout: float | None = None,
    ) -> RestoreOutcome:
        """Restore the store from a backup (see ``RestoreCoordinator.restore``)."""
        if timeout is None:
            timeout = self.settings.restore_timeout
        with _infrastructure("Restore"):
            return await self.coordinator.restore(backup_id, actor=actor, timeout=timeout)

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    async def clean(
        self,
        policy: CleanPolicy | None = None,
        actor: str | None = None,
    ) -> CleanResult:
        """Prune backups according to ``policy``.

        Raises:
            RetentionGuardError: If a selected backup is too recent and the
                policy is not forced.  Nothing is deleted in that case.
        """
        if policy is None:
            policy = CleanPolicy(keep=self.settings.default_keep)
        with _infrastructure("Cleaning backups"):
            result = self.retention.clean(policy)
        self.activity.append(
            ActivityType.CLEAN,
            actor,
            deletedCount=result.deleted_count,
            freedSpace=result.freed_bytes,
            deleted=result.deleted,
            policy=policy.model_dump(mode="json"),
        )
        return result

    async def delete_backup(
        self,
        backup_id: str,
        actor: str | None = None,
        force: bool = False,
    ) -> CleanResult:
        """Delete one backup, subject to the recency guard."""
        with _infrastructure("Deleting backup"):
            record, freed = self.retention.delete(backup_id, force=force)
            remaining = len(self.catalog.records())
        self.activity.append(
            ActivityType.CLEAN,
            actor,
            deletedCount=1,
            freedSpace=freed,
            deleted=[record.id],
            force=force,
        )
        return CleanResult(
            deleted_count=1,
            freed_bytes=freed,
            remaining_count=remaining,
            deleted=[record.id],
        )

    # ------------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------------

    def get_schedule(self) -> ScheduleConfig:
        return self.schedule.get()

    async def update_schedule(
        self,
        new_config: dict[str, Any] | ScheduleConfig,
        actor: str | None = None,
    ) -> ScheduleConfig:
        """Validate and replace the backup schedule.

        Raises:
            ValidationError: If the interval or retention bounds are invalid.
        """
        config = self.schedule.update(new_config, actor)
        self.activity.append(
            ActivityType.SCHEDULE_UPDATE,
            actor,
            enabled=config.enabled,
            interval=config.interval,
            retention=config.retention.model_dump(),
        )
        return config

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def startup(self) -> BackupRecord | None:
        """Take a ``startup`` backup when enabled in settings.

        A failed startup backup is logged and does not stop the service.
        """
        if not self.settings.backup_on_startup:
            return None
        try:
            return await self.create_backup(type=BackupType.STARTUP, created_by=SYSTEM_ACTOR)
        except BackupEngineError:
            logger.exception("Startup backup failed")
            return None

    async def shutdown(self, reason: str | None = None) -> BackupRecord | None:
        """Take a ``shutdown`` backup when enabled, then close the store."""
        record = None
        try:
            if self.settings.backup_on_shutdown:
                description = f"Backup created during {reason} shutdown" if reason else None
                try:
                    record = await self.create_backup(
                        type=BackupType.SHUTDOWN,
                        created_by=SYSTEM_ACTOR,
                        description=description,
                    )
                except BackupEngineError:
                    logger.exception("Shutdown backup failed")
        finally:
            await self.store.close()
        return record

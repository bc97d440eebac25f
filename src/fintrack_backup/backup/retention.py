"""Listing and pruning of backups.

Works purely on the on-disk catalog, so every method here is **sync** --
only local files are touched, no store I/O.

Usage:
    manager = RetentionManager(catalog)
    page = manager.list(type=BackupType.MANUAL, page=2, limit=10)
    result = manager.clean(CleanPolicy(keep=5))
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable

from fintrack_backup.backup.catalog import BackupCatalog, normalize_backup_id
from fintrack_backup.backup.models import (
    BackupPage,
    BackupRecord,
    BackupTotals,
    BackupType,
    CleanPolicy,
    CleanResult,
    Pagination,
    utcnow,
)
from fintrack_backup.errors import RetentionGuardError, ValidationError

logger = logging.getLogger(__name__)


class RetentionManager:
    """List, paginate and prune backups.

    Args:
        catalog: Storage the backups live in.
        guard_hours: Backups younger than this need ``force`` to be deleted.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        catalog: BackupCatalog,
        guard_hours: float = 24.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._catalog = catalog
        self.guard = timedelta(hours=guard_hours)
        self._guard_hours = guard_hours
        self._clock = clock

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def records(self, type: BackupType | None = None) -> list[BackupRecord]:
        """All complete backups, newest first, optionally of one type."""
        items = self._catalog.records()
        if type is not None:
            items = [r for r in items if r.type == type]
        return items

    def list(
        self,
        type: BackupType | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> BackupPage:
        """Return one page of backups sorted by ``created_at`` descending.

        Raises:
            ValidationError: If ``page`` or ``limit`` is below 1.
        """
        if page < 1:
            raise ValidationError("page must be at least 1")
        if limit < 1:
            raise ValidationError("limit must be at least 1")

        items = self.records(type)
        start = (page - 1) * limit
        return BackupPage(
            items=items[start : start + limit],
            pagination=Pagination.build(page=page, limit=limit, total=len(items)),
        )

    def get(self, backup_id: str) -> BackupRecord:
        """Return the metadata of one backup.

        Raises:
            NotFoundError: If the backup does not exist.
        """
        return self._catalog.read_metadata(normalize_backup_id(backup_id))

    # ------------------------------------------------------------------
    # Pruning
    # ------------------------------------------------------------------

    def check_guard(self, record: BackupRecord, force: bool = False) -> None:
        """Reject deleting ``record`` if it is too recent and not forced.

        Raises:
            RetentionGuardError: Naming the offending backup.
        """
        if force:
            return
        if record.age(self._clock()) < self.guard:
            raise RetentionGuardError(record.id, self._guard_hours)

    def select(self, policy: CleanPolicy) -> list[BackupRecord]:
        """Backups ``policy`` would delete, newest first."""
        items = self.records(policy.type)
        if policy.older_than is not None:
            cutoff = self._clock() - policy.older_than
            return [r for r in items if r.created_at < cutoff]
        return items[policy.keep :]

    def clean(self, policy: CleanPolicy) -> CleanResult:
        """Delete the backups selected by ``policy``.

        The guard is checked for every selected backup before anything is
        deleted, so a rejected clean deletes nothing.

        Raises:
            RetentionGuardError: If a selected backup is too recent and
                ``policy.force`` is false.
            BackupStorageError: If a backup could not be removed.
        """
        total = len(self._catalog.records())
        doomed = self.select(policy)
        for record in doomed:
            self.check_guard(record, policy.force)

        freed = 0
        deleted: list[str] = []
        for record in doomed:
            freed += self._catalog.delete(record)
            deleted.append(record.id)
            logger.info("Deleted backup %s (retention)", record.id)

        return CleanResult(
            deleted_count=len(deleted),
            freed_bytes=freed,
            remaining_count=total - len(deleted),
            deleted=deleted,
        )

    def delete(self, backup_id: str, force: bool = False) -> tuple[BackupRecord, int]:
        """Delete one backup, subject to the recency guard.

        Returns:
            The deleted record and the number of bytes freed.
        """
        record = self.get(backup_id)
        self.check_guard(record, force)
        freed = self._catalog.delete(record)
        logger.info("Deleted backup %s", record.id)
        return record, freed

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def totals(self) -> BackupTotals:
        items = self.records()
        if not items:
            return BackupTotals()
        total_size = sum(r.size_bytes for r in items)
        by_type: dict[str, int] = {}
        for record in items:
            by_type[record.type.value] = by_type.get(record.type.value, 0) + 1
        return BackupTotals(
            total=len(items),
            total_size=total_size,
            average_size=total_size / len(items),
            by_type=by_type,
            latest=items[0],
            oldest=items[-1],
        )

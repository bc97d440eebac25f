"""Restore orchestration.

``RestoreCoordinator.restore`` runs::

    idle -> validating -> safety_backup_in_progress -> applying -> committed
                                                                -> rolled_back

1. The target backup is validated (checksum, structure, required
   collections).  A corrupt target is rejected before anything else runs.
2. A ``safety`` backup of the current store is taken.  Its id is attached
   to every later error.
3. Inside one ``store.transaction()`` every collection of the payload is
   emptied and refilled.  Any failure, including a timeout, rolls the
   scope back and leaves the store as it was.
4. The attempt is recorded in the activity log, whatever the outcome.

Only one restore runs per coordinator (one store).  A second request fails
fast with ``ConcurrencyError``.  Cancellation is honoured until the write
scope opens; after that it is deferred until commit or rollback.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable

from fintrack_backup.backup.activity import ActivityLog, ActivityType
from fintrack_backup.backup.models import BackupType, RestoreOutcome, RestoreState, utcnow
from fintrack_backup.backup.snapshot import Snapshotter
from fintrack_backup.backup.validator import ChecksumValidator
from fintrack_backup.errors import ConcurrencyError, InfrastructureError, RestoreFailedError
from fintrack_backup.stores.base import CollectionStore, WriteScope

logger = logging.getLogger(__name__)


class RestoreCoordinator:
    """Restore a ``CollectionStore`` from a validated backup.

    Args:
        store: Store to restore into.
        validator: Validates the target backup and loads its payload.
        snapshotter: Takes the pre-restore safety backup.
        activity: Audit trail the outcome is appended to.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        store: CollectionStore,
        validator: ChecksumValidator,
        snapshotter: Snapshotter,
        activity: ActivityLog,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._validator = validator
        self._snapshotter = snapshotter
        self._activity = activity
        self._clock = clock
        self._lock = asyncio.Lock()
        self._safety_backup_id: str | None = None
        self.state = RestoreState.IDLE

    @property
    def in_progress(self) -> bool:
        """True while a restore holds the store lock."""
        return self._lock.locked()

    async def restore(
        self,
        backup_id: str,
        actor: str | None = None,
        timeout: float | None = None,
    ) -> RestoreOutcome:
        """Restore the store from ``backup_id``.

        Args:
            backup_id: Backup id or payload filename.
            actor: Who requested the restore.
            timeout: Seconds allowed for the whole operation.  Running out
                during the apply phase rolls the restore back.

        Returns:
            ``RestoreOutcome`` in state ``committed``.

        Raises:
            ConcurrencyError: If another restore is running.
            NotFoundError, MissingMetadataError, IntegrityError: If the
                target backup is unusable.  No safety backup is taken.
            RestoreFailedError: If applying failed and was rolled back.
                ``reference_id`` is the safety backup id.
            InfrastructureError: If the safety backup or a timeout stopped
                the restore before the apply phase.
        """
        # No await between the check and the acquire, so this cannot race
        if self._lock.locked():
            raise ConcurrencyError("A restore is already in progress")

        async with self._lock:
            self._safety_backup_id = None
            started_at = self._clock()
            try:
                return await self._run(backup_id, actor, timeout, started_at)
            except asyncio.CancelledError:
                if self.state != RestoreState.COMMITTED:
                    self.state = RestoreState.ROLLED_BACK
                    self._record(backup_id, actor, success=False, error="cancelled")
                raise
            except Exception as e:
                self.state = RestoreState.ROLLED_BACK
                self._record(backup_id, actor, success=False, error=type(e).__name__)
                raise

    async def _run(
        self,
        backup_id: str,
        actor: str | None,
        timeout: float | None,
        started_at: datetime,
    ) -> RestoreOutcome:
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout

        def remaining() -> float | None:
            return None if deadline is None else max(deadline - loop.time(), 0.0)

        self.state = RestoreState.VALIDATING
        try:
            validation, payload = await asyncio.wait_for(
                self._validator.load_payload(backup_id), remaining()
            )
        except asyncio.TimeoutError:
            raise InfrastructureError("Restore timed out while validating the backup") from None
        backup_id = validation.backup_id

        self.state = RestoreState.SAFETY_BACKUP_IN_PROGRESS
        try:
            safety = await asyncio.wait_for(
                self._snapshotter.create_backup(
                    type=BackupType.SAFETY,
                    created_by=actor,
                    description=f"Safety backup before restoring {backup_id}",
                ),
                remaining(),
            )
        except asyncio.TimeoutError:
            raise InfrastructureError("Restore timed out while taking the safety backup") from None
        self._safety_backup_id = safety.id

        self.state = RestoreState.APPLYING
        apply_task = asyncio.ensure_future(self._apply(payload, remaining()))
        cancelled = False
        while not apply_task.done():
            try:
                # wait() never cancels apply_task, even when we are cancelled
                await asyncio.wait({apply_task})
            except asyncio.CancelledError:
                cancelled = True
                logger.warning(
                    "Cancellation of restore %s deferred until the write scope finishes",
                    backup_id,
                )

        apply_error = apply_task.exception()
        if apply_error is not None:
            self.state = RestoreState.ROLLED_BACK
            logger.error(
                "Restore of %s rolled back (safety backup %s)",
                backup_id,
                safety.id,
                exc_info=apply_error,
            )
            if cancelled:
                raise asyncio.CancelledError()
            raise RestoreFailedError(backup_id, safety.id) from apply_error

        self.state = RestoreState.COMMITTED
        self._record(backup_id, actor, success=True)
        logger.info("Restored store from %s (safety backup %s)", backup_id, safety.id)
        if cancelled:
            raise asyncio.CancelledError()

        return RestoreOutcome(
            backup_id=backup_id,
            safety_backup_id=safety.id,
            state=self.state,
            restored_collections=sorted(payload),
            document_count=sum(len(docs) for docs in payload.values()),
            restored_by=actor,
            started_at=started_at,
            finished_at=self._clock(),
        )

    async def _apply(self, payload: dict[str, list[dict]], timeout: float | None) -> None:
        async with self._store.transaction() as scope:
            # A timeout raises inside the scope, so it rolls back like any failure
            await asyncio.wait_for(self._write(scope, payload), timeout)

    async def _write(self, scope: WriteScope, payload: dict[str, list[dict]]) -> None:
        for name, documents in payload.items():
            await scope.delete_all(name)
            if documents:
                await scope.insert_many(name, documents)

    def _record(self, backup_id: str, actor: str | None, success: bool, error: str | None = None) -> None:
        details = {
            "backupId": backup_id,
            "safetyBackupId": self._safety_backup_id,
            "success": success,
        }
        if error:
            details["error"] = error
        self._activity.append(ActivityType.RESTORE, actor, **details)

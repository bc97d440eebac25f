"""Snapshot creation.

``Snapshotter`` reads every collection the store exposes into one payload,
checksums its canonical bytes and commits payload + metadata to the
catalog.  It also accepts uploaded payloads, which are validated in full
before anything is written.

Usage:
    from fintrack_backup.backup.snapshot import Snapshotter

    snapshotter = Snapshotter(store, catalog)
    record = await snapshotter.create_backup(created_by="admin", description="Before migration")
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Iterable

from fintrack_backup.backup.activity import ActivityLog, ActivityType
from fintrack_backup.backup.catalog import BackupCatalog, format_backup_id
from fintrack_backup.backup.models import PAYLOAD_SUFFIX, BackupRecord, BackupType, utcnow
from fintrack_backup.backup.validator import (
    DEFAULT_REQUIRED_COLLECTIONS,
    check_required,
    compute_checksum,
    parse_payload,
    serialize_payload,
)
from fintrack_backup.errors import IntegrityError, StoreReadError, ValidationError
from fintrack_backup.stores.base import CollectionStore

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTIONS: dict[BackupType, str] = {
    BackupType.MANUAL: "Manual backup",
    BackupType.STARTUP: "Initial backup on server start",
    BackupType.SHUTDOWN: "Backup created during shutdown",
    BackupType.SAFETY: "Safety backup before restore",
    BackupType.UPLOAD: "Uploaded backup",
}


class Snapshotter:
    """Create backups of a ``CollectionStore``.

    Args:
        store: Store to snapshot.
        catalog: Where payloads and metadata are written.
        required_collections: Collections an uploaded payload must contain.
        activity: Audit trail; every snapshot, safety backups included,
            appends one ``create`` entry.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        store: CollectionStore,
        catalog: BackupCatalog,
        required_collections: Iterable[str] = DEFAULT_REQUIRED_COLLECTIONS,
        activity: ActivityLog | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._required = tuple(required_collections)
        self._activity = activity
        self._clock = clock

    async def create_backup(
        self,
        type: BackupType = BackupType.MANUAL,
        created_by: str | None = None,
        description: str | None = None,
    ) -> BackupRecord:
        """Snapshot every collection of the store.

        Collections are read one after another; no cross-collection
        point-in-time guarantee is made.

        Args:
            type: Why the backup is taken.
            created_by: Actor identifier, if any.
            description: Free text; defaults per ``type``.

        Returns:
            The committed ``BackupRecord``.

        Raises:
            StoreReadError: If enumerating or reading a collection fails.
                Nothing is written in that case.
            IntegrityError: If a document holds a value JSON cannot
                represent.  Nothing is written in that case either.
            BackupStorageError: If the storage directory is not writable.
        """
        payload: dict[str, list[dict]] = {}
        try:
            for name in await self._store.list_collections():
                payload[name] = await self._store.read_all(name)
        except Exception as e:
            logger.exception("Reading collections for a %s backup failed", type.value)
            raise StoreReadError("Failed to read collections from the store") from e

        record = await self._commit(
            payload,
            type=type,
            created_by=created_by,
            description=description,
        )
        if self._activity is not None:
            self._activity.append(
                ActivityType.CREATE,
                created_by,
                backupId=record.id,
                type=record.type.value,
                documentsCount=record.document_count,
                size=record.size_bytes,
            )
        return record

    async def import_payload(
        self,
        data: bytes,
        created_by: str | None = None,
        original_name: str | None = None,
        expected_checksum: str | None = None,
        description: str | None = None,
    ) -> BackupRecord:
        """Store an uploaded payload as a ``type=upload`` backup.

        The bytes are untrusted: they are parsed and checked (shape,
        required collections, optional checksum) before anything is
        written.  The accepted payload is stored in canonical form.

        Raises:
            ValidationError: If ``data`` is empty.
            IntegrityError: If the payload is malformed, a required
                collection is missing, or ``expected_checksum`` does not
                match the uploaded bytes.
        """
        if not data:
            raise ValidationError("Uploaded backup file is empty")
        if expected_checksum and compute_checksum(data) != expected_checksum.strip().lower():
            raise IntegrityError("Uploaded payload does not match the supplied checksum")

        payload = parse_payload(data)
        check_required(payload, self._required)

        return await self._commit(
            payload,
            type=BackupType.UPLOAD,
            created_by=created_by,
            description=description,
            original_name=original_name,
        )

    async def _commit(
        self,
        payload: dict[str, list[dict]],
        type: BackupType,
        created_by: str | None,
        description: str | None,
        original_name: str | None = None,
    ) -> BackupRecord:
        data = serialize_payload(payload)
        created_at = self._clock()
        backup_id = format_backup_id(created_at)

        record = BackupRecord(
            id=backup_id,
            filename=f"{backup_id}{PAYLOAD_SUFFIX}",
            created_at=created_at,
            checksum=compute_checksum(data),
            collections=sorted(payload),
            document_count=sum(len(docs) for docs in payload.values()),
            size_bytes=len(data),
            type=type,
            created_by=created_by,
            description=description or DEFAULT_DESCRIPTIONS[type],
            original_name=original_name,
        )

        await asyncio.to_thread(self._catalog.commit, record, data)
        logger.info(
            "Created %s backup %s (%d documents, %d bytes)",
            type.value,
            record.id,
            record.document_count,
            record.size_bytes,
        )
        return record

"""On-disk catalog of backups.

Layout of the storage directory::

    backups/
        backup-2026-01-15T10-30-00-123Z-1a2b3c4d.json        # payload
        backup-2026-01-15T10-30-00-123Z-1a2b3c4d.meta.json   # metadata (commit point)
        logs/backup-activity-2026-01.log
        schedule.json

Every write goes to a hidden temp file in the same directory and is then
renamed into place, so readers never see half-written files.  A payload
without metadata is an orphan and is invisible to listing.  Deleting a
backup removes both files as one logical operation.
"""

import json
import logging
import os
import re
import secrets
import tempfile
from datetime import datetime
from pathlib import Path

from fintrack_backup.backup.models import METADATA_SUFFIX, PAYLOAD_SUFFIX, BackupRecord
from fintrack_backup.errors import (
    BackupStorageError,
    MissingMetadataError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_BACKUP_ID = re.compile(r"^backup-[A-Za-z0-9-]+$")
_TOMBSTONE_SUFFIX = ".deleting"


def format_backup_id(created_at: datetime, suffix: str | None = None) -> str:
    """Build a backup id from its creation time and a random suffix.

    The timestamp is ISO 8601 UTC with millisecond precision where ``:``
    and ``.`` are replaced by ``-``, e.g.
    ``backup-2026-01-15T10-30-00-123Z-1a2b3c4d``.
    """
    suffix = suffix or secrets.token_hex(4)
    stamp = f"{created_at:%Y-%m-%dT%H-%M-%S}-{created_at.microsecond // 1000:03d}Z"
    return f"backup-{stamp}-{suffix}"


def normalize_backup_id(value: str) -> str:
    """Accept a backup id or a payload/metadata filename; return the id.

    Raises:
        ValidationError: If the value is not a well-formed backup id.
            Rejects path separators so ids can never escape the directory.
    """
    name = value.strip()
    for suffix in (METADATA_SUFFIX, PAYLOAD_SUFFIX):
        if name.endswith(suffix):
            name = name[: -len(suffix)]
            break
    if not _BACKUP_ID.match(name):
        raise ValidationError(f"Invalid backup id: {value!r}")
    return name


class BackupCatalog:
    """Filesystem access for backup payloads and metadata sidecars.

    Args:
        root: Storage directory.  Created on first write.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def payload_path(self, backup_id: str) -> Path:
        return self.root / f"{backup_id}{PAYLOAD_SUFFIX}"

    def metadata_path(self, backup_id: str) -> Path:
        return self.root / f"{backup_id}{METADATA_SUFFIX}"

    def ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise BackupStorageError(f"Backup directory {self.root} is not writable") from e

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def write_atomic(self, path: Path, data: bytes) -> None:
        """Write ``data`` to a temp file beside ``path`` and rename it into place."""
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def commit(self, record: BackupRecord, payload: bytes) -> None:
        """Persist a payload and then its metadata (the commit point).

        Raises:
            BackupStorageError: If either write fails.  A payload written
                before a failed metadata write is removed again.
        """
        self.ensure_root()
        payload_path = self.payload_path(record.id)
        try:
            self.write_atomic(payload_path, payload)
        except OSError as e:
            raise BackupStorageError(f"Failed to write payload for {record.id}") from e

        metadata = json.dumps(record.to_metadata(), indent=2).encode("utf-8")
        try:
            self.write_atomic(self.metadata_path(record.id), metadata)
        except OSError as e:
            payload_path.unlink(missing_ok=True)
            raise BackupStorageError(f"Failed to write metadata for {record.id}") from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def read_metadata(self, backup_id: str) -> BackupRecord:
        """Load the metadata of one backup.

        Raises:
            NotFoundError: If neither payload nor metadata exist.
            MissingMetadataError: If only the payload exists.
            BackupStorageError: If the sidecar cannot be read or parsed.
        """
        meta_path = self.metadata_path(backup_id)
        if not meta_path.exists():
            if self.payload_path(backup_id).exists():
                raise MissingMetadataError(backup_id)
            raise NotFoundError(f"Backup {backup_id} not found")
        try:
            data = json.loads(meta_path.read_text(encoding="utf-8"))
            return BackupRecord.from_metadata(data, backup_id)
        except (OSError, ValueError, KeyError) as e:
            raise BackupStorageError(f"Unreadable metadata for backup {backup_id}") from e

    def read_payload(self, backup_id: str) -> bytes:
        """Return the raw payload bytes.

        Raises:
            NotFoundError: If the payload file is absent.
        """
        try:
            return self.payload_path(backup_id).read_bytes()
        except FileNotFoundError:
            raise NotFoundError(f"Payload of backup {backup_id} not found") from None
        except OSError as e:
            raise BackupStorageError(f"Unreadable payload for backup {backup_id}") from e

    def records(self) -> list[BackupRecord]:
        """All complete backups (metadata and payload present), newest first."""
        if not self.root.exists():
            return []
        items: list[BackupRecord] = []
        for meta_path in self.root.glob(f"backup-*{METADATA_SUFFIX}"):
            backup_id = meta_path.name[: -len(METADATA_SUFFIX)]
            if not self.payload_path(backup_id).exists():
                logger.warning("Skipping backup %s: payload missing", backup_id)
                continue
            try:
                items.append(self.read_metadata(backup_id))
            except BackupStorageError:
                logger.warning("Skipping backup %s: unreadable metadata", backup_id, exc_info=True)
        items.sort(key=lambda r: (r.created_at, r.id), reverse=True)
        return items

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(self, record: BackupRecord) -> int:
        """Remove payload and metadata of ``record`` together.

        The metadata is first renamed to a tombstone, which hides the
        backup from listing.  If the payload cannot be removed the
        tombstone is renamed back, so the pair is never split.

        Returns:
            Number of payload bytes freed.

        Raises:
            BackupStorageError: If the pair could not be removed.
        """
        meta_path = self.metadata_path(record.id)
        payload_path = self.payload_path(record.id)
        tombstone = meta_path.with_name(meta_path.name + _TOMBSTONE_SUFFIX)

        try:
            os.replace(meta_path, tombstone)
        except FileNotFoundError:
            raise NotFoundError(f"Backup {record.id} not found") from None
        except OSError as e:
            raise BackupStorageError(f"Failed to delete backup {record.id}") from e

        try:
            freed = payload_path.stat().st_size
            payload_path.unlink()
        except FileNotFoundError:
            freed = 0
        except OSError as e:
            os.replace(tombstone, meta_path)
            raise BackupStorageError(f"Failed to delete backup {record.id}") from e

        try:
            tombstone.unlink()
        except OSError:
            logger.warning("Left tombstone %s behind", tombstone, exc_info=True)
        return freed

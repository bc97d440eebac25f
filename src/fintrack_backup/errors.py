"""Error taxonomy for the backup engine.

Every error raised by the engine belongs to a closed set of kinds
(``ErrorKind``).  The engine is transport-agnostic: it never picks HTTP
status codes itself.  ``HTTP_STATUS`` is an advisory mapping the HTTP
layer may use to translate kinds into responses.

Usage:
    from fintrack_backup.errors import BackupEngineError, ErrorKind, HTTP_STATUS

    try:
        await engine.restore(backup_id, actor="admin")
    except BackupEngineError as exc:
        status = HTTP_STATUS[exc.kind]
        body = {"error": exc.kind.value, "message": str(exc), "ref": exc.reference_id}
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Closed set of error kinds surfaced to callers."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    INTEGRITY = "integrity"
    CONCURRENCY = "concurrency"
    RETENTION_GUARD = "retention_guard"
    INFRASTRUCTURE = "infrastructure"


# Advisory kind -> HTTP status mapping for the HTTP layer
HTTP_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INTEGRITY: 422,
    ErrorKind.CONCURRENCY: 409,
    ErrorKind.RETENTION_GUARD: 400,
    ErrorKind.INFRASTRUCTURE: 500,
}


class BackupEngineError(Exception):
    """Base class for all backup engine errors.

    Args:
        message: Human-readable message, safe to show to the caller.
        reference_id: Optional id an operator can use to follow up
            (e.g. the safety backup id of a failed restore).
    """

    kind: ErrorKind = ErrorKind.INFRASTRUCTURE

    def __init__(self, message: str, reference_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.reference_id = reference_id

    def to_dict(self) -> dict:
        """Serialize for the HTTP layer (never includes payload content)."""
        data = {"kind": self.kind.value, "message": self.message}
        if self.reference_id:
            data["reference_id"] = self.reference_id
        return data


# ----------------------------------------------------------------------------
# Caller errors (surfaced verbatim)
# ----------------------------------------------------------------------------


class ValidationError(BackupEngineError):
    """Bad caller input (page numbers, schedule intervals, upload bodies...)."""

    kind = ErrorKind.VALIDATION


class NotFoundError(BackupEngineError):
    """Referenced backup id or file is absent."""

    kind = ErrorKind.NOT_FOUND


class MissingMetadataError(NotFoundError):
    """Metadata sidecar of a backup is absent."""

    def __init__(self, backup_id: str) -> None:
        super().__init__(f"Metadata not found for backup {backup_id}")
        self.backup_id = backup_id


class IntegrityError(BackupEngineError):
    """Checksum mismatch or structural corruption of a payload."""

    kind = ErrorKind.INTEGRITY


class MissingRequiredCollectionError(IntegrityError):
    """A mandatory collection is absent from a payload."""

    def __init__(self, collection: str, backup_id: str | None = None) -> None:
        where = f" in backup {backup_id}" if backup_id else ""
        super().__init__(f"Required collection '{collection}' not found{where}")
        self.collection = collection


class ConcurrencyError(BackupEngineError):
    """A restore is already in progress for this store."""

    kind = ErrorKind.CONCURRENCY


class RetentionGuardError(BackupEngineError):
    """Attempted deletion of a too-recent backup without ``force``."""

    kind = ErrorKind.RETENTION_GUARD

    def __init__(self, backup_id: str, guard_hours: float) -> None:
        super().__init__(
            f"Backup {backup_id} is less than {guard_hours:g} hours old; "
            f"use force to delete it",
            reference_id=backup_id,
        )
        self.backup_id = backup_id


# ----------------------------------------------------------------------------
# Infrastructure errors (logged in full, surfaced generically)
# ----------------------------------------------------------------------------


class InfrastructureError(BackupEngineError):
    """Filesystem or store I/O failure."""

    kind = ErrorKind.INFRASTRUCTURE


class BackupStorageError(InfrastructureError):
    """Backup storage directory could not be read or written."""


class StoreReadError(InfrastructureError):
    """Enumerating or reading a collection from the store failed."""


class RestoreFailedError(InfrastructureError):
    """Applying a restore failed and the write scope was rolled back.

    ``reference_id`` carries the safety backup id taken before the attempt.
    """

    def __init__(self, backup_id: str, safety_backup_id: str) -> None:
        super().__init__(
            f"Restore of {backup_id} failed and was rolled back. "
            f"Safety backup created: {safety_backup_id}",
            reference_id=safety_backup_id,
        )
        self.backup_id = backup_id
        self.safety_backup_id = safety_backup_id


__all__ = [
    "ErrorKind",
    "HTTP_STATUS",
    "BackupEngineError",
    "ValidationError",
    "NotFoundError",
    "MissingMetadataError",
    "IntegrityError",
    "MissingRequiredCollectionError",
    "ConcurrencyError",
    "RetentionGuardError",
    "InfrastructureError",
    "BackupStorageError",
    "StoreReadError",
    "RestoreFailedError",
]

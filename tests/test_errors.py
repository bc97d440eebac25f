"""Tests for the error taxonomy."""

import pytest

from fintrack_backup.errors import (
    HTTP_STATUS,
    BackupEngineError,
    BackupStorageError,
    ConcurrencyError,
    ErrorKind,
    InfrastructureError,
    IntegrityError,
    MissingMetadataError,
    MissingRequiredCollectionError,
    NotFoundError,
    RestoreFailedError,
    RetentionGuardError,
    StoreReadError,
    ValidationError,
)


class TestErrorKinds:
    """Every error maps to exactly one kind."""

    @pytest.mark.parametrize(
        "error,kind",
        [
            (ValidationError("bad page"), ErrorKind.VALIDATION),
            (NotFoundError("gone"), ErrorKind.NOT_FOUND),
            (MissingMetadataError("backup-x"), ErrorKind.NOT_FOUND),
            (IntegrityError("checksum"), ErrorKind.INTEGRITY),
            (MissingRequiredCollectionError("users"), ErrorKind.INTEGRITY),
            (ConcurrencyError("busy"), ErrorKind.CONCURRENCY),
            (RetentionGuardError("backup-x", 24), ErrorKind.RETENTION_GUARD),
            (InfrastructureError("disk"), ErrorKind.INFRASTRUCTURE),
            (BackupStorageError("disk"), ErrorKind.INFRASTRUCTURE),
            (StoreReadError("db"), ErrorKind.INFRASTRUCTURE),
            (RestoreFailedError("backup-x", "backup-s"), ErrorKind.INFRASTRUCTURE),
        ],
    )
    def test_kind(self, error, kind):
        assert isinstance(error, BackupEngineError)
        assert error.kind == kind

    def test_every_kind_has_http_status(self):
        assert set(HTTP_STATUS) == set(ErrorKind)
        assert HTTP_STATUS[ErrorKind.CONCURRENCY] == 409
        assert HTTP_STATUS[ErrorKind.NOT_FOUND] == 404


class TestErrorDetails:
    def test_restore_failed_references_safety_backup(self):
        error = RestoreFailedError("backup-target", "backup-safety")
        assert error.reference_id == "backup-safety"
        assert "backup-safety" in str(error)
        assert error.to_dict() == {
            "kind": "infrastructure",
            "message": error.message,
            "reference_id": "backup-safety",
        }

    def test_retention_guard_names_backup(self):
        error = RetentionGuardError("backup-recent", 24.0)
        assert error.backup_id == "backup-recent"
        assert "backup-recent" in str(error)
        assert "24 hours" in str(error)

    def test_missing_collection_message(self):
        error = MissingRequiredCollectionError("budgets", "backup-x")
        assert str(error) == "Required collection 'budgets' not found in backup backup-x"

    def test_to_dict_without_reference(self):
        assert ValidationError("page must be at least 1").to_dict() == {
            "kind": "validation",
            "message": "page must be at least 1",
        }

"""Checksum and structure validation of backups.

A backup is valid when its metadata exists, the sha256 of the payload
file's bytes equals the recorded checksum, the payload is a JSON object
mapping collection names to lists of documents, and every required
collection is present.

Validation is read-only and idempotent.
"""

import asyncio
import hashlib
import json
import logging
from typing import Any, Iterable

from fintrack_backup.backup.catalog import BackupCatalog, normalize_backup_id
from fintrack_backup.backup.models import ValidationResult
from fintrack_backup.errors import (
    BackupEngineError,
    InfrastructureError,
    IntegrityError,
    MissingRequiredCollectionError,
)

logger = logging.getLogger(__name__)

DEFAULT_REQUIRED_COLLECTIONS = ("users", "transactions", "budgets")


def compute_checksum(data: bytes) -> str:
    """Return the sha256 hex digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


def serialize_payload(payload: dict[str, list[dict]]) -> bytes:
    """Canonical bytes of a payload.

    Keys are sorted at every level and no whitespace is emitted, so the
    same logical content always yields the same checksum.

    Raises:
        IntegrityError: If a document holds a value JSON cannot represent
            (``datetime``, ``Decimal``, ...).  Such values would not survive
            a restore unchanged, so the backup is refused.
    """
    try:
        text = json.dumps(
            payload,
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as e:
        raise IntegrityError(f"Payload holds a value that is not JSON: {e}") from None
    return text.encode("utf-8")


def parse_payload(data: bytes) -> dict[str, list[dict]]:
    """Parse payload bytes and check their shape.

    Raises:
        IntegrityError: If the bytes are not a JSON object whose values are
            lists of objects.  Messages name the collection but never
            include document content.
    """
    try:
        payload: Any = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError):
        raise IntegrityError("Payload is not valid JSON") from None

    if not isinstance(payload, dict):
        raise IntegrityError("Payload must be an object mapping collection names to documents")

    for name, documents in payload.items():
        if not isinstance(documents, list):
            raise IntegrityError(f"Collection '{name}' is not a list of documents")
        for index, document in enumerate(documents):
            if not isinstance(document, dict):
                raise IntegrityError(
                    f"Collection '{name}' has a non-object document at position {index}"
                )
    return payload


def check_required(
    payload: dict[str, list[dict]],
    required: Iterable[str],
    backup_id: str | None = None,
) -> None:
    """Raise ``MissingRequiredCollectionError`` for the first absent required collection."""
    for collection in required:
        if collection not in payload:
            raise MissingRequiredCollectionError(collection, backup_id)


class ChecksumValidator:
    """Validate backups stored in a ``BackupCatalog``.

    Args:
        catalog: Storage the backups live in.
        required_collections: Collections every payload must contain.
    """

    def __init__(
        self,
        catalog: BackupCatalog,
        required_collections: Iterable[str] = DEFAULT_REQUIRED_COLLECTIONS,
    ) -> None:
        self._catalog = catalog
        self.required_collections = tuple(required_collections)

    async def validate(self, backup_id: str) -> ValidationResult:
        """Validate a backup, raising on any failure.

        Returns:
            ``ValidationResult`` with ``is_valid=True`` and the metadata.

        Raises:
            NotFoundError: If the backup or its payload does not exist.
            MissingMetadataError: If the metadata sidecar is absent.
            IntegrityError: If the checksum or the structure does not match.
            MissingRequiredCollectionError: If a required collection is absent.
        """
        result, _ = await self._validate(backup_id)
        return result

    async def check(self, backup_id: str) -> ValidationResult:
        """Validate a backup without raising for integrity problems.

        Failures come back as ``is_valid=False`` with a ``reason``.
        Infrastructure errors still propagate.
        """
        try:
            return await self.validate(backup_id)
        except InfrastructureError:
            raise
        except BackupEngineError as e:
            logger.info("Backup %s failed validation: %s", backup_id, e)
            return ValidationResult(backup_id=backup_id, is_valid=False, reason=str(e))

    async def load_payload(self, backup_id: str) -> tuple[ValidationResult, dict[str, list[dict]]]:
        """Validate a backup and return its parsed payload."""
        return await self._validate(backup_id)

    async def _validate(self, backup_id: str) -> tuple[ValidationResult, dict[str, list[dict]]]:
        backup_id = normalize_backup_id(backup_id)
        record = self._catalog.read_metadata(backup_id)
        data = await asyncio.to_thread(self._catalog.read_payload, backup_id)

        if compute_checksum(data) != record.checksum:
            raise IntegrityError(
                f"Checksum mismatch for backup {backup_id}", reference_id=backup_id
            )

        payload = parse_payload(data)
        check_required(payload, self.required_collections, backup_id)

        return ValidationResult(backup_id=backup_id, is_valid=True, metadata=record), payload

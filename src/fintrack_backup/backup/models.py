"""Backup engine models.

``BackupRecord`` mirrors the ``.meta.json`` sidecar written next to every
snapshot payload; its field aliases are the on-disk names.  The remaining
models are the typed results of engine operations.

Usage:
    from fintrack_backup.backup.models import BackupRecord, BackupType, CleanPolicy

    record = BackupRecord.from_metadata(json.loads(meta_path.read_text()))
    policy = CleanPolicy(keep=5, type=BackupType.MANUAL)
"""

import math
import re
from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

PAYLOAD_SUFFIX = ".json"
METADATA_SUFFIX = ".meta.json"

_INTERVAL = re.compile(r"^(\d+)([mhdw])$")
_INTERVAL_UNITS = {"m": "minutes", "h": "hours", "d": "days", "w": "weeks"}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Backup Records
# ============================================================================


class BackupType(str, Enum):
    """Why a backup was taken."""

    MANUAL = "manual"
    STARTUP = "startup"
    SHUTDOWN = "shutdown"
    SAFETY = "safety"
    UPLOAD = "upload"


class BackupRecord(BaseModel):
    """Metadata describing one snapshot (immutable once written)."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    filename: str
    created_at: datetime = Field(alias="timestamp")
    checksum: str
    collections: list[str] = Field(default_factory=list)
    document_count: int = Field(default=0, alias="documentsCount")
    size_bytes: int = Field(default=0, alias="size")
    type: BackupType = BackupType.MANUAL
    created_by: str | None = Field(default=None, alias="createdBy")
    description: str = ""
    original_name: str | None = Field(default=None, alias="originalName")

    @field_validator("created_at")
    @classmethod
    def _aware(cls, value: datetime) -> datetime:
        # Sidecars written by other tools may carry naive timestamps
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @classmethod
    def from_metadata(cls, data: dict, backup_id: str | None = None) -> "BackupRecord":
        """Build a record from a parsed ``.meta.json`` document.

        ``backup_id`` is the id taken from the sidecar's own path.  A sidecar
        whose ``filename`` names a different backup raises ``ValueError``.
        """
        filename = data["filename"]
        recorded_id = filename[: -len(PAYLOAD_SUFFIX)]
        if backup_id is not None and (
            recorded_id != backup_id or not filename.endswith(PAYLOAD_SUFFIX)
        ):
            raise ValueError(f"Metadata of {backup_id} describes {filename}")
        return cls(id=backup_id or recorded_id, **data)

    def to_metadata(self) -> dict:
        """Serialize to the ``.meta.json`` document (on-disk names)."""
        return self.model_dump(
            mode="json", by_alias=True, exclude={"id"}, exclude_none=True
        )

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or utcnow()) - self.created_at


class ValidationResult(BaseModel):
    """Outcome of checking a backup against its recorded checksum."""

    backup_id: str
    is_valid: bool
    metadata: BackupRecord | None = None
    reason: str | None = None
    checked_at: datetime = Field(default_factory=utcnow)


# ============================================================================
# Listing and Retention
# ============================================================================


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(page=page, limit=limit, total=total, pages=math.ceil(total / limit))


class BackupPage(BaseModel):
    """One page of backups, newest first."""

    items: list[BackupRecord]
    pagination: Pagination


class CleanPolicy(BaseModel):
    """Which backups ``clean`` prunes.

    ``older_than`` takes precedence over ``keep``.  ``type`` narrows both.
    """

    keep: int = Field(default=5, ge=0)
    older_than: timedelta | None = None
    type: BackupType | None = None
    force: bool = False


class CleanResult(BaseModel):
    deleted_count: int
    freed_bytes: int
    remaining_count: int
    deleted: list[str] = Field(default_factory=list)


# ============================================================================
# Restore
# ============================================================================


class RestoreState(str, Enum):
    """Restore coordinator state machine."""

    IDLE = "idle"
    VALIDATING = "validating"
    SAFETY_BACKUP_IN_PROGRESS = "safety_backup_in_progress"
    APPLYING = "applying"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class RestoreOutcome(BaseModel):
    """Result of a committed restore."""

    backup_id: str
    safety_backup_id: str
    state: RestoreState
    restored_collections: list[str] = Field(default_factory=list)
    document_count: int = 0
    restored_by: str | None = None
    started_at: datetime
    finished_at: datetime


# ============================================================================
# Schedule
# ============================================================================


class RetentionSettings(BaseModel):
    count: int = Field(default=10, ge=1, le=1000)
    days: int = Field(default=30, ge=1, le=3650)


class NotificationSettings(BaseModel):
    on_success: bool = True
    on_failure: bool = True
    target: str | None = None


class ScheduleConfig(BaseModel):
    """Periodic backup policy read by the external scheduler."""

    enabled: bool = True
    interval: str = "24h"
    retention: RetentionSettings = Field(default_factory=RetentionSettings)
    notification: NotificationSettings = Field(default_factory=NotificationSettings)
    updated_by: str | None = None
    updated_at: datetime | None = None

    @field_validator("interval")
    @classmethod
    def _valid_interval(cls, value: str) -> str:
        value = value.strip().lower()
        match = _INTERVAL.match(value)
        if not match or int(match.group(1)) == 0:
            raise ValueError(
                "interval must be a positive number followed by m, h, d or w (e.g. '24h')"
            )
        return value

    @property
    def interval_delta(self) -> timedelta:
        match = _INTERVAL.match(self.interval)
        amount, unit = match.groups()
        return timedelta(**{_INTERVAL_UNITS[unit]: int(amount)})


# ============================================================================
# Stats
# ============================================================================


class StoreStats(BaseModel):
    collections: int = 0
    documents: int = 0


class BackupTotals(BaseModel):
    total: int = 0
    total_size: int = 0
    average_size: float = 0.0
    by_type: dict[str, int] = Field(default_factory=dict)
    latest: BackupRecord | None = None
    oldest: BackupRecord | None = None


class ScheduleSummary(BaseModel):
    enabled: bool
    interval: str
    next_backup: datetime | None = None


class BackupStats(BaseModel):
    store: StoreStats
    backups: BackupTotals
    schedule: ScheduleSummary

"""Backup and restore engine.

Snapshots every collection of a ``CollectionStore`` into a checksummed JSON
payload, validates backups, restores atomically behind a safety backup,
prunes by retention policy and keeps an audit trail.

Usage:
    from fintrack_backup.backup import BackupEngine, BackupType, CleanPolicy
"""

from fintrack_backup.backup.activity import ActivityEntry, ActivityLog, ActivityType
from fintrack_backup.backup.catalog import BackupCatalog
from fintrack_backup.backup.engine import BackupEngine
from fintrack_backup.backup.models import (
    BackupPage,
    BackupRecord,
    BackupStats,
    BackupType,
    CleanPolicy,
    CleanResult,
    RestoreOutcome,
    RestoreState,
    ScheduleConfig,
    ValidationResult,
)
from fintrack_backup.backup.restore import RestoreCoordinator
from fintrack_backup.backup.retention import RetentionManager
from fintrack_backup.backup.schedule import ScheduleManager
from fintrack_backup.backup.snapshot import Snapshotter
from fintrack_backup.backup.validator import ChecksumValidator

__all__ = [
    "ActivityEntry",
    "ActivityLog",
    "ActivityType",
    "BackupCatalog",
    "BackupEngine",
    "BackupPage",
    "BackupRecord",
    "BackupStats",
    "BackupType",
    "ChecksumValidator",
    "CleanPolicy",
    "CleanResult",
    "RestoreCoordinator",
    "RestoreOutcome",
    "RestoreState",
    "RetentionManager",
    "ScheduleConfig",
    "ScheduleManager",
    "Snapshotter",
    "ValidationResult",
]

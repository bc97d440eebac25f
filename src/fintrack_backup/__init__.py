"""fintrack-backup: Async backup & restore engine for the fintrack store.

Takes checksummed snapshots of every collection, validates them, restores
atomically behind an automatic safety backup, prunes by retention policy
and keeps an append-only activity log.

Usage:
    from fintrack_backup import BackupEngine, BackupSettings, InMemoryCollectionStore
    from fintrack_backup import BackupType, CleanPolicy, get_store
    from fintrack_backup import BackupEngineError, ErrorKind
"""

__version__ = "0.1.0"

# Engine
from fintrack_backup.backup import (
    ActivityType,
    BackupEngine,
    BackupRecord,
    BackupType,
    CleanPolicy,
    RestoreOutcome,
    RestoreState,
    ScheduleConfig,
)

# Config
from fintrack_backup.config.loader import load_backup_config
from fintrack_backup.config.models import BackupConfig, BackupSettings, StoreProfile

# Errors
from fintrack_backup.errors import BackupEngineError, ErrorKind

# Factory
from fintrack_backup.factory import ProfileNotFoundError, get_store, resolve_url

# Stores
from fintrack_backup.stores import (
    AsyncPostgresCollectionStore,
    CollectionStore,
    InMemoryCollectionStore,
)

__all__ = [
    # Engine
    "ActivityType",
    "BackupEngine",
    "BackupRecord",
    "BackupType",
    "CleanPolicy",
    "RestoreOutcome",
    "RestoreState",
    "ScheduleConfig",
    # Config
    "load_backup_config",
    "BackupConfig",
    "BackupSettings",
    "StoreProfile",
    # Errors
    "BackupEngineError",
    "ErrorKind",
    # Factory
    "ProfileNotFoundError",
    "get_store",
    "resolve_url",
    # Stores
    "AsyncPostgresCollectionStore",
    "CollectionStore",
    "InMemoryCollectionStore",
]

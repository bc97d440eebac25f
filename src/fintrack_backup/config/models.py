"""Pydantic models for store profiles and engine settings."""

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ============================================================================
# Store Profiles
# ============================================================================


class StoreProfile(BaseModel):
    """Store connection profile from backup.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    schema_name: str = "public"


# ============================================================================
# Engine Settings
# ============================================================================


class BackupSettings(BaseSettings):
    """Backup engine settings.

    Read from ``BACKUP_*`` environment variables, optionally overridden by
    the ``[backup]`` table of backup.toml (see ``load_backup_config``).
    ``BACKUP_PATH`` selects the storage directory.
    """

    model_config = SettingsConfigDict(env_prefix="BACKUP_", extra="ignore")

    path: Path = Path("backups")
    required_collections: list[str] = Field(
        default_factory=lambda: ["users", "transactions", "budgets"]
    )
    guard_hours: float = Field(default=24.0, ge=0)
    default_keep: int = Field(default=5, ge=0)
    restore_timeout: float | None = Field(default=None, gt=0)
    persist_schedule: bool = True
    backup_on_startup: bool = False
    backup_on_shutdown: bool = False
    log_level: str = "INFO"


class BackupConfig(BaseModel):
    """Complete configuration from backup.toml."""

    profiles: dict[str, StoreProfile] = Field(default_factory=dict)
    settings: BackupSettings = Field(default_factory=BackupSettings)

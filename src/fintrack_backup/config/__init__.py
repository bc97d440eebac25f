"""Configuration management: store profiles, engine settings, TOML loading.

Usage:
    >>> from fintrack_backup.config import load_backup_config, BackupSettings, StoreProfile
"""

from fintrack_backup.config.loader import load_backup_config
from fintrack_backup.config.models import BackupConfig, BackupSettings, StoreProfile

__all__ = ["load_backup_config", "BackupConfig", "BackupSettings", "StoreProfile"]

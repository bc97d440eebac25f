"""Collection store factory.

Builds a ``CollectionStore`` from a store profile in backup.toml or from a
plain URL.  ``memory://`` gives an empty in-process store.

Profile selection priority:
1. Explicit ``profile_name`` argument
2. ``BACKUP_PROFILE`` env var
3. Raise ``ProfileNotFoundError``
"""

import os
from pathlib import Path
from urllib.parse import quote

from fintrack_backup.config.loader import load_backup_config
from fintrack_backup.config.models import BackupConfig, StoreProfile
from fintrack_backup.stores.base import CollectionStore
from fintrack_backup.stores.memory import InMemoryCollectionStore
from fintrack_backup.stores.postgres import AsyncPostgresCollectionStore

MEMORY_URL = "memory://"


class ProfileNotFoundError(Exception):
    """Raised when no store profile is configured or the name is unknown."""

    pass


def resolve_url(profile: StoreProfile) -> str:
    """Resolve profile URL with password substitution.

    Args:
        profile: Store profile from config

    Returns:
        Connection URL with ``[YOUR-PASSWORD]`` replaced by the URL-quoted
        ``db_password``
    """
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def get_active_profile_name(profile_name: str | None = None) -> str:
    """Return the profile to use.

    Raises:
        ProfileNotFoundError: If neither the argument nor ``BACKUP_PROFILE``
            names a profile.
    """
    if profile_name:
        return profile_name
    env_profile = os.environ.get("BACKUP_PROFILE")
    if env_profile:
        return env_profile
    raise ProfileNotFoundError(
        "No store profile configured.\n"
        "Pass --profile <name> or set BACKUP_PROFILE=<name>."
    )


def store_from_url(url: str, schema_name: str = "public") -> CollectionStore:
    """Create a store for ``url`` (``memory://`` or a PostgreSQL URL)."""
    if url == MEMORY_URL:
        return InMemoryCollectionStore()
    return AsyncPostgresCollectionStore(url, schema=schema_name)


def get_store(
    profile_name: str | None = None,
    config: BackupConfig | None = None,
    config_path: Path | None = None,
) -> CollectionStore:
    """Create the store described by a backup.toml profile.

    Args:
        profile_name: Profile to use (see module docstring for fallbacks).
        config: Already-loaded config; loaded from ``config_path`` if omitted.
        config_path: Path to backup.toml.

    Raises:
        ProfileNotFoundError: If the profile is not configured.
        FileNotFoundError: If backup.toml does not exist.

    Example:
        >>> store = get_store("local")
    """
    name = get_active_profile_name(profile_name)
    config = config or load_backup_config(config_path)
    if name not in config.profiles:
        available = ", ".join(config.profiles.keys()) or "(none)"
        raise ProfileNotFoundError(
            f"Profile '{name}' not found in backup.toml.\n"
            f"Available profiles: {available}"
        )
    profile = config.profiles[name]
    return store_from_url(resolve_url(profile), schema_name=profile.schema_name)

"""Backup schedule configuration.

Holds the process-wide schedule policy that an external periodic trigger
reads.  This module never triggers backups itself.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

import pydantic

from fintrack_backup.backup.models import ScheduleConfig, utcnow
from fintrack_backup.errors import BackupStorageError, ValidationError

logger = logging.getLogger(__name__)


class ScheduleManager:
    """Owns the single ``ScheduleConfig`` of an engine.

    Args:
        path: Optional JSON file the config is persisted to and loaded from.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(
        self,
        path: Path | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._path = Path(path) if path else None
        self._clock = clock
        self._config = self._load()

    def _load(self) -> ScheduleConfig:
        if self._path is None or not self._path.exists():
            return ScheduleConfig()
        try:
            return ScheduleConfig.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable schedule file %s", self._path, exc_info=True)
            return ScheduleConfig()

    def get(self) -> ScheduleConfig:
        return self._config

    def update(self, new_config: dict[str, Any] | ScheduleConfig, actor: str | None) -> ScheduleConfig:
        """Validate and replace the schedule.

        Args:
            new_config: Full replacement config, as a model or a plain dict.
                Omitted fields take their defaults.
            actor: Who made the change.

        Returns:
            The stored ``ScheduleConfig`` with ``updated_by/updated_at`` set.

        Raises:
            ValidationError: If the interval format or retention bounds are
                invalid.
            BackupStorageError: If persisting the config fails.
        """
        if isinstance(new_config, ScheduleConfig):
            new_config = new_config.model_dump(exclude={"updated_by", "updated_at"})
        try:
            config = ScheduleConfig.model_validate(
                {**new_config, "updated_by": actor, "updated_at": self._clock()}
            )
        except pydantic.ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ValidationError(f"Invalid schedule: {problems}") from None

        if self._path is not None:
            self._persist(config)
        self._config = config
        logger.info("Backup schedule updated by %s: %s every %s", actor, config.enabled, config.interval)
        return config

    def next_run(self, last_backup_at: datetime | None) -> datetime | None:
        """When the external trigger should fire next, or ``None`` if disabled."""
        if not self._config.enabled:
            return None
        base = last_backup_at or self._clock()
        return base + self._config.interval_delta

    def _persist(self, config: ScheduleConfig) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_name(f".{self._path.name}.tmp")
            tmp.write_text(json.dumps(config.model_dump(mode="json"), indent=2), encoding="utf-8")
            tmp.replace(self._path)
        except OSError as e:
            raise BackupStorageError(f"Failed to persist schedule to {self._path}") from e

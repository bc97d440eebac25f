"""Append-only audit trail of backup engine operations.

Entries are newline-delimited JSON, partitioned by month::

    logs/backup-activity-2026-01.log

Appending is best-effort: a failure is reported through ``logging`` and
never fails the operation being recorded.
"""

import json
import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from threading import Lock
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from fintrack_backup.backup.models import utcnow

logger = logging.getLogger(__name__)

_PARTITION_GLOB = "backup-activity-*.log"


class ActivityType(str, Enum):
    CREATE = "create"
    RESTORE = "restore"
    CLEAN = "clean"
    DOWNLOAD = "download"
    UPLOAD = "upload"
    SCHEDULE_UPDATE = "scheduleUpdate"


class ActivityEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    timestamp: datetime
    event_type: ActivityType = Field(alias="eventType")
    actor: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class ActivityLog:
    """Monthly-partitioned JSONL activity log.

    Args:
        log_dir: Directory holding the partition files.
        clock: Returns the current UTC time (injectable for tests).
    """

    def __init__(self, log_dir: Path, clock: Callable[[], datetime] = utcnow) -> None:
        self.log_dir = Path(log_dir)
        self._clock = clock
        self._lock = Lock()

    def partition_path(self, when: datetime) -> Path:
        return self.log_dir / f"backup-activity-{when:%Y-%m}.log"

    def append(
        self,
        event_type: ActivityType,
        actor: str | None = None,
        **details: Any,
    ) -> ActivityEntry | None:
        """Record one event.

        Returns:
            The written entry, or ``None`` if writing failed.
        """
        try:
            entry = ActivityEntry(
                timestamp=self._clock(),
                event_type=event_type,
                actor=actor,
                details=details,
            )
            line = json.dumps(entry.model_dump(mode="json", by_alias=True), default=str)
            path = self.partition_path(entry.timestamp)
            with self._lock:
                path.parent.mkdir(parents=True, exist_ok=True)
                with path.open("a", encoding="utf-8") as handle:
                    handle.write(line + "\n")
        except (OSError, TypeError, ValueError):
            logger.exception("Failed to log backup activity %s", event_type)
            return None
        logger.info("activity %s", line)
        return entry

    def read(
        self,
        event_type: ActivityType | None = None,
        limit: int | None = None,
    ) -> list[ActivityEntry]:
        """Return entries across all partitions, newest first.

        Malformed lines are skipped with a warning.
        """
        entries: list[ActivityEntry] = []
        if not self.log_dir.exists():
            return entries
        for path in sorted(self.log_dir.glob(_PARTITION_GLOB)):
            with path.open("r", encoding="utf-8") as handle:
                for lineno, line in enumerate(handle, 1):
                    if not line.strip():
                        continue
                    try:
                        entry = ActivityEntry.model_validate(json.loads(line))
                    except ValueError:
                        logger.warning("Skipping malformed activity line %s:%d", path.name, lineno)
                        continue
                    if event_type is None or entry.event_type == event_type:
                        entries.append(entry)
        entries.sort(key=lambda e: e.timestamp, reverse=True)
        if limit is not None:
            entries = entries[:limit]
        return entries

"""Schedule store: the full schedule set as one JSON array on disk.

The file is rewritten wholesale on every save. There is exactly one writer
(the registry) per path, so no locking is done here.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pluton_scheduler.errors import StoreError

logger = logging.getLogger(__name__)


@dataclass
class StoredSchedule:
    """Flattened, serializable form of one ``(id, schedule_type)`` entry."""

    id: str
    schedule_type: str
    cron_expression: str
    options: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "scheduleType": self.schedule_type,
            "cronExpression": self.cron_expression,
            "options": self.options,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StoredSchedule:
        options = data.get("options") or {}
        if not isinstance(options, dict):
            msg = f"options must be an object, got {type(options).__name__}"
            raise TypeError(msg)
        return cls(
            id=str(data["id"]),
            schedule_type=str(data["scheduleType"]),
            cron_expression=str(data["cronExpression"]),
            options=dict(options),
        )


class ScheduleStore:
    """Reads and writes the schedules file at *path*."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> list[StoredSchedule]:
        """Return all stored schedules in file order.

        A missing file is the first-run state and yields an empty list.
        Unreadable files, invalid JSON and a non-list top level raise
        ``StoreError``. Single malformed records are skipped with a warning.
        """
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            msg = f"Cannot read schedule file {self._path}: {exc}"
            raise StoreError(msg) from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            msg = f"Corrupt schedule file {self._path}: {exc}"
            raise StoreError(msg) from exc
        if not isinstance(data, list):
            msg = f"Schedule file {self._path} must contain a JSON array"
            raise StoreError(msg)

        records: list[StoredSchedule] = []
        for index, item in enumerate(data):
            try:
                records.append(StoredSchedule.from_dict(item))
            except (KeyError, TypeError, AttributeError):
                logger.warning("Skipping malformed schedule record #%d in %s", index, self._path)
        logger.debug("Loaded %d schedule records from %s", len(records), self._path)
        return records

    def save(self, records: list[StoredSchedule]) -> None:
        """Save all records atomically (temp write + rename)."""
        content = json.dumps([r.to_dict() for r in records], indent=2, ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self._path.parent), suffix=".tmp")
        except OSError as exc:
            msg = f"Cannot write schedule file {self._path}: {exc}"
            raise StoreError(msg) from exc
        tmp = Path(tmp_path)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            tmp.replace(self._path)
        except OSError as exc:
            tmp.unlink(missing_ok=True)
            msg = f"Cannot write schedule file {self._path}: {exc}"
            raise StoreError(msg) from exc
        except BaseException:
            tmp.unlink(missing_ok=True)
            raise
        logger.debug("Saved %d schedule records to %s", len(records), self._path)

"""Persisted task options, one model per schedule type.

Options are plain data. The handler that runs when a schedule fires is never
stored here; the registry resolves it from its handler map by schedule type.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ScheduleOptions(BaseModel):
    """Options shared by every schedule type.

    Unknown keys are kept so that records written by newer versions survive
    a round-trip through older ones.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    is_active: bool = Field(default=True, alias="isActive")

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class BackupScheduleOptions(ScheduleOptions):
    """Options for a recurring backup of a plan."""

    plan_id: str | None = Field(default=None, alias="planId")
    title: str = ""
    storage_id: str | None = Field(default=None, alias="storageId")
    storage_path: str = Field(default="", alias="storagePath")
    source_id: str | None = Field(default=None, alias="sourceId")
    settings: dict[str, Any] = Field(default_factory=dict)


class PruneScheduleOptions(ScheduleOptions):
    """Options for a recurring snapshot prune of a plan."""

    plan_id: str | None = Field(default=None, alias="planId")
    keep_last: int | None = Field(default=None, alias="keepLast")
    keep_daily: int | None = Field(default=None, alias="keepDaily")
    keep_weekly: int | None = Field(default=None, alias="keepWeekly")
    keep_monthly: int | None = Field(default=None, alias="keepMonthly")


DEFAULT_OPTION_TYPES: dict[str, type[ScheduleOptions]] = {
    "backup": BackupScheduleOptions,
    "prune": PruneScheduleOptions,
}

"""Recurring task scheduling: JSON store, cron triggers, schedule registry."""

from pluton_scheduler.scheduling.interval import PlanInterval, interval_label, interval_to_cron
from pluton_scheduler.scheduling.options import (
    BackupScheduleOptions,
    PruneScheduleOptions,
    ScheduleOptions,
)
from pluton_scheduler.scheduling.registry import (
    ScheduleEntry,
    ScheduleRegistry,
    TaskHandler,
    build_registry,
)
from pluton_scheduler.scheduling.store import ScheduleStore, StoredSchedule
from pluton_scheduler.scheduling.trigger import CronTrigger, Trigger, TriggerFactory

__all__ = [
    "BackupScheduleOptions",
    "CronTrigger",
    "PlanInterval",
    "PruneScheduleOptions",
    "ScheduleEntry",
    "ScheduleOptions",
    "ScheduleRegistry",
    "ScheduleStore",
    "StoredSchedule",
    "TaskHandler",
    "Trigger",
    "TriggerFactory",
    "build_registry",
    "interval_label",
    "interval_to_cron",
]

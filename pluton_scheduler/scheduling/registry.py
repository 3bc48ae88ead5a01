"""Schedule registry: the single authority over recurring tasks.

Bridges persisted schedule definitions to live triggers and to the task
handlers supplied by the caller. One registry per store file and process.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from pydantic import ValidationError

from pluton_scheduler.errors import InvalidExpressionError, ScheduleError, StoreError
from pluton_scheduler.log_context import set_log_context
from pluton_scheduler.scheduling.options import DEFAULT_OPTION_TYPES, ScheduleOptions
from pluton_scheduler.scheduling.store import ScheduleStore, StoredSchedule
from pluton_scheduler.scheduling.trigger import Trigger, TriggerFactory, cron_trigger_factory

if TYPE_CHECKING:
    from pluton_scheduler.config import SchedulerConfig
    from pluton_scheduler.paths import PlutonPaths

logger = logging.getLogger(__name__)

# Handler signature: (schedule_id, options)
TaskHandler = Callable[[str, ScheduleOptions], Awaitable[Any]]


@dataclass
class ScheduleEntry:
    """In-memory pairing of a schedule type, its live trigger and its options."""

    schedule_type: str
    cron_expression: str
    trigger: Trigger
    options: ScheduleOptions

    def to_record(self, schedule_id: str) -> StoredSchedule:
        return StoredSchedule(
            id=schedule_id,
            schedule_type=self.schedule_type,
            cron_expression=self.cron_expression,
            options=self.options.to_dict(),
        )


class ScheduleRegistry:
    """Persistent, typed, multi-tenant cron registry.

    Entries are keyed by id; one id holds at most one entry per schedule type.
    Every mutation updates memory, then rewrites the whole store before it
    returns. Mutations are serialized by a single lock.

    ``start()`` restores the stored schedules. Until it has finished, every
    operation except ``schedule_task`` and ``get_schedule_sync`` waits.
    """

    def __init__(  # noqa: PLR0913
        self,
        handlers: Mapping[str, TaskHandler],
        *,
        store: ScheduleStore,
        trigger_factory: TriggerFactory | None = None,
        option_types: Mapping[str, type[ScheduleOptions]] | None = None,
        tz: ZoneInfo | None = None,
        skip_invalid_on_restore: bool = True,
    ) -> None:
        self._handlers: dict[str, TaskHandler] = dict(handlers)
        self._store = store
        self._trigger_factory = trigger_factory or cron_trigger_factory(tz or ZoneInfo("UTC"))
        self._option_types: dict[str, type[ScheduleOptions]] = {
            **DEFAULT_OPTION_TYPES,
            **(option_types or {}),
        }
        self._skip_invalid = skip_invalid_on_restore
        self._schedules: dict[str, list[ScheduleEntry]] = {}
        self._lock = asyncio.Lock()
        self._ready = asyncio.Event()
        self._started = False
        # Entries added before the restore finished; written by the restore.
        self._unsaved = False
        self._inflight: set[asyncio.Task[None]] = set()
        logger.info("ScheduleRegistry using schedule file at %s", store.path)

    # -- Lifecycle --

    async def start(self) -> None:
        """Restore stored schedules. Safe to call more than once."""
        if self._started:
            await self._ready.wait()
            return
        self._started = True
        # Own task so the restore log context does not leak into the caller.
        await asyncio.create_task(self._restore(), name="schedule-restore")

    async def stop(self) -> None:
        """Stop every trigger and cancel running handlers. The store is left as is."""
        for entries in self._schedules.values():
            for entry in entries:
                entry.trigger.stop()
        self._schedules.clear()
        tasks = list(self._inflight)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("ScheduleRegistry stopped")

    async def wait_ready(self) -> None:
        """Block until the startup restore has finished."""
        if not self._started:
            msg = "ScheduleRegistry.start() has not been called"
            raise ScheduleError(msg)
        await self._ready.wait()

    # -- Mutations --

    async def schedule_task(
        self,
        schedule_id: str,
        cron_expression: str,
        options: ScheduleOptions | Mapping[str, Any],
        schedule_type: str,
    ) -> None:
        """Create the ``(schedule_id, schedule_type)`` entry and persist.

        A duplicate pair is a logged no-op. An invalid expression raises
        ``InvalidExpressionError`` and changes nothing. Before the restore has
        finished the entry is kept in memory only; the restore writes it
        together with the stored schedules.
        """
        logger.info("Scheduling %s task for %s (%s)", schedule_type, schedule_id, cron_expression)
        opts = self._coerce_options(schedule_type, options)
        async with self._lock:
            if not self._add_entry(schedule_id, cron_expression, opts, schedule_type):
                return
            if self._ready.is_set():
                await self._persist()
            else:
                self._unsaved = True
                logger.debug("Restore pending, %s/%s saved after it", schedule_id, schedule_type)

    async def update_schedule(
        self,
        schedule_id: str,
        cron_expression: str,
        options: ScheduleOptions | Mapping[str, Any],
        schedule_type: str,
    ) -> None:
        """Replace the trigger and options of an existing entry, in place.

        Unknown pairs are ignored. The replacement trigger is built before the
        old one is stopped, so an invalid expression leaves the old schedule
        armed and raises ``InvalidExpressionError``.
        """
        await self.wait_ready()
        opts = self._coerce_options(schedule_type, options)
        async with self._lock:
            if self._replace_entry(schedule_id, cron_expression, opts, schedule_type):
                await self._persist()

    async def upsert_schedule(
        self,
        schedule_id: str,
        cron_expression: str,
        options: ScheduleOptions | Mapping[str, Any],
        schedule_type: str,
    ) -> None:
        """Update the entry if it exists, create it otherwise."""
        await self.wait_ready()
        opts = self._coerce_options(schedule_type, options)
        async with self._lock:
            changed = self._replace_entry(
                schedule_id, cron_expression, opts, schedule_type
            ) or self._add_entry(schedule_id, cron_expression, opts, schedule_type)
            if changed:
                await self._persist()

    async def remove_schedule(self, schedule_id: str) -> None:
        """Stop and drop every entry of *schedule_id*. Unknown ids are ignored."""
        await self.wait_ready()
        async with self._lock:
            entries = self._schedules.pop(schedule_id, None)
            if entries is None:
                return
            for entry in entries:
                entry.trigger.stop()
            await self._persist()
        logger.info("Removed %d schedule(s) for %s", len(entries), schedule_id)

    async def pause_schedule(self, schedule_id: str) -> bool:
        """Pause all entries of *schedule_id*. True only if every pause succeeded."""
        return await self._set_active(schedule_id, active=False)

    async def resume_schedule(self, schedule_id: str) -> bool:
        """Resume all entries of *schedule_id*. True only if every resume succeeded."""
        return await self._set_active(schedule_id, active=True)

    # -- Reads --

    async def get_schedule(self, schedule_id: str) -> list[ScheduleEntry] | None:
        """Entries of *schedule_id* (live view, do not mutate), or None."""
        await self.wait_ready()
        return self._schedules.get(schedule_id)

    def get_schedule_sync(self, schedule_id: str) -> list[ScheduleEntry] | None:
        """Like ``get_schedule`` without waiting for the restore."""
        return self._schedules.get(schedule_id)

    async def get_schedules(self) -> Mapping[str, list[ScheduleEntry]]:
        """Read-only view of all entries keyed by id."""
        await self.wait_ready()
        return MappingProxyType(self._schedules)

    async def next_run(self, schedule_id: str, schedule_type: str) -> datetime | None:
        """Next fire time of one entry; None if unknown or paused."""
        await self.wait_ready()
        entry = self._find(schedule_id, schedule_type)
        return entry.trigger.next_run() if entry else None

    # -- Internals (caller holds the lock) --

    def _find(self, schedule_id: str, schedule_type: str) -> ScheduleEntry | None:
        entries = self._schedules.get(schedule_id, [])
        return next((e for e in entries if e.schedule_type == schedule_type), None)

    def _coerce_options(
        self,
        schedule_type: str,
        options: ScheduleOptions | Mapping[str, Any],
    ) -> ScheduleOptions:
        if isinstance(options, ScheduleOptions):
            return options
        model = self._option_types.get(schedule_type, ScheduleOptions)
        try:
            return model.model_validate(dict(options))
        except ValidationError as exc:
            msg = f"Invalid options for {schedule_type} schedule: {exc}"
            raise ScheduleError(msg) from exc

    def _create_trigger(
        self,
        schedule_id: str,
        cron_expression: str,
        options: ScheduleOptions,
        schedule_type: str,
    ) -> Trigger:
        try:
            trigger = self._trigger_factory(
                cron_expression, self._fire_callback(schedule_id, schedule_type)
            )
        except InvalidExpressionError as exc:
            msg = f"Could not schedule {schedule_type} task for '{schedule_id}': {exc}"
            raise InvalidExpressionError(msg) from exc
        # A paused schedule must never fire before it is explicitly resumed.
        if not options.is_active:
            trigger.pause()
        return trigger

    def _add_entry(
        self,
        schedule_id: str,
        cron_expression: str,
        options: ScheduleOptions,
        schedule_type: str,
    ) -> bool:
        if self._find(schedule_id, schedule_type) is not None:
            logger.warning(
                "Schedule with id '%s' and type '%s' already exists, skipping",
                schedule_id,
                schedule_type,
            )
            return False
        trigger = self._create_trigger(schedule_id, cron_expression, options, schedule_type)
        entry = ScheduleEntry(schedule_type, cron_expression, trigger, options)
        self._schedules.setdefault(schedule_id, []).append(entry)
        return True

    def _replace_entry(
        self,
        schedule_id: str,
        cron_expression: str,
        options: ScheduleOptions,
        schedule_type: str,
    ) -> bool:
        entries = self._schedules.get(schedule_id, [])
        index = next(
            (i for i, e in enumerate(entries) if e.schedule_type == schedule_type),
            None,
        )
        if index is None:
            logger.debug("No %s schedule for %s, update skipped", schedule_type, schedule_id)
            return False
        trigger = self._create_trigger(schedule_id, cron_expression, options, schedule_type)
        entries[index].trigger.stop()
        entries[index] = ScheduleEntry(schedule_type, cron_expression, trigger, options)
        logger.info("Updated %s schedule for %s (%s)", schedule_type, schedule_id, cron_expression)
        return True

    async def _set_active(self, schedule_id: str, *, active: bool) -> bool:
        await self.wait_ready()
        async with self._lock:
            entries = self._schedules.get(schedule_id)
            if not entries:
                return False
            success = True
            for entry in entries:
                entry.options.is_active = active
                ok = entry.trigger.resume() if active else entry.trigger.pause()
                success = success and ok
            if success:
                await self._persist()
            else:
                action = "resume" if active else "pause"
                logger.warning("Could not %s every schedule of %s", action, schedule_id)
            return success

    async def _persist(self) -> None:
        records = [
            entry.to_record(schedule_id)
            for schedule_id, entries in self._schedules.items()
            for entry in entries
        ]
        await asyncio.to_thread(self._store.save, records)

    # -- Restore --

    async def _restore(self) -> None:
        set_log_context(operation="restore")
        try:
            # Held from load to ready so no write can land between them.
            async with self._lock:
                try:
                    records = await asyncio.to_thread(self._store.load)
                except StoreError as exc:
                    logger.error("Error loading schedules, starting empty: %s", exc)
                    records = []
                restored = self._restore_records(records)
                if restored or self._unsaved:
                    try:
                        await self._persist()
                    except StoreError as exc:
                        logger.error("Could not rewrite schedules after restore: %s", exc)
                self._unsaved = False
                self._ready.set()
            logger.info("Restored %d of %d schedules", restored, len(records))
        finally:
            self._ready.set()

    def _restore_records(self, records: list[StoredSchedule]) -> int:
        restored = 0
        for record in records:
            try:
                options = self._coerce_options(record.schedule_type, record.options)
                added = self._add_entry(
                    record.id, record.cron_expression, options, record.schedule_type
                )
            except ScheduleError as exc:
                if not self._skip_invalid:
                    logger.error(
                        "Aborting restore at %s/%s: %s", record.id, record.schedule_type, exc
                    )
                    break
                logger.error("Skipping schedule %s/%s: %s", record.id, record.schedule_type, exc)
                continue
            if added:
                restored += 1
        return restored

    # -- Firing --

    def _fire_callback(self, schedule_id: str, schedule_type: str) -> Callable[[], None]:
        def on_fire() -> None:
            self._dispatch(schedule_id, schedule_type)

        return on_fire

    def _dispatch(self, schedule_id: str, schedule_type: str) -> None:
        """Start the handler for a fired entry as a fire-and-forget task."""
        entry = self._find(schedule_id, schedule_type)
        if entry is None:
            logger.debug("Fired schedule %s/%s no longer exists", schedule_id, schedule_type)
            return
        handler = self._handlers.get(schedule_type)
        if handler is None:
            logger.warning("No handler registered for schedule type '%s'", schedule_type)
            return
        task = asyncio.create_task(
            self._run_handler(handler, schedule_id, schedule_type, entry.options),
            name=f"schedule:{schedule_id}:{schedule_type}",
        )
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _run_handler(
        self,
        handler: TaskHandler,
        schedule_id: str,
        schedule_type: str,
        options: ScheduleOptions,
    ) -> None:
        set_log_context(operation="fire", schedule_id=schedule_id, schedule_type=schedule_type)
        logger.info("Executing %s task for %s", schedule_type, schedule_id)
        try:
            await handler(schedule_id, options)
        except Exception:
            logger.exception("Task handler failed for %s/%s", schedule_id, schedule_type)


def build_registry(
    handlers: Mapping[str, TaskHandler],
    *,
    paths: PlutonPaths,
    config: SchedulerConfig,
    option_types: Mapping[str, type[ScheduleOptions]] | None = None,
) -> ScheduleRegistry:
    """Construct a registry wired to the configured store file and timezone."""
    from pluton_scheduler.config import resolve_timezone

    return ScheduleRegistry(
        handlers,
        store=ScheduleStore(config.schedules_path(paths)),
        option_types=option_types,
        tz=resolve_timezone(config.timezone),
        skip_invalid_on_restore=config.restore_skip_invalid,
    )

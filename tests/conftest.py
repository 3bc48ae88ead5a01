"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from pluton_scheduler.scheduling.options import ScheduleOptions
from pluton_scheduler.scheduling.registry import ScheduleRegistry
from pluton_scheduler.scheduling.store import ScheduleStore
from pluton_scheduler.scheduling.trigger import validate_expression


class FakeTrigger:
    """Trigger stand-in: fires only when the test calls ``fire()``."""

    def __init__(self, expression: str, on_fire: Callable[[], None]) -> None:
        self.expression = expression
        self._on_fire = on_fire
        self.paused = False
        self.stopped = False
        self.pause_result = True
        self.resume_result = True

    def pause(self) -> bool:
        if self.stopped:
            return False
        self.paused = True
        return self.pause_result

    def resume(self) -> bool:
        if self.stopped:
            return False
        self.paused = False
        return self.resume_result

    def stop(self) -> None:
        self.stopped = True

    def is_running(self) -> bool:
        return not self.stopped and not self.paused

    def next_run(self) -> None:
        return None

    def fire(self) -> bool:
        """Simulate the scheduled time. Returns False if the trigger ignored it."""
        if not self.is_running():
            return False
        self._on_fire()
        return True


class FakeTriggerFactory:
    """Validates like the real engine and records every trigger it builds."""

    def __init__(self) -> None:
        self.created: list[FakeTrigger] = []

    def __call__(self, expression: str, on_fire: Callable[[], None]) -> FakeTrigger:
        validate_expression(expression)
        trigger = FakeTrigger(expression, on_fire)
        self.created.append(trigger)
        return trigger


@pytest.fixture
def tmp_data_dir(tmp_path: Path) -> Path:
    """Temporary Pluton data directory (not created)."""
    return tmp_path / "data"


@pytest.fixture
def schedules_path(tmp_data_dir: Path) -> Path:
    return tmp_data_dir / "schedules.json"


@pytest.fixture
def trigger_factory() -> FakeTriggerFactory:
    return FakeTriggerFactory()


@pytest.fixture
def handler_calls() -> list[tuple[str, str, ScheduleOptions]]:
    """Recorded ``(schedule_type, schedule_id, options)`` handler invocations."""
    return []


@pytest.fixture
def handlers(handler_calls: list[tuple[str, str, ScheduleOptions]]) -> dict[str, Any]:
    async def backup(schedule_id: str, options: ScheduleOptions) -> None:
        handler_calls.append(("backup", schedule_id, options))

    async def prune(schedule_id: str, options: ScheduleOptions) -> None:
        handler_calls.append(("prune", schedule_id, options))

    return {"backup": backup, "prune": prune}


@pytest.fixture
def make_registry(
    schedules_path: Path,
    trigger_factory: FakeTriggerFactory,
    handlers: dict[str, Any],
) -> Callable[..., ScheduleRegistry]:
    """Build a registry on the shared store path with fake triggers."""

    def _make(**overrides: Any) -> ScheduleRegistry:
        registry_handlers = overrides.pop("handlers", handlers)
        kwargs: dict[str, Any] = {
            "store": ScheduleStore(schedules_path),
            "trigger_factory": trigger_factory,
        }
        kwargs.update(overrides)
        return ScheduleRegistry(registry_handlers, **kwargs)

    return _make

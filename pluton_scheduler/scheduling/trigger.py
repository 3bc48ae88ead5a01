"""Cron triggers: live timers that call back at times matching a cron expression.

The registry only depends on the ``Trigger`` protocol and a ``TriggerFactory``.
``CronTrigger`` is the default engine: cronsim computes fire times, an asyncio
task sleeps until each one.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from datetime import datetime
from typing import Protocol
from zoneinfo import ZoneInfo

from cronsim import CronSim, CronSimError

from pluton_scheduler.errors import InvalidExpressionError

logger = logging.getLogger(__name__)

_UTC = ZoneInfo("UTC")


class Trigger(Protocol):
    """Handle on a running timer."""

    def pause(self) -> bool: ...

    def resume(self) -> bool: ...

    def stop(self) -> None: ...

    def is_running(self) -> bool: ...

    def next_run(self) -> datetime | None: ...


# Factory signature: (cron_expression, on_fire) -> Trigger
TriggerFactory = Callable[[str, Callable[[], None]], Trigger]


def iter_fire_times(
    expression: str,
    *,
    tz: ZoneInfo = _UTC,
    after: datetime | None = None,
) -> Iterator[datetime]:
    """Yield timezone-aware fire times strictly after *after* (default: now).

    CronSim iterates in the local wall-clock time of *tz*, so ``0 9 * * *``
    means 09:00 in that zone. Times that fall into a DST gap are skipped.
    Raises ``InvalidExpressionError`` for expressions cronsim rejects.
    """
    start = (after or datetime.now(tz)).astimezone(tz).replace(tzinfo=None)
    try:
        it = CronSim(expression, start)
    except (CronSimError, ValueError) as exc:
        msg = f"Invalid cron expression '{expression}': {exc}"
        raise InvalidExpressionError(msg) from exc
    for naive in it:
        # fold=0: prefer the pre-DST interpretation of ambiguous times.
        aware = naive.replace(tzinfo=tz)
        if aware.astimezone(_UTC).astimezone(tz).replace(tzinfo=None) != naive:
            # Inside a spring-forward gap: the wall-clock time never happens.
            logger.debug("Skipping non-existent local time %s (%s)", naive.isoformat(), tz.key)
            continue
        yield aware


def next_fire_time(
    expression: str,
    *,
    tz: ZoneInfo = _UTC,
    after: datetime | None = None,
) -> datetime:
    """Return the first fire time of *expression* after *after*.

    Raises ``InvalidExpressionError`` if the expression is malformed or
    never matches.
    """
    try:
        return next(iter_fire_times(expression, tz=tz, after=after))
    except StopIteration:
        msg = f"Cron expression '{expression}' never fires"
        raise InvalidExpressionError(msg) from None


def validate_expression(expression: str) -> None:
    """Raise ``InvalidExpressionError`` unless *expression* is usable."""
    next_fire_time(expression)


class CronTrigger:
    """Calls *on_fire* at every time matching *expression*.

    Must be created inside a running event loop. Fire times are derived from
    the previous target rather than the wake-up time, so an early wake-up never
    fires the same minute twice. Missed times (system suspend, a blocked loop)
    are skipped, not replayed.
    """

    def __init__(
        self,
        expression: str,
        on_fire: Callable[[], None],
        *,
        tz: ZoneInfo = _UTC,
        name: str = "",
    ) -> None:
        self._expression = expression
        self._on_fire = on_fire
        self._tz = tz
        self._name = name or expression
        self._fire_times = iter_fire_times(expression, tz=tz)
        self._next: datetime | None = self._first_fire_time()
        self._paused = False
        self._stopped = False
        self._task: asyncio.Task[None] = asyncio.create_task(
            self._run(), name=f"trigger:{self._name}"
        )
        self._task.add_done_callback(self._log_task_crash)

    @property
    def expression(self) -> str:
        return self._expression

    def _first_fire_time(self) -> datetime:
        try:
            return next(self._fire_times)
        except StopIteration:
            msg = f"Cron expression '{self._expression}' never fires"
            raise InvalidExpressionError(msg) from None

    # -- Control --

    def pause(self) -> bool:
        """Suppress fires until resumed. Returns False once stopped."""
        if self._stopped:
            return False
        self._paused = True
        return True

    def resume(self) -> bool:
        """Re-enable fires. Returns False once stopped."""
        if self._stopped:
            return False
        self._paused = False
        return True

    def stop(self) -> None:
        """Stop permanently. Synchronous and idempotent."""
        self._stopped = True
        if not self._task.done():
            self._task.cancel()

    def is_running(self) -> bool:
        return not self._stopped and not self._paused

    def next_run(self) -> datetime | None:
        """Next fire time, or None while paused or after stop."""
        if not self.is_running():
            return None
        return self._next

    # -- Loop --

    def _now(self) -> datetime:
        return datetime.now(self._tz)

    async def _sleep(self, delay: float) -> None:
        await asyncio.sleep(delay)

    def _advance(self) -> None:
        try:
            self._next = next(self._fire_times)
        except StopIteration:
            logger.warning("Trigger %s has no further fire times", self._name)
            self._next = None

    async def _run(self) -> None:
        while not self._stopped and self._next is not None:
            target = self._next
            delay = (target - self._now()).total_seconds()
            if delay < 0:
                logger.debug("Trigger %s missed %s, resyncing", self._name, target.isoformat())
                self._fire_times = iter_fire_times(self._expression, tz=self._tz)
                self._advance()
                continue

            await self._sleep(delay)
            if self._stopped:
                return
            self._advance()
            if self._paused:
                logger.debug("Trigger %s paused, skipping %s", self._name, target.isoformat())
                continue
            self._fire(target)

    def _fire(self, target: datetime) -> None:
        logger.debug("Trigger %s firing for %s", self._name, target.isoformat())
        try:
            self._on_fire()
        except Exception:
            logger.exception("Error in fire callback of trigger %s", self._name)

    def _log_task_crash(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Trigger %s loop crashed: %s", self._name, exc, exc_info=exc)


def cron_trigger_factory(tz: ZoneInfo = _UTC) -> TriggerFactory:
    """Return a factory building ``CronTrigger`` instances in *tz*."""

    def factory(expression: str, on_fire: Callable[[], None]) -> Trigger:
        return CronTrigger(expression, on_fire, tz=tz)

    return factory

"""Logging context: ContextVar-based log enrichment for async operations.

Every log record is automatically enriched with a ``[op:schedule]`` prefix
via a `ContextFilter` attached to the root logger handlers.

Operation codes: ``restore`` (startup restore), ``fire`` (trigger fired),
``cli`` (command line).
"""

from __future__ import annotations

import logging
from contextvars import ContextVar

# Cross-cutting context propagated through asyncio tasks.
ctx_operation: ContextVar[str | None] = ContextVar("ctx_operation", default=None)
ctx_schedule_id: ContextVar[str | None] = ContextVar("ctx_schedule_id", default=None)
ctx_schedule_type: ContextVar[str | None] = ContextVar("ctx_schedule_type", default=None)


class ContextFilter(logging.Filter):
    """Inject ContextVar values into every LogRecord as ``record.ctx``."""

    def filter(self, record: logging.LogRecord) -> bool:
        op = ctx_operation.get(None)
        schedule_id = ctx_schedule_id.get(None)
        schedule_type = ctx_schedule_type.get(None)
        parts: list[str] = []
        if op:
            parts.append(op)
        if schedule_id:
            parts.append(schedule_id)
        if schedule_type:
            parts.append(schedule_type)
        record.ctx = f"[{':'.join(parts)}] " if parts else ""
        return True


def set_log_context(
    *,
    operation: str | None = None,
    schedule_id: str | None = None,
    schedule_type: str | None = None,
) -> None:
    """Set logging context for the current asyncio task.

    Values propagate to all coroutines called within the same task.
    Each ``asyncio.create_task()`` copies the current context automatically.
    """
    if operation is not None:
        ctx_operation.set(operation)
    if schedule_id is not None:
        ctx_schedule_id.set(schedule_id)
    if schedule_type is not None:
        ctx_schedule_type.set(schedule_type)

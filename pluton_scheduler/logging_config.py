"""Logging for the scheduler: colored console plus an optional rotating file.

A host process calls ``setup_logging_from_config()`` once at startup, the CLI
calls ``setup_logging()`` directly. Every handler carries the ``ContextFilter``
so records show which operation and schedule produced them.
"""

from __future__ import annotations

import atexit
import logging
import queue
import sys
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING

from pluton_scheduler.log_context import ContextFilter

if TYPE_CHECKING:
    from pluton_scheduler.config import SchedulerConfig
    from pluton_scheduler.paths import PlutonPaths

LOG_FILE_NAME = "scheduler.log"
MAX_BYTES = 5 * 1024 * 1024
BACKUP_COUNT = 3

CONSOLE_FMT = "%(asctime)s %(levelname)s %(name)s: %(ctx)s%(message)s"
FILE_FMT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(ctx)s%(message)s"

logger = logging.getLogger(__name__)

_LEVEL_COLORS = {
    "DEBUG": "\x1b[36m",
    "INFO": "\x1b[32m",
    "WARNING": "\x1b[33m",
    "ERROR": "\x1b[31m",
}
_RESET = "\x1b[0m"

# Writes the file handler's records off the event loop thread.
_queue_listener: QueueListener | None = None


def _stop_queue_listener() -> None:
    global _queue_listener  # noqa: PLW0603
    if _queue_listener is not None:
        _queue_listener.stop()
        _queue_listener = None


atexit.register(_stop_queue_listener)


class _ColorFormatter(logging.Formatter):
    """Pads level names and colors them when writing to a terminal."""

    def __init__(self, fmt: str, datefmt: str | None = None, use_color: bool = True) -> None:
        super().__init__(fmt, datefmt)
        self._use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        padded = f"{levelname:<8}"
        if self._use_color:
            padded = f"{_LEVEL_COLORS.get(levelname, '')}{padded}{_RESET}"
        record.levelname = padded
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def _console_handler(level: int) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(ContextFilter())
    handler.setFormatter(
        _ColorFormatter(CONSOLE_FMT, datefmt="%H:%M:%S", use_color=sys.stderr.isatty())
    )
    return handler


def _file_handler(log_dir: Path) -> logging.Handler:
    """Return a queue handler feeding ``<log_dir>/scheduler.log`` via a listener thread."""
    global _queue_listener  # noqa: PLW0603
    log_dir.mkdir(parents=True, exist_ok=True)
    rotating = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    rotating.setFormatter(logging.Formatter(FILE_FMT, datefmt="%Y-%m-%d %H:%M:%S"))

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue()
    handler = QueueHandler(log_queue)
    handler.addFilter(ContextFilter())
    _queue_listener = QueueListener(log_queue, rotating)
    _queue_listener.start()
    return handler


def setup_logging(
    level: int = logging.INFO,
    verbose: bool = False,
    log_dir: Path | None = None,
) -> None:
    """Replace the root handlers with a console handler and, with *log_dir*, a file.

    *verbose* forces DEBUG. The file always records DEBUG and above of what
    reaches the root logger.
    """
    if verbose:
        level = logging.DEBUG

    _stop_queue_listener()
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    # No stderr when running as a Windows service under pythonw.exe.
    if sys.stderr is not None:
        root.addHandler(_console_handler(level))
    if log_dir is not None:
        root.addHandler(_file_handler(log_dir))

    # Slow-callback warnings from asyncio debug mode are noise for schedules.
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logger.debug("Logging initialized (level=%s)", logging.getLevelName(level))


def setup_logging_from_config(
    config: SchedulerConfig,
    paths: PlutonPaths,
    *,
    verbose: bool = False,
) -> None:
    """Configure logging for a host process: ``config.log_level`` plus ``logs/scheduler.log``."""
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    setup_logging(level=level, verbose=verbose, log_dir=paths.logs_dir)

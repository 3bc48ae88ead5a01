"""Central path resolution for the data directory layout.

Every path the scheduler needs is either a field or property of ``PlutonPaths``.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path

_APP_NAME = "Pluton"
_DOCKER_DATA_DIR = Path("/data")


@dataclass(frozen=True)
class PlutonPaths:
    """Resolved, immutable paths derived from ``data_dir``."""

    data_dir: Path

    @property
    def config_dir(self) -> Path:
        return self.data_dir / "config"

    @property
    def config_path(self) -> Path:
        return self.config_dir / "scheduler.json"

    @property
    def schedules_path(self) -> Path:
        return self.data_dir / "schedules.json"

    @property
    def logs_dir(self) -> Path:
        return self.data_dir / "logs"


def _platform_data_dir() -> Path:
    if sys.platform == "win32":
        return Path(os.environ.get("PROGRAMDATA", "C:\\ProgramData")) / _APP_NAME
    return Path("/var/lib") / _APP_NAME.lower()


def resolve_paths(data_dir: str | Path | None = None) -> PlutonPaths:
    """Build PlutonPaths from an explicit value, env vars, or defaults.

    Resolution order:
    1. *data_dir* argument
    2. ``/data`` when ``IS_DOCKER=true``
    3. ``$PLUTON_DATA_DIR``
    4. ``/var/lib/pluton`` (POSIX) or ``%PROGRAMDATA%\\Pluton`` (Windows)
    """
    if data_dir is not None:
        base = Path(data_dir)
    elif os.environ.get("IS_DOCKER", "").lower() == "true":
        base = _DOCKER_DATA_DIR
    elif os.environ.get("PLUTON_DATA_DIR"):
        base = Path(os.environ["PLUTON_DATA_DIR"])
    else:
        base = _platform_data_dir()
    return PlutonPaths(data_dir=base.expanduser().resolve())

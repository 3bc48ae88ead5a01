"""Scheduler configuration and timezone resolution."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ValidationError

from pluton_scheduler.errors import ConfigError
from pluton_scheduler.paths import PlutonPaths

logger = logging.getLogger(__name__)


class SchedulerConfig(BaseModel):
    """Top-level configuration loaded from ``config/scheduler.json``."""

    log_level: str = "INFO"
    timezone: str = ""
    # Empty means ``<data_dir>/schedules.json``.
    schedule_file: str = ""
    # False restores the fail-fast policy: the first bad record aborts restore.
    restore_skip_invalid: bool = True

    def schedules_path(self, paths: PlutonPaths) -> Path:
        """Return the store path, honouring the ``schedule_file`` override."""
        if self.schedule_file:
            return Path(self.schedule_file).expanduser()
        return paths.schedules_path


def deep_merge_config(
    user: dict[str, object],
    defaults: dict[str, object],
) -> tuple[dict[str, object], bool]:
    """Recursively merge *defaults* into *user*, preserving user values.

    Returns ``(merged_dict, changed)`` where *changed* is True when new keys were added.
    """
    result: dict[str, object] = dict(user)
    changed = False
    new_keys = 0
    for key, default_val in defaults.items():
        if key not in result:
            result[key] = default_val
            changed = True
            new_keys += 1
        elif isinstance(default_val, dict) and isinstance(result[key], dict):
            sub_merged, sub_changed = deep_merge_config(
                result[key],  # type: ignore[arg-type]
                default_val,
            )
            result[key] = sub_merged
            changed = changed or sub_changed
    if new_keys:
        logger.info("Config deep-merge: %d new keys added", new_keys)
    return result, changed


def _write_json(path: Path, data: dict[str, object]) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    except OSError as exc:
        msg = f"Failed to write config at {path}: {exc}"
        raise ConfigError(msg) from exc


def load_config(paths: PlutonPaths) -> SchedulerConfig:
    """Load, auto-create, and smart-merge the scheduler config.

    On first start the file is created from the pydantic defaults. On every
    load it is deep-merged with the current defaults so new fields are added
    without touching user settings.
    """
    config_path = paths.config_path
    defaults = SchedulerConfig().model_dump(mode="json")

    if not config_path.exists():
        _write_json(config_path, defaults)
        logger.info("Created default config at %s", config_path)
        return SchedulerConfig()

    try:
        user_data = json.loads(config_path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as exc:
        msg = f"Failed to read config at {config_path}: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(user_data, dict):
        msg = f"Config at {config_path} must be a JSON object"
        raise ConfigError(msg)

    merged, changed = deep_merge_config(user_data, defaults)
    if changed:
        _write_json(config_path, merged)
        logger.info("Extended config with new default fields")

    try:
        return SchedulerConfig.model_validate(merged)
    except ValidationError as exc:
        msg = f"Invalid config at {config_path}: {exc}"
        raise ConfigError(msg) from exc


def resolve_timezone(configured: str = "") -> ZoneInfo:
    """Resolve timezone: config value -> ``TZ`` -> host system -> UTC.

    Invalid or empty *configured* values fall through to the host OS
    timezone, then to UTC as last resort.
    """
    trimmed = configured.strip()
    if trimmed:
        try:
            return ZoneInfo(trimmed)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Invalid timezone '%s', falling back to host/UTC", trimmed)

    tz_env = os.environ.get("TZ", "").strip()
    if tz_env:
        try:
            return ZoneInfo(tz_env)
        except (ZoneInfoNotFoundError, ValueError):
            pass

    localtime = Path("/etc/localtime")
    if localtime.is_symlink():
        target = str(localtime.resolve())
        # /usr/share/zoneinfo/Europe/Berlin -> Europe/Berlin
        marker = "/zoneinfo/"
        idx = target.find(marker)
        if idx != -1:
            try:
                return ZoneInfo(target[idx + len(marker) :])
            except (ZoneInfoNotFoundError, ValueError):
                pass

    return ZoneInfo("UTC")

"""Entry point: python -m pluton_scheduler."""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from zoneinfo import ZoneInfo

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from pluton_scheduler.config import SchedulerConfig, load_config, resolve_timezone
from pluton_scheduler.errors import ConfigError, InvalidExpressionError, StoreError
from pluton_scheduler.log_context import set_log_context
from pluton_scheduler.logging_config import setup_logging
from pluton_scheduler.paths import PlutonPaths, resolve_paths
from pluton_scheduler.scheduling.store import ScheduleStore, StoredSchedule
from pluton_scheduler.scheduling.trigger import iter_fire_times, next_fire_time

logger = logging.getLogger(__name__)

_console = Console()

PREVIEW_COUNT = 5


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load(paths: PlutonPaths) -> tuple[SchedulerConfig, list[StoredSchedule]] | None:
    """Load config and stored schedules, printing a panel on failure."""
    try:
        config = load_config(paths)
        records = ScheduleStore(config.schedules_path(paths)).load()
    except (ConfigError, StoreError) as exc:
        _console.print(
            Panel(str(exc), title="[bold red]Error[/bold red]", border_style="red", padding=(1, 2))
        )
        return None
    return config, records


def _format_next_run(expression: str, tz: ZoneInfo, *, active: bool) -> str:
    if not active:
        return "[dim]paused[/dim]"
    try:
        return next_fire_time(expression, tz=tz).strftime("%Y-%m-%d %H:%M %Z")
    except InvalidExpressionError:
        return "[red]invalid[/red]"


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def _print_usage() -> None:
    """Print the command table."""
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold green", min_width=32)
    table.add_column()
    table.add_row("pluton-scheduler status", "Show data paths and schedule counts")
    table.add_row("pluton-scheduler list", "List stored schedules with their next run")
    table.add_row("pluton-scheduler preview <cron>", "Show the next fire times of an expression")
    table.add_row("pluton-scheduler help", "Show this message")
    table.add_row("-v, --verbose", "Verbose logging output")
    _console.print(
        Panel(table, title="[bold]Commands[/bold]", border_style="blue", padding=(1, 0)),
    )


def _cmd_status(paths: PlutonPaths) -> int:
    """Print paths, timezone and per-type schedule counts."""
    loaded = _load(paths)
    if loaded is None:
        return 1
    config, records = loaded
    counts: dict[str, int] = {}
    for record in records:
        counts[record.schedule_type] = counts.get(record.schedule_type, 0) + 1
    paused = sum(1 for r in records if r.options.get("isActive") is False)

    lines = [
        f"Schedules: [cyan]{len(records)}[/cyan] ({paused} paused)",
    ]
    lines.extend(f"  {kind}: {count}" for kind, count in sorted(counts.items()))
    lines.append(f"Timezone:  [cyan]{resolve_timezone(config.timezone).key}[/cyan]")
    lines.append("")
    lines.append("[bold]Paths:[/bold]")
    lines.append(f"  Data:       [cyan]{paths.data_dir}[/cyan]")
    lines.append(f"  Config:     [cyan]{paths.config_path}[/cyan]")
    lines.append(f"  Schedules:  [cyan]{config.schedules_path(paths)}[/cyan]")
    lines.append(f"  Logs:       [cyan]{paths.logs_dir}[/cyan]")
    _console.print(
        Panel("\n".join(lines), title="[bold]Status[/bold]", border_style="green", padding=(1, 2)),
    )
    return 0


def _cmd_list(paths: PlutonPaths) -> int:
    """Print every stored schedule as a table row."""
    loaded = _load(paths)
    if loaded is None:
        return 1
    config, records = loaded
    if not records:
        _console.print("[dim]No schedules stored.[/dim]")
        return 0

    tz = resolve_timezone(config.timezone)
    table = Table(title=f"Schedules ({len(records)})")
    table.add_column("ID", style="bold")
    table.add_column("Type", style="cyan")
    table.add_column("Cron")
    table.add_column("Next run")
    for record in records:
        active = record.options.get("isActive", True) is not False
        table.add_row(
            record.id,
            record.schedule_type,
            record.cron_expression,
            _format_next_run(record.cron_expression, tz, active=active),
        )
    _console.print(table)
    return 0


def _cmd_preview(paths: PlutonPaths, expression: str | None) -> int:
    """Print the next fire times of *expression*."""
    if not expression:
        _console.print("[bold yellow]Usage: pluton-scheduler preview '<cron>'[/bold yellow]")
        return 2
    loaded = _load(paths)
    if loaded is None:
        return 1
    config, _ = loaded
    tz = resolve_timezone(config.timezone)

    times: list[datetime] = []
    try:
        for fire_time in iter_fire_times(expression, tz=tz):
            times.append(fire_time)
            if len(times) >= PREVIEW_COUNT:
                break
    except InvalidExpressionError as exc:
        _console.print(f"[bold red]{exc}[/bold red]")
        return 1

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="dim")
    table.add_column(style="cyan")
    for index, fire_time in enumerate(times, start=1):
        table.add_row(str(index), fire_time.strftime("%a %Y-%m-%d %H:%M %Z"))
    _console.print(
        Panel(table, title=f"[bold]{expression}[/bold]", border_style="blue", padding=(1, 1)),
    )
    return 0


def _positional(args: list[str]) -> list[str]:
    return [a for a in args if not a.startswith("-")]


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    args = sys.argv[1:] if argv is None else argv
    verbose = "--verbose" in args or "-v" in args
    positional = _positional(args)
    command = positional[0] if positional else "help"
    if "--help" in args or "-h" in args:
        command = "help"

    setup_logging(level=logging.WARNING, verbose=verbose)
    set_log_context(operation="cli")
    paths = resolve_paths()

    if command == "status":
        return _cmd_status(paths)
    if command == "list":
        return _cmd_list(paths)
    if command == "preview":
        return _cmd_preview(paths, " ".join(positional[1:]) or None)
    if command != "help":
        _console.print(f"[bold yellow]Unknown command: {command}[/bold yellow]")
    _print_usage()
    return 0 if command == "help" else 2


if __name__ == "__main__":
    sys.exit(main())

"""Plan interval settings -> cron expressions and human-readable labels."""

from __future__ import annotations

import re

from pydantic import BaseModel


_TIME_RE = re.compile(r"(\d+):(\d+)\s*([AaPp][Mm])")

_DAY_NUMBERS: dict[str, int] = {
    "sun": 0,
    "mon": 1,
    "tue": 2,
    "wed": 3,
    "thu": 4,
    "fri": 5,
    "sat": 6,
}

_DAY_NAMES: dict[str, str] = {
    "sun": "Sunday",
    "mon": "Monday",
    "tue": "Tuesday",
    "wed": "Wednesday",
    "thu": "Thursday",
    "fri": "Friday",
    "sat": "Saturday",
}

_MONTH_DAYS: dict[str, str] = {"first": "1", "middle": "15", "last": "L"}

_MONTH_LABELS: dict[str, str] = {
    "first": "Runs Once at the Start of Every Month",
    "middle": "Runs Once in the Middle of Every Month",
    "last": "Runs Once at the End of Every Month",
}


class PlanInterval(BaseModel):
    """How often a plan runs, as entered in the plan settings.

    ``time`` is a 12-hour clock string like ``"2:30PM"``. ``days`` is a
    comma-separated weekday list (``"sun,tue"``) for weekly/days intervals,
    or ``first``/``middle``/``last`` for monthly ones.
    """

    type: str
    minutes: int | str | None = None
    hours: int | str | None = None
    time: str | None = None
    days: str | None = None


def _parse_time(value: str | None) -> tuple[int, int]:
    """Return ``(hour, minute)`` on a 24-hour clock; midnight when unparsable."""
    if not value:
        return 0, 0
    match = _TIME_RE.search(value)
    if match is None:
        return 0, 0
    hour, minute = int(match.group(1)) % 12, int(match.group(2))
    if match.group(3).lower() == "pm":
        hour += 12
    return hour, minute


def _weekday_numbers(days: str) -> str:
    names = [d.strip().lower() for d in days.split(",")]
    numbers = [str(_DAY_NUMBERS[n]) for n in names if n in _DAY_NUMBERS]
    return ",".join(numbers) or "0"


def interval_to_cron(interval: PlanInterval) -> str:
    """Convert *interval* to a 5-field cron expression.

    >>> interval_to_cron(PlanInterval(type="hourly"))
    '0 * * * *'
    >>> interval_to_cron(PlanInterval(type="daily", time="2:00PM"))
    '0 14 * * *'
    """
    hour, minute = _parse_time(interval.time)
    kind = interval.type

    if kind == "hourly":
        return "0 * * * *"
    if kind == "hours":
        return f"0 */{int(interval.hours or 1)} * * *"
    if kind == "minutes":
        return f"*/{int(interval.minutes or 5)} * * * *"
    if kind == "daily":
        return f"{minute} {hour} * * *"
    if kind in ("weekly", "days"):
        return f"{minute} {hour} * * {_weekday_numbers(interval.days or 'sun')}"
    if kind == "monthly":
        day = _MONTH_DAYS.get(interval.days or "", "1")
        return f"{minute} {hour} {day} * *"
    return "0 0 * * *"


def interval_label(interval: PlanInterval) -> str:
    """Describe *interval* for display, e.g. ``"Runs Every 6 Hours"``."""
    kind = interval.type

    if kind == "hourly":
        return "Runs Every Hour"
    if kind == "hours":
        hours = int(interval.hours or 1)
        return "Runs Every Hour" if hours == 1 else f"Runs Every {hours} Hours"
    if kind == "minutes":
        minutes = int(interval.minutes or 5)
        return "Runs Every Minute" if minutes == 1 else f"Runs Every {minutes} Minutes"
    if kind == "daily":
        return "Runs Once Daily"
    if kind in ("weekly", "days"):
        days = [d.strip() for d in (interval.days or "").split(",") if d.strip()]
        if len(days) == 7:
            return "Runs Every Day"
        if len(days) == 1:
            name = _DAY_NAMES.get(days[0].lower(), days[0])
            return f"Runs Once Per Week on {name}"
        return f"Runs {len(days)} Times Per Week"
    if kind == "monthly":
        return _MONTH_LABELS.get(interval.days or "", "Runs Once Per Month")
    return "Custom Schedule"

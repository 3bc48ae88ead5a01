"""Project-level exception hierarchy."""


class PlutonError(Exception):
    """Base for all pluton-scheduler exceptions."""


class ScheduleError(PlutonError):
    """Schedule registration or mutation failed."""


class InvalidExpressionError(ScheduleError):
    """Cron expression rejected by the trigger engine."""


class StoreError(PlutonError):
    """Schedule store could not be read or written."""


class ConfigError(PlutonError):
    """Configuration file could not be loaded."""

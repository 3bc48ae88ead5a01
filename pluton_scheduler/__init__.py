"""Pluton scheduler: persistent cron registry for backup and prune plans."""

__version__ = "0.1.0"

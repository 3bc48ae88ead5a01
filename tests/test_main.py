"""Tests for the pluton-scheduler command line."""

from __future__ import annotations

import contextvars
import json
import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path

import pytest
import time_machine

from pluton_scheduler.__main__ import main


@pytest.fixture(autouse=True)
def data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    monkeypatch.delenv("IS_DOCKER", raising=False)
    monkeypatch.setenv("PLUTON_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("TZ", "UTC")
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield tmp_path
    root.handlers[:] = handlers
    root.setLevel(level)


def _run(*argv: str) -> int:
    # main() sets the cli log context; keep it out of the test's context.
    return contextvars.copy_context().run(main, list(argv))


def _write_schedules(data_dir: Path, records: list[dict[str, object]]) -> None:
    (data_dir / "schedules.json").write_text(json.dumps(records), encoding="utf-8")


class TestHelp:
    def test_no_arguments_prints_usage(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run() == 0
        out = capsys.readouterr().out
        assert "pluton-scheduler preview" in out

    def test_help_flag(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("list", "--help") == 0
        assert "Commands" in capsys.readouterr().out

    def test_unknown_command(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("frobnicate") == 2
        out = capsys.readouterr().out
        assert "Unknown command: frobnicate" in out
        assert "Commands" in out


class TestStatus:
    def test_creates_config_and_reports_counts(
        self, data_dir: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        _write_schedules(
            data_dir,
            [
                {
                    "id": "plan-1",
                    "scheduleType": "backup",
                    "cronExpression": "0 3 * * *",
                    "options": {"isActive": False},
                },
                {
                    "id": "plan-1",
                    "scheduleType": "prune",
                    "cronExpression": "0 4 * * *",
                    "options": {},
                },
            ],
        )

        assert _run("status") == 0

        out = capsys.readouterr().out
        assert "Schedules: 2 (1 paused)" in out
        assert "backup: 1" in out
        assert "prune: 1" in out
        assert (data_dir / "config" / "scheduler.json").exists()

    def test_broken_config(self, data_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        (data_dir / "config").mkdir()
        (data_dir / "config" / "scheduler.json").write_text("{oops", encoding="utf-8")

        assert _run("status") == 1
        assert "Error" in capsys.readouterr().out

    @pytest.mark.parametrize("command", [("status",), ("list",), ("preview", "* * * * *")])
    def test_unusable_data_dir(
        self,
        command: tuple[str, ...],
        tmp_path: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        monkeypatch.setenv("PLUTON_DATA_DIR", str(blocker / "data"))

        assert _run(*command) == 1
        assert "Failed to write config" in capsys.readouterr().out


class TestList:
    def test_empty(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("list") == 0
        assert "No schedules stored." in capsys.readouterr().out

    def test_rows(self, data_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        _write_schedules(
            data_dir,
            [
                {
                    "id": "plan-1",
                    "scheduleType": "backup",
                    "cronExpression": "0 3 * * *",
                    "options": {"isActive": True},
                },
                {
                    "id": "plan-2",
                    "scheduleType": "backup",
                    "cronExpression": "0 5 * * *",
                    "options": {"isActive": False},
                },
                {
                    "id": "plan-3",
                    "scheduleType": "prune",
                    "cronExpression": "99 * * * *",
                    "options": {},
                },
            ],
        )

        with time_machine.travel(datetime(2025, 1, 1, 1, 0, tzinfo=UTC), tick=False):
            assert _run("list") == 0

        out = capsys.readouterr().out
        assert "Schedules (3)" in out
        assert "2025-01-01 03:00 UTC" in out
        assert "paused" in out
        assert "invalid" in out

    def test_corrupt_store(self, data_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        (data_dir / "schedules.json").write_text("not json", encoding="utf-8")
        assert _run("list") == 1
        assert "Corrupt schedule file" in capsys.readouterr().out


class TestPreview:
    def test_next_fire_times(self, capsys: pytest.CaptureFixture[str]) -> None:
        with time_machine.travel(datetime(2025, 1, 1, 10, 7, tzinfo=UTC), tick=False):
            assert _run("preview", "*/15 * * * *") == 0

        out = capsys.readouterr().out
        assert "Wed 2025-01-01 10:15 UTC" in out
        assert "Wed 2025-01-01 11:15 UTC" in out
        assert "11:30" not in out

    def test_unquoted_fields_are_joined(self, capsys: pytest.CaptureFixture[str]) -> None:
        with time_machine.travel(datetime(2025, 1, 1, 10, 7, tzinfo=UTC), tick=False):
            assert _run("preview", "0", "3", "*", "*", "*") == 0
        assert "Thu 2025-01-02 03:00 UTC" in capsys.readouterr().out

    def test_invalid_expression(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("preview", "61 * * * *") == 1
        assert "Invalid cron expression" in capsys.readouterr().out

    def test_missing_expression(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert _run("preview") == 2
        assert "Usage" in capsys.readouterr().out

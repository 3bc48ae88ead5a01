"""Tests for the JSON schedule store."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from unittest.mock import patch

import pytest

from pluton_scheduler.errors import StoreError
from pluton_scheduler.scheduling.store import ScheduleStore, StoredSchedule


def _sample() -> list[StoredSchedule]:
    return [
        StoredSchedule("plan-1", "backup", "0 3 * * *", {"isActive": True, "title": "Docs"}),
        StoredSchedule("plan-1", "prune", "0 4 * * 0", {"isActive": False}),
    ]


class TestLoad:
    def test_missing_file_is_empty(self, schedules_path: Path) -> None:
        assert ScheduleStore(schedules_path).load() == []

    def test_reads_camel_case_records(self, schedules_path: Path) -> None:
        schedules_path.parent.mkdir(parents=True)
        schedules_path.write_text(
            json.dumps(
                [
                    {
                        "id": "plan-1",
                        "scheduleType": "backup",
                        "cronExpression": "0 3 * * *",
                        "options": {"isActive": True, "extra": [1, 2]},
                        "ignored": "field",
                    }
                ]
            ),
            encoding="utf-8",
        )

        (record,) = ScheduleStore(schedules_path).load()
        assert record == StoredSchedule(
            "plan-1", "backup", "0 3 * * *", {"isActive": True, "extra": [1, 2]}
        )

    def test_missing_options_default_to_empty(self, schedules_path: Path) -> None:
        schedules_path.parent.mkdir(parents=True)
        schedules_path.write_text(
            json.dumps([{"id": "a", "scheduleType": "backup", "cronExpression": "* * * * *"}]),
            encoding="utf-8",
        )
        (record,) = ScheduleStore(schedules_path).load()
        assert record.options == {}

    def test_malformed_records_are_skipped(
        self, schedules_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        schedules_path.parent.mkdir(parents=True)
        schedules_path.write_text(
            json.dumps(
                [
                    {"id": "a", "scheduleType": "backup", "cronExpression": "* * * * *"},
                    {"id": "b", "cronExpression": "* * * * *"},
                    "not a record",
                    {"id": "c", "scheduleType": "x", "cronExpression": "* * * * *", "options": 3},
                ]
            ),
            encoding="utf-8",
        )
        with caplog.at_level(logging.WARNING):
            records = ScheduleStore(schedules_path).load()

        assert [r.id for r in records] == ["a"]
        assert caplog.text.count("Skipping malformed schedule record") == 3

    def test_invalid_json_raises(self, schedules_path: Path) -> None:
        schedules_path.parent.mkdir(parents=True)
        schedules_path.write_text("[{", encoding="utf-8")
        with pytest.raises(StoreError, match="Corrupt"):
            ScheduleStore(schedules_path).load()

    def test_non_list_raises(self, schedules_path: Path) -> None:
        schedules_path.parent.mkdir(parents=True)
        schedules_path.write_text('{"id": "plan-1"}', encoding="utf-8")
        with pytest.raises(StoreError, match="JSON array"):
            ScheduleStore(schedules_path).load()

    def test_unreadable_path_raises(self, tmp_path: Path) -> None:
        directory = tmp_path / "schedules.json"
        directory.mkdir()
        with pytest.raises(StoreError, match="Cannot read"):
            ScheduleStore(directory).load()


class TestSave:
    def test_creates_parent_and_round_trips(self, schedules_path: Path) -> None:
        store = ScheduleStore(schedules_path)
        store.save(_sample())

        assert store.load() == _sample()
        text = schedules_path.read_text(encoding="utf-8")
        assert text.endswith("\n")
        assert json.loads(text)[0] == {
            "id": "plan-1",
            "scheduleType": "backup",
            "cronExpression": "0 3 * * *",
            "options": {"isActive": True, "title": "Docs"},
        }

    def test_overwrites_previous_content(self, schedules_path: Path) -> None:
        store = ScheduleStore(schedules_path)
        store.save(_sample())
        store.save([])
        assert json.loads(schedules_path.read_text(encoding="utf-8")) == []

    def test_no_temp_files_left(self, schedules_path: Path) -> None:
        ScheduleStore(schedules_path).save(_sample())
        assert [p.name for p in schedules_path.parent.iterdir()] == ["schedules.json"]

    def test_failed_rename_keeps_old_file(self, schedules_path: Path) -> None:
        store = ScheduleStore(schedules_path)
        store.save(_sample())
        before = schedules_path.read_text(encoding="utf-8")

        with (
            patch.object(Path, "replace", side_effect=OSError("disk full")),
            pytest.raises(StoreError, match="disk full"),
        ):
            store.save([])

        assert schedules_path.read_text(encoding="utf-8") == before
        assert [p.name for p in schedules_path.parent.iterdir()] == ["schedules.json"]

    def test_unwritable_parent_raises(self, tmp_path: Path) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        with pytest.raises(StoreError, match="Cannot write"):
            ScheduleStore(blocker / "schedules.json").save(_sample())

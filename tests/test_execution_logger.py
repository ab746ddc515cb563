"""Tests for phone_pilot.core.execution_logger."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from phone_pilot.core.execution_logger import ExecutionLogger


def _logged_run() -> ExecutionLogger:
    log = ExecutionLogger()
    log.start("Open WeChat")
    log.add_step(1, "launch", "Launch app: 微信", "need the app", True)
    log.add_step(2, "none", "", "hmm", False, "Failed to parse action")
    log.end("max_steps", "Max steps (2) reached")
    return log


class TestRecording:
    """Tests for start / add_step / end."""

    def test_steps_in_order(self) -> None:
        steps = _logged_run().get_steps()
        assert [s.step_number for s in steps] == [1, 2]
        assert steps[0].action == "launch"
        assert steps[1].message == "Failed to parse action"

    def test_get_steps_returns_copy(self) -> None:
        log = _logged_run()
        log.get_steps().clear()
        assert len(log) == 2

    def test_start_clears_previous_steps(self) -> None:
        log = _logged_run()
        log.start("again")
        assert log.get_steps() == []
        assert log.end_timestamp == 0.0

    def test_timestamps_and_duration(self) -> None:
        log = _logged_run()
        assert log.start_timestamp > 0
        assert log.end_timestamp >= log.start_timestamp
        assert log.duration_ms >= 0.0

    def test_duration_zero_before_end(self) -> None:
        log = ExecutionLogger()
        log.start("t")
        assert log.duration_ms == 0.0

    def test_reset(self) -> None:
        log = _logged_run()
        log.reset()
        assert len(log) == 0
        assert log.start_timestamp == 0.0
        assert log.metadata()["task_description"] == ""


class TestSave:
    """Tests for save / load_steps."""

    def test_writes_layout(self, tmp_path: Path) -> None:
        run_dir = _logged_run().save(tmp_path, run_id="run_test")
        assert run_dir == tmp_path / "run_test"
        assert (run_dir / "steps.jsonl").exists()
        assert (run_dir / "metadata.json").exists()

    def test_metadata_content(self, tmp_path: Path) -> None:
        run_dir = _logged_run().save(tmp_path, run_id="r")
        meta = json.loads((run_dir / "metadata.json").read_text(encoding="utf-8"))
        assert meta["task_description"] == "Open WeChat"
        assert meta["step_count"] == 2
        assert meta["status"] == "max_steps"
        assert meta["final_message"] == "Max steps (2) reached"

    def test_steps_round_trip(self, tmp_path: Path) -> None:
        log = _logged_run()
        run_dir = log.save(tmp_path, run_id="r")
        assert ExecutionLogger.load_steps(run_dir) == log.get_steps()

    def test_cjk_written_unescaped(self, tmp_path: Path) -> None:
        run_dir = _logged_run().save(tmp_path, run_id="r")
        assert "微信" in (run_dir / "steps.jsonl").read_text(encoding="utf-8")

    def test_generated_run_id(self, tmp_path: Path) -> None:
        run_dir = _logged_run().save(tmp_path)
        assert run_dir.name.startswith("run_")

    def test_same_run_id_never_overwritten(self, tmp_path: Path) -> None:
        first = _logged_run().save(tmp_path, run_id="r")
        second_log = ExecutionLogger()
        second_log.start("Open Settings")
        second_log.end("finished", "done")
        second = second_log.save(tmp_path, run_id="r")
        third = second_log.save(tmp_path, run_id="r")

        assert first.name == "r"
        assert second.name == "r_1"
        assert third.name == "r_2"
        meta = json.loads((first / "metadata.json").read_text(encoding="utf-8"))
        assert meta["task_description"] == "Open WeChat"
        assert len(ExecutionLogger.load_steps(first)) == 2

    def test_runs_in_same_second_get_separate_dirs(self, tmp_path: Path) -> None:
        log = _logged_run()
        first = log.save(tmp_path)
        second = log.save(tmp_path)
        assert first != second
        assert second.name == f"{first.name}_1"

    def test_load_missing(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            ExecutionLogger.load_steps(tmp_path)

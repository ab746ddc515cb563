"""Tests for phone_pilot.main: CLI parsing, settings overrides, exit codes.

The adb device and the HTTP model client are patched out, so the whole
CLI path runs in-process against doubles.
"""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from phone_pilot.config.settings import Settings
from phone_pilot.main import PhoneAgent, _build_parser, _settings_from_args, build_agent, main
from phone_pilot.models.task import OutcomeStatus
from phone_pilot.platform.interface import DeviceInterface, Screenshot

# ------------------------------------------------------------------
# Test doubles
# ------------------------------------------------------------------


class StubDevice(DeviceInterface):
    """Always-succeeding device with a toggleable ``available`` flag."""

    def __init__(self, available: bool = True) -> None:
        self.available = available

    def capture_screenshot(self) -> Screenshot:
        return Screenshot.blank(8, 16)

    def get_screen_size(self) -> tuple[int, int]:
        return (1080, 2400)

    def tap(self, x: int, y: int) -> bool:
        return True

    def swipe(self, start_x, start_y, end_x, end_y, duration_ms=300) -> bool:
        return True

    def long_press(self, x: int, y: int, duration_ms: int = 1000) -> bool:
        return True

    def type_text(self, text: str) -> bool:
        return True

    def press_back(self) -> bool:
        return True

    def press_home(self) -> bool:
        return True

    def launch_app(self, package: str) -> bool:
        return True

    def get_current_app_name(self) -> str:
        return "设置"

    def is_available(self) -> bool:
        return self.available


def _model_returning(reply: str) -> MagicMock:
    model = MagicMock()
    model.chat_completion.return_value = reply
    model.model_info = "Model: stub, Endpoint: http://stub"
    return model


# ==================================================================
# Test classes
# ==================================================================


class TestSettingsFromArgs:
    """CLI overrides layered on top of defaults or a config file."""

    def test_defaults(self) -> None:
        args = _build_parser().parse_args(["--task", "t"])
        assert _settings_from_args(args) == Settings()

    def test_overrides(self) -> None:
        args = _build_parser().parse_args([
            "-t", "t",
            "--base-url", "http://host:9000/v1",
            "--model", "m",
            "-s", "emulator-5554",
            "--max-steps", "7",
            "--lang", "en",
            "--log-dir", "logs",
        ])
        s = _settings_from_args(args)
        assert s.model_base_url == "http://host:9000/v1"
        assert s.model_name == "m"
        assert s.adb_serial == "emulator-5554"
        assert s.max_steps == 7
        assert s.lang == "en"
        assert s.log_dir == "logs"

    def test_config_file_then_flags(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"max_steps": 12, "lang": "en"}))
        args = _build_parser().parse_args(["-t", "t", "-c", str(path), "--max-steps", "3"])
        s = _settings_from_args(args)
        assert s.max_steps == 3
        assert s.lang == "en"

    def test_quiet_turns_off_step_logging(self) -> None:
        args = _build_parser().parse_args(["-t", "t", "--quiet"])
        assert _settings_from_args(args).verbose is False

    def test_verbose_overrides_config_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"verbose": False}))
        args = _build_parser().parse_args(["-t", "t", "-c", str(path), "-v"])
        assert _settings_from_args(args).verbose is True

    def test_verbose_and_quiet_exclusive(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["-t", "t", "-v", "-q"])

    def test_task_required(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args([])

    def test_lang_choices(self) -> None:
        with pytest.raises(SystemExit):
            _build_parser().parse_args(["-t", "t", "--lang", "fr"])


class TestBuildAgent:
    """Factory wiring."""

    def test_components_wired(self) -> None:
        device = StubDevice()
        agent = build_agent(api_key="k", settings=Settings(lang="en"), device=device)
        assert isinstance(agent, PhoneAgent)
        assert agent.device is device
        assert agent.orchestrator.settings.lang == "en"
        assert agent.model.endpoint.endswith("/chat/completions")

    def test_run_task(self) -> None:
        settings = Settings(lang="en", action_delay_seconds=0.0)
        with patch(
            "phone_pilot.main.ModelClient",
            return_value=_model_returning('finish(message="done")'),
        ):
            agent = build_agent(settings=settings, device=StubDevice())
        outcome = agent.run_task("open settings")
        assert outcome.status is OutcomeStatus.FINISHED
        assert outcome.message == "done"


class TestMainExitCodes:
    """Process exit codes."""

    def test_finished_exits_zero(self, capsys: pytest.CaptureFixture[str]) -> None:
        with patch("phone_pilot.main.AdbDevice", return_value=StubDevice()), patch(
            "phone_pilot.main.ModelClient",
            return_value=_model_returning('finish(message="done")'),
        ):
            with pytest.raises(SystemExit) as exc_info:
                main(["--task", "open settings"])
        assert exc_info.value.code == 0
        out = capsys.readouterr().out
        assert "Status:     FINISHED" in out
        assert "Message:    done" in out

    def test_max_steps_exits_one(self) -> None:
        with patch("phone_pilot.main.AdbDevice", return_value=StubDevice()), patch(
            "phone_pilot.main.ModelClient",
            return_value=_model_returning('do(action="Back")'),
        ):
            with pytest.raises(SystemExit) as exc_info:
                main(["--task", "t", "--max-steps", "1"])
        assert exc_info.value.code == 1

    def test_unavailable_device_exits_one(self) -> None:
        model = _model_returning("")
        with patch(
            "phone_pilot.main.AdbDevice", return_value=StubDevice(available=False),
        ), patch("phone_pilot.main.ModelClient", return_value=model):
            with pytest.raises(SystemExit) as exc_info:
                main(["--task", "t"])
        assert exc_info.value.code == 1
        model.chat_completion.assert_not_called()

    def test_bad_config_exits_two(self, tmp_path: Path) -> None:
        path = tmp_path / "config.json"
        path.write_text("[]")
        with pytest.raises(SystemExit) as exc_info:
            main(["--task", "t", "--config", str(path)])
        assert exc_info.value.code == 2

"""Android implementation of ``DeviceInterface`` over the adb CLI.

Uses:
- ``adb exec-out screencap -p`` for screenshots, decoded with OpenCV.
- ``adb shell input ...`` for taps, swipes, key events and ASCII text.
- The ADB Keyboard IME broadcast (``ADB_INPUT_B64``) for text that
  ``input text`` cannot type (CJK and other non-ASCII characters).
- ``monkey`` to launch an app's launcher activity.
- ``dumpsys window`` to find the foreground package.
"""

from __future__ import annotations

import base64
import logging
import re
import subprocess

import cv2
import numpy as np

from phone_pilot.config.settings import Settings
from phone_pilot.core.app_registry import AppRegistry
from phone_pilot.platform.interface import DeviceInterface, Screenshot

logger = logging.getLogger(__name__)

# Key codes sent through ``input keyevent``.
KEYCODE_HOME = "KEYCODE_HOME"
KEYCODE_BACK = "KEYCODE_BACK"

_FOCUS_RE = re.compile(r"mCurrentFocus=.*?\s([A-Za-z0-9_.]+)/")
_RESUMED_RE = re.compile(
    r"(?:mResumedActivity|topResumedActivity).*?\s([A-Za-z0-9_.]+)/"
)
_SIZE_RE = re.compile(r"(Override|Physical) size:\s*(\d+)x(\d+)")

# Characters that ``input text`` passes to the shell and must escape.
_SHELL_SPECIALS = "\\\"'`$&|;<>()*?~#![]{}"


class AdbError(RuntimeError):
    """Raised when an adb command exits non-zero or times out."""


class AdbDevice(DeviceInterface):
    """Controls an Android device through the ``adb`` executable.

    Args:
        settings: Supplies ``adb_path``, ``adb_serial``, the command
            timeout, and fallback screen dimensions.
        app_registry: Used to turn the foreground package back into a
            display name.
    """

    def __init__(
        self,
        settings: Settings,
        app_registry: AppRegistry | None = None,
    ) -> None:
        self._settings = settings
        self._registry = app_registry or AppRegistry()
        self._screen_size: tuple[int, int] | None = None

    # ------------------------------------------------------------------
    # Screen
    # ------------------------------------------------------------------

    def capture_screenshot(self) -> Screenshot:
        """Capture the screen as a BGR array.

        Secure screens (banking apps, password fields) make
        ``screencap`` fail or return nothing.  A black placeholder
        flagged ``is_sensitive`` is returned instead so that the model
        can still be asked what to do next.
        """
        width, height = self.get_screen_size()
        try:
            png = self._run_bytes(["exec-out", "screencap", "-p"])
        except AdbError as exc:
            logger.error("screencap failed: %s", exc)
            return Screenshot.blank(width, height, sensitive=True)

        if not png:
            logger.warning("screencap returned no data, using placeholder")
            return Screenshot.blank(width, height, sensitive=True)

        image = cv2.imdecode(np.frombuffer(png, dtype=np.uint8), cv2.IMREAD_COLOR)
        if image is None:
            logger.warning("screencap output could not be decoded")
            return Screenshot.blank(width, height, sensitive=True)

        h, w = image.shape[:2]
        return Screenshot(image=image, width=w, height=h)

    def get_screen_size(self) -> tuple[int, int]:
        """Return the (override or physical) display size.

        The result is cached.  Falls back to the configured size when
        ``wm size`` cannot be parsed.
        """
        if self._screen_size is not None:
            return self._screen_size

        size = (self._settings.screen_width, self._settings.screen_height)
        try:
            output = self._run(["shell", "wm", "size"])
        except AdbError as exc:
            logger.warning("wm size failed, using configured size: %s", exc)
            return size

        sizes = {kind: (int(w), int(h)) for kind, w, h in _SIZE_RE.findall(output)}
        size = sizes.get("Override") or sizes.get("Physical") or size
        self._screen_size = size
        return size

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------

    def tap(self, x: int, y: int) -> bool:
        return self._shell_ok(["input", "tap", str(x), str(y)])

    def swipe(
        self,
        start_x: int,
        start_y: int,
        end_x: int,
        end_y: int,
        duration_ms: int = 300,
    ) -> bool:
        return self._shell_ok([
            "input", "swipe",
            str(start_x), str(start_y), str(end_x), str(end_y),
            str(duration_ms),
        ])

    def long_press(self, x: int, y: int, duration_ms: int = 1000) -> bool:
        # A swipe that does not move is a press-and-hold.
        return self._shell_ok([
            "input", "swipe", str(x), str(y), str(x), str(y), str(duration_ms),
        ])

    # ------------------------------------------------------------------
    # Keys & text
    # ------------------------------------------------------------------

    def type_text(self, text: str) -> bool:
        """Type *text* into the focused field.

        ASCII text goes through ``input text``.  Anything else is sent
        base64-encoded to the ADB Keyboard IME, which must be installed
        and selected on the device.
        """
        if text.isascii():
            return self._shell_ok(["input", "text", _escape_input_text(text)])

        encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
        logger.debug("Typing %d non-ASCII chars via ADB Keyboard", len(text))
        return self._shell_ok([
            "am", "broadcast", "-a", "ADB_INPUT_B64", "--es", "msg", encoded,
        ])

    def press_back(self) -> bool:
        return self._shell_ok(["input", "keyevent", KEYCODE_BACK])

    def press_home(self) -> bool:
        return self._shell_ok(["input", "keyevent", KEYCODE_HOME])

    # ------------------------------------------------------------------
    # Apps
    # ------------------------------------------------------------------

    def launch_app(self, package: str) -> bool:
        return self._shell_ok([
            "monkey", "-p", package,
            "-c", "android.intent.category.LAUNCHER", "1",
        ])

    def get_current_package(self) -> str | None:
        """Return the foreground package, or ``None`` if unknown."""
        output = self._run(["shell", "dumpsys", "window"])
        match = _FOCUS_RE.search(output)
        if match is None:
            output = self._run(["shell", "dumpsys", "activity", "activities"])
            match = _RESUMED_RE.search(output)
        return match.group(1) if match else None

    def get_current_app_name(self) -> str:
        """Return the foreground app's display name.

        Falls back to the raw package name when the registry does not
        know it, and to ``"Unknown"`` when no package can be found.
        """
        package = self.get_current_package()
        if package is None:
            return "Unknown"
        return self._registry.get_app_name(package) or package

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    def is_available(self) -> bool:
        try:
            return self._run(["get-state"]).strip() == "device"
        except (AdbError, OSError) as exc:
            logger.debug("adb get-state failed: %s", exc)
            return False

    def get_device_name(self) -> str:
        return f"adb:{self._settings.adb_serial or 'default'}"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _base_command(self) -> list[str]:
        command = [self._settings.adb_path]
        if self._settings.adb_serial:
            command += ["-s", self._settings.adb_serial]
        return command

    def _run(self, args: list[str]) -> str:
        """Run one adb command and return its stdout as text."""
        return self._run_bytes(args).decode("utf-8", errors="replace")

    def _run_bytes(self, args: list[str]) -> bytes:
        """Run one adb command and return its raw stdout.

        Args:
            args: Arguments after ``adb [-s serial]``.

        Raises:
            AdbError: On a non-zero exit status or timeout.
        """
        command = self._base_command() + args
        logger.debug("adb: %s", " ".join(args))
        try:
            completed = subprocess.run(
                command,
                capture_output=True,
                timeout=self._settings.adb_command_timeout_seconds,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise AdbError(f"adb {' '.join(args)} timed out") from exc

        if completed.returncode != 0:
            stderr = completed.stderr.decode("utf-8", errors="replace").strip()
            raise AdbError(
                f"adb {' '.join(args)} exited {completed.returncode}: {stderr}"
            )
        return completed.stdout

    def _shell_ok(self, args: list[str]) -> bool:
        """Run ``adb shell <args>`` and report success as a bool."""
        try:
            self._run(["shell", *args])
        except (AdbError, OSError) as exc:
            logger.error("adb shell %s failed: %s", args[0], exc)
            return False
        return True

    def __repr__(self) -> str:
        return f"AdbDevice(serial={self._settings.adb_serial!r})"


def _escape_input_text(text: str) -> str:
    """Escape text for ``adb shell input text``.

    Spaces become ``%s`` (the ``input`` tool's own escape) and shell
    metacharacters are backslash-escaped.
    """
    escaped = []
    for ch in text:
        if ch == " ":
            escaped.append("%s")
        elif ch in _SHELL_SPECIALS:
            escaped.append("\\" + ch)
        else:
            escaped.append(ch)
    return "".join(escaped)

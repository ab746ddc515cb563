"""Dispatch validated actions to the device.

The ``ActionExecutor`` converts an action's normalized ``[0, 999]``
coordinates to pixels, resolves app names to packages, and calls the
matching ``DeviceInterface`` method.  Each execution produces an
``ActionOutcome``; device errors never propagate to the caller.

Typical usage::

    from phone_pilot.config.settings import get_default_settings
    from phone_pilot.core.action_executor import ActionExecutor

    executor = ActionExecutor(device, get_default_settings())
    outcome = executor.execute(action, token)
    if outcome.should_finish:
        ...
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass

from phone_pilot.config.settings import Settings
from phone_pilot.core.app_registry import AppRegistry
from phone_pilot.core.cancellation import CancellationToken
from phone_pilot.models.actions import (
    Action,
    ActionKind,
    DoubleTap,
    Finish,
    Launch,
    LongPress,
    Note,
    Point,
    Swipe,
    TakeOver,
    Tap,
    TypeText,
    Wait,
)
from phone_pilot.platform.interface import DeviceInterface

logger = logging.getLogger(__name__)

# The model emits coordinates on a 0..999 grid per axis.
COORDINATE_MAX: int = 1000

_DURATION_RE = re.compile(r"(\d+)\s*(ms|millisecond)?", re.IGNORECASE)


@dataclass(frozen=True)
class ActionOutcome:
    """Outcome of dispatching one action.

    Attributes:
        success: Whether the device carried out the action.
        should_finish: Whether the task is complete.
        message: Human-readable detail, if any.
        requires_confirmation: The action needs a human decision
            (take over, interact, sensitive tap).  Distinct from a hard
            failure and never ends the task by itself.
    """

    success: bool
    should_finish: bool = False
    message: str | None = None
    requires_confirmation: bool = False


def to_pixels(normalized: int, dimension: int) -> int:
    """Convert one normalized coordinate to pixels.

    Computes ``floor(normalized / 1000 * dimension)`` in integer
    arithmetic so that the result truncates exactly.  Values outside
    ``[0, 999]`` are clamped first.

    Args:
        normalized: Coordinate on the model's 0..999 grid.
        dimension: Screen width or height in pixels.

    Returns:
        Pixel coordinate.
    """
    clamped = min(max(normalized, 0), COORDINATE_MAX - 1)
    return clamped * dimension // COORDINATE_MAX


def parse_duration_seconds(text: str | None, default: float) -> float:
    """Read a wait duration from free text.

    The first run of digits is taken as seconds (``"2 seconds"`` ->
    ``2``), or milliseconds when followed by ``ms`` (``"500ms"`` ->
    ``0.5``).  Text without digits yields *default*.
    """
    if not text:
        return default
    match = _DURATION_RE.search(text)
    if match is None:
        return default
    value = int(match.group(1))
    if match.group(2):
        return value / 1000.0
    return float(value)


class ActionExecutor:
    """Executes actions against a device.

    Args:
        device: Device-control implementation.
        settings: Supplies gesture durations and settle delays.
        app_registry: Resolves Launch app names to packages.
        screen_size: ``(width, height)`` used for coordinate
            conversion.  Queried from the device when omitted.
        sleep_fn: Sleep used when no cancellation token is supplied.
    """

    def __init__(
        self,
        device: DeviceInterface,
        settings: Settings,
        app_registry: AppRegistry | None = None,
        screen_size: tuple[int, int] | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
    ) -> None:
        self._device = device
        self._settings = settings
        self._registry = app_registry or AppRegistry()
        self._screen_size = screen_size
        self._sleep_fn = sleep_fn

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def screen_size(self) -> tuple[int, int]:
        """Screen size used for coordinate conversion."""
        if self._screen_size is None:
            try:
                self._screen_size = self._device.get_screen_size()
            except Exception as exc:
                logger.warning(
                    "Could not read screen size, using configured %dx%d: %s",
                    self._settings.screen_width,
                    self._settings.screen_height,
                    exc,
                )
                self._screen_size = (
                    self._settings.screen_width,
                    self._settings.screen_height,
                )
        return self._screen_size

    def to_screen(self, point: Point) -> tuple[int, int]:
        """Convert a normalized point to pixel coordinates."""
        width, height = self.screen_size
        return to_pixels(point.x, width), to_pixels(point.y, height)

    def execute(
        self,
        action: Action,
        token: CancellationToken | None = None,
    ) -> ActionOutcome:
        """Dispatch one action.

        Device-affecting actions are preceded by a settle delay so the
        UI has stopped moving before the gesture.  The token is checked
        again after that delay, so a stop that lands during it sends
        nothing to the device.

        Args:
            action: A validated action.
            token: Cancellation token of the running task.  Sleeps go
                through it so that a stop request interrupts them.

        Returns:
            An ``ActionOutcome`` describing the result.

        Raises:
            TaskCancelledError: If *token* is cancelled before a gesture
                is sent.
        """
        handler = self._DISPATCH.get(action.kind)
        if handler is None:
            logger.warning("Unsupported action: %s", action.kind.value)
            return ActionOutcome(
                success=False,
                message=f"Unsupported action: {action.kind.value}",
            )

        logger.info("Executing action: %s", action.kind.value)
        if action.kind in _DEVICE_KINDS:
            self._sleep(self._settings.action_delay_seconds, token)
            if token is not None:
                token.raise_if_cancelled("before gesture")
        return handler(self, action, token)

    # ------------------------------------------------------------------
    # Private handlers
    # ------------------------------------------------------------------

    def _execute_tap(
        self, action: Tap, token: CancellationToken | None,
    ) -> ActionOutcome:
        """Tap.  A tap carrying a message still runs but is flagged for
        confirmation."""
        if action.point is None:
            return self._fail("Missing element coordinates")
        x, y = self.to_screen(action.point)
        logger.debug(
            "Tap: normalized (%d, %d) -> pixels (%d, %d)",
            action.point.x, action.point.y, x, y,
        )
        outcome = self._call_device("tap", self._device.tap, x, y)
        if action.message is None:
            return outcome
        return ActionOutcome(
            success=outcome.success,
            message=action.message,
            requires_confirmation=True,
        )

    def _execute_long_press(
        self, action: LongPress, token: CancellationToken | None,
    ) -> ActionOutcome:
        if action.point is None:
            return self._fail("Missing element coordinates")
        x, y = self.to_screen(action.point)
        logger.debug("Long press: (%d, %d)", x, y)
        return self._call_device(
            "long press",
            self._device.long_press,
            x,
            y,
            self._settings.long_press_duration_ms,
        )

    def _execute_double_tap(
        self, action: DoubleTap, token: CancellationToken | None,
    ) -> ActionOutcome:
        if action.point is None:
            return self._fail("Missing element coordinates")
        x, y = self.to_screen(action.point)
        logger.debug("Double tap: (%d, %d)", x, y)
        first = self._call_device("tap", self._device.tap, x, y)
        if not first.success:
            return first
        self._sleep(self._settings.double_tap_interval_seconds, token)
        if token is not None:
            token.raise_if_cancelled("before second tap")
        return self._call_device("tap", self._device.tap, x, y)

    def _execute_type(
        self, action: TypeText, token: CancellationToken | None,
    ) -> ActionOutcome:
        if action.text is None:
            return self._fail("Missing text to type")
        logger.debug("Type: %d chars", len(action.text))
        return self._call_device("type", self._device.type_text, action.text)

    def _execute_swipe(
        self, action: Swipe, token: CancellationToken | None,
    ) -> ActionOutcome:
        if action.start is None or action.end is None:
            return self._fail("Invalid swipe coordinates")
        start_x, start_y = self.to_screen(action.start)
        end_x, end_y = self.to_screen(action.end)
        logger.debug(
            "Swipe: (%d, %d) -> (%d, %d)", start_x, start_y, end_x, end_y,
        )
        return self._call_device(
            "swipe",
            self._device.swipe,
            start_x,
            start_y,
            end_x,
            end_y,
            self._settings.swipe_duration_ms,
        )

    def _execute_launch(
        self, action: Launch, token: CancellationToken | None,
    ) -> ActionOutcome:
        if not action.app:
            return self._fail("Missing app name")
        package = self._registry.resolve(action.app)
        logger.debug("Launch: %s -> %s", action.app, package)
        return self._call_device("launch", self._device.launch_app, package)

    def _execute_back(
        self, action: Action, token: CancellationToken | None,
    ) -> ActionOutcome:
        return self._call_device("back", self._device.press_back)

    def _execute_home(
        self, action: Action, token: CancellationToken | None,
    ) -> ActionOutcome:
        return self._call_device("home", self._device.press_home)

    def _execute_wait(
        self, action: Wait, token: CancellationToken | None,
    ) -> ActionOutcome:
        seconds = parse_duration_seconds(
            action.duration, float(self._settings.default_wait_seconds),
        )
        logger.debug("Wait: %r -> %.1f s", action.duration, seconds)
        self._sleep(seconds, token)
        return ActionOutcome(success=True)

    def _execute_finish(
        self, action: Finish, token: CancellationToken | None,
    ) -> ActionOutcome:
        message = action.message or "Task completed"
        logger.info("Finish: %s", message)
        return ActionOutcome(success=True, should_finish=True, message=message)

    def _execute_note(
        self, action: Note, token: CancellationToken | None,
    ) -> ActionOutcome:
        message = action.message or "Note"
        logger.debug("Note: %s", message)
        return ActionOutcome(success=True, message=message)

    def _execute_interact(
        self, action: Action, token: CancellationToken | None,
    ) -> ActionOutcome:
        return ActionOutcome(
            success=False,
            message="User interaction required to choose an option",
            requires_confirmation=True,
        )

    def _execute_take_over(
        self, action: TakeOver, token: CancellationToken | None,
    ) -> ActionOutcome:
        message = action.message or "Manual takeover requested"
        return ActionOutcome(
            success=False,
            message=f"Take over required: {message}",
            requires_confirmation=True,
        )

    # ------------------------------------------------------------------
    # Dispatch table
    # ------------------------------------------------------------------

    _DISPATCH: dict[
        ActionKind,
        Callable[..., ActionOutcome],
    ] = {
        ActionKind.TAP: _execute_tap,
        ActionKind.LONG_PRESS: _execute_long_press,
        ActionKind.DOUBLE_TAP: _execute_double_tap,
        ActionKind.TYPE: _execute_type,
        ActionKind.SWIPE: _execute_swipe,
        ActionKind.LAUNCH: _execute_launch,
        ActionKind.BACK: _execute_back,
        ActionKind.HOME: _execute_home,
        ActionKind.WAIT: _execute_wait,
        ActionKind.FINISH: _execute_finish,
        ActionKind.NOTE: _execute_note,
        ActionKind.INTERACT: _execute_interact,
        ActionKind.TAKE_OVER: _execute_take_over,
    }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _call_device(
        self,
        label: str,
        method: Callable[..., bool],
        *args: object,
    ) -> ActionOutcome:
        """Invoke a device method, turning ``False`` and exceptions into
        a failed outcome."""
        try:
            ok = method(*args)
        except Exception as exc:
            return self._fail(f"{label} failed: {exc}")
        if not ok:
            return self._fail(f"{label} failed")
        return ActionOutcome(success=True)

    def _sleep(self, seconds: float, token: CancellationToken | None) -> None:
        if seconds <= 0:
            return
        if token is not None:
            token.sleep(seconds)
        else:
            self._sleep_fn(seconds)

    @staticmethod
    def _fail(message: str) -> ActionOutcome:
        logger.error("action failed: %s", message)
        return ActionOutcome(success=False, message=message)

    def __repr__(self) -> str:
        return f"ActionExecutor(device={self._device.get_device_name()})"


# Kinds that touch the device and get a settle delay first.
_DEVICE_KINDS: frozenset[ActionKind] = frozenset({
    ActionKind.TAP,
    ActionKind.LONG_PRESS,
    ActionKind.DOUBLE_TAP,
    ActionKind.TYPE,
    ActionKind.SWIPE,
    ActionKind.LAUNCH,
    ActionKind.BACK,
    ActionKind.HOME,
})

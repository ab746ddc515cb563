"""Abstract base class defining the contract for device control.

The agent never talks to a phone directly.  Every screenshot, gesture,
and query goes through a ``DeviceInterface`` implementation that is
injected into the orchestrator.  ``AdbDevice`` (``platform.adb``) is the
bundled implementation; tests use in-memory doubles.

All coordinates passed to a device are in physical screen pixels.
"""

from __future__ import annotations

import base64
from abc import ABC, abstractmethod
from dataclasses import dataclass

import cv2
import numpy as np
from numpy.typing import NDArray


@dataclass
class Screenshot:
    """A captured device screen.

    Attributes:
        image: Array of shape ``(H, W, C)`` in BGR colour order with
            dtype ``uint8``.
        width: Screen width in pixels.
        height: Screen height in pixels.
        is_sensitive: True when the device refused to capture a secure
            screen and ``image`` is a placeholder.
    """

    image: NDArray[np.uint8]
    width: int
    height: int
    is_sensitive: bool = False

    @classmethod
    def blank(cls, width: int, height: int, sensitive: bool = False) -> Screenshot:
        """Build an all-black placeholder screenshot."""
        return cls(
            image=np.zeros((height, width, 3), dtype=np.uint8),
            width=width,
            height=height,
            is_sensitive=sensitive,
        )

    def encode_png(self) -> bytes:
        """Encode the image as PNG bytes.

        Raises:
            RuntimeError: If OpenCV fails to encode the image.
        """
        success, buffer = cv2.imencode(".png", self.image)
        if not success:
            raise RuntimeError("cv2.imencode failed to encode screenshot as PNG")
        return bytes(buffer)

    def to_base64(self) -> str:
        """PNG-encode and base64-encode the image (no data-URI prefix)."""
        return base64.b64encode(self.encode_png()).decode("ascii")


class DeviceInterface(ABC):
    """Abstract interface for controlling one device.

    Gesture methods return ``True`` on success and ``False`` when the
    device rejected the request.  Implementations may also raise; the
    ``ActionExecutor`` treats both as a failed dispatch.  Nothing here
    retries on its own.
    """

    # ------------------------------------------------------------------
    # Screen
    # ------------------------------------------------------------------

    @abstractmethod
    def capture_screenshot(self) -> Screenshot:
        """Capture the current screen."""

    @abstractmethod
    def get_screen_size(self) -> tuple[int, int]:
        """Return ``(width, height)`` in pixels."""

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------

    @abstractmethod
    def tap(self, x: int, y: int) -> bool:
        """Tap at pixel coordinates."""

    @abstractmethod
    def swipe(
        self,
        start_x: int,
        start_y: int,
        end_x: int,
        end_y: int,
        duration_ms: int = 300,
    ) -> bool:
        """Swipe from ``(start_x, start_y)`` to ``(end_x, end_y)``.

        Args:
            start_x: Start horizontal position.
            start_y: Start vertical position.
            end_x: End horizontal position.
            end_y: End vertical position.
            duration_ms: Gesture duration in milliseconds.
        """

    @abstractmethod
    def long_press(self, x: int, y: int, duration_ms: int = 1000) -> bool:
        """Press and hold at pixel coordinates."""

    # ------------------------------------------------------------------
    # Keys & text
    # ------------------------------------------------------------------

    @abstractmethod
    def type_text(self, text: str) -> bool:
        """Type text into the focused input field."""

    @abstractmethod
    def press_back(self) -> bool:
        """Press the system Back key."""

    @abstractmethod
    def press_home(self) -> bool:
        """Press the system Home key."""

    # ------------------------------------------------------------------
    # Apps
    # ------------------------------------------------------------------

    @abstractmethod
    def launch_app(self, package: str) -> bool:
        """Launch an app by package identifier."""

    @abstractmethod
    def get_current_app_name(self) -> str:
        """Return the display name of the foreground app."""

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    @abstractmethod
    def is_available(self) -> bool:
        """Whether the device is connected and ready for commands."""

    def get_device_name(self) -> str:
        """Return a short identifier for logs.  Override in subclasses."""
        return "unknown"

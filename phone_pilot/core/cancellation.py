"""Cooperative cancellation for a running task.

The orchestrator creates one ``CancellationToken`` per run and passes
it into every call that may suspend (screenshot capture, the model
call, settle delays, Wait actions).  Cancellation is never preemptive:
it is observed only where code calls ``raise_if_cancelled`` or sleeps
through ``token.sleep``.  A gesture that is already being performed on
the device therefore always runs to completion.
"""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class TaskCancelledError(Exception):
    """Raised at a checkpoint once the run's token has been cancelled.

    Attributes:
        checkpoint: Name of the checkpoint that observed the
            cancellation (e.g. ``"before dispatch"``).
    """

    def __init__(self, checkpoint: str = "") -> None:
        self.checkpoint = checkpoint
        super().__init__(
            f"Task cancelled at {checkpoint}" if checkpoint
            else "Task cancelled"
        )


class CancellationToken:
    """Thread-safe, one-shot cancellation flag.

    Once cancelled a token stays cancelled; create a new token for the
    next run.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation.  Idempotent."""
        if not self._event.is_set():
            logger.debug("Cancellation requested")
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, checkpoint: str = "") -> None:
        """Raise ``TaskCancelledError`` if cancellation was requested.

        Args:
            checkpoint: Name of the calling checkpoint, used in the
                error and in logs.

        Raises:
            TaskCancelledError: If the token has been cancelled.
        """
        if self._event.is_set():
            logger.info("Cancellation observed at %s", checkpoint or "checkpoint")
            raise TaskCancelledError(checkpoint)

    def sleep(self, seconds: float) -> bool:
        """Sleep for *seconds*, waking early if the token is cancelled.

        Returns:
            ``True`` if the full duration elapsed, ``False`` if the
            sleep was cut short by cancellation.
        """
        if seconds <= 0:
            return not self._event.is_set()
        return not self._event.wait(seconds)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"

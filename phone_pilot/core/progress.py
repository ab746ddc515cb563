"""Progress reporting for a running task.

The orchestrator is the only writer.  Observers either poll
``ProgressPublisher.snapshot()`` from any thread or register a callback
with ``subscribe``; callbacks run synchronously on the orchestrator's
thread, so they should return quickly.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, replace

from phone_pilot.core.action_parser import describe_action
from phone_pilot.models.task import StepResult, TaskRunState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time view of a run.

    Attributes:
        state: Orchestrator lifecycle state.
        current_step: Number of the step most recently started.
        step_detail: One-line summary of the most recent step.
    """

    state: TaskRunState = TaskRunState.IDLE
    current_step: int = 0
    step_detail: str = ""


ProgressCallback = Callable[[ProgressSnapshot], None]


class ProgressPublisher:
    """Holds the latest ``ProgressSnapshot`` and notifies subscribers."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._snapshot = ProgressSnapshot()
        self._subscribers: list[ProgressCallback] = []

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register *callback* and return a function that unregisters it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return self._snapshot

    def publish(self, **changes: object) -> ProgressSnapshot:
        """Update the snapshot fields named in *changes* and notify.

        Subscriber exceptions are logged and never reach the run.
        """
        with self._lock:
            self._snapshot = replace(self._snapshot, **changes)
            snapshot = self._snapshot
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Progress subscriber %r failed", callback)
        return snapshot


def format_step_detail(step_number: int, result: StepResult) -> str:
    """Summarise a step for progress observers, e.g.
    ``"Step 3: Tap at [500, 300] (ok)"``."""
    description = describe_action(result.action) if result.action else "No action"
    status = "ok" if result.success else "failed"
    detail = f"Step {step_number}: {description} ({status})"
    if result.message and not result.success:
        detail += f" - {result.message}"
    return detail

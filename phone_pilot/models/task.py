"""Run-level data models: step results, log entries, and outcomes.

These dataclasses are shared between the StepExecutor (which produces
step results and log entries) and the TaskOrchestrator (which turns a
sequence of step results into a final outcome).  Keeping them in the
models layer avoids circular imports between core modules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from phone_pilot.models.actions import Action


class TaskRunState(Enum):
    """Lifecycle state of the orchestrator.

    Attributes:
        IDLE: No run in progress; ``run`` requests are accepted.
        RUNNING: A run holds the single-flight lock.
        TERMINATING: Stop or cancellation was requested and the run
            is unwinding.
    """

    IDLE = "idle"
    RUNNING = "running"
    TERMINATING = "terminating"


class OutcomeStatus(Enum):
    """Why a run ended.

    Attributes:
        FINISHED: A step returned a finish action.
        STOPPED: The user requested a stop.
        MAX_STEPS: The step budget ran out without a finish.
        ERROR: An unexpected exception ended the run.
        ALREADY_RUNNING: The request was rejected because another run
            held the lock.  Nothing was executed.
    """

    FINISHED = "finished"
    STOPPED = "stopped"
    MAX_STEPS = "max_steps"
    ERROR = "error"
    ALREADY_RUNNING = "already_running"


@dataclass(frozen=True)
class StepResult:
    """Result of executing one step.

    Attributes:
        success: Whether the step's action was carried out.
        finished: Whether the step ends the task.
        action: The parsed action, when parsing succeeded.  Kept on
            validation failures for diagnostics.
        thinking: Reasoning text extracted from the model reply.
        message: Human-readable detail (finish message, error text).
    """

    success: bool
    finished: bool
    action: Action | None
    thinking: str
    message: str | None = None


@dataclass(frozen=True)
class StepLogEntry:
    """One append-only record in the execution log.

    Attributes:
        step_number: 1-based step index within the run.
        timestamp: Unix timestamp when the entry was recorded.
        action: Action kind value (e.g. ``"tap"``), or ``"none"`` when
            no action was parsed.
        action_description: Human-readable action summary.
        thinking: Reasoning text extracted from the model reply.
        success: Whether the step succeeded.
        message: Optional detail message.
    """

    step_number: int
    timestamp: float
    action: str
    action_description: str
    thinking: str
    success: bool
    message: str | None = None


@dataclass
class TaskOutcome:
    """Outcome of a complete run.

    Attributes:
        task_description: The task text passed to ``run``.
        status: Why the run ended.
        message: Final human-readable message.
        steps_taken: Number of steps that were started.
        step_results: Results for each completed step, in order.
        duration_ms: Wall-clock time for the run in milliseconds.
    """

    task_description: str
    status: OutcomeStatus
    message: str
    steps_taken: int = 0
    step_results: list[StepResult] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        """True only when the task declared itself finished."""
        return self.status is OutcomeStatus.FINISHED

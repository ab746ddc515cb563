"""Task orchestrator: the top-level run loop of the phone agent.

The ``TaskOrchestrator`` owns everything that lives for the duration of
a run: the conversation history, the step counter, the execution log,
the cancellation token, and the run state.  It repeatedly asks the
``StepExecutor`` for one step until a step finishes the task, the step
budget runs out, the user stops the run, or an unexpected error occurs.

At most one run is active per orchestrator.  A second ``run`` while one
is active is turned away immediately with an ``ALREADY_RUNNING``
outcome; it is never queued.

Stopping vs. cancelling:

- ``stop()`` is the user-facing request.  The run unwinds at the next
  checkpoint and ends normally with a ``STOPPED`` outcome.
- ``cancel()`` aborts the run without a stop request.  The log is
  finalised and the state reset, then ``TaskCancelledError`` is
  re-raised to the caller of ``run`` so that it can tell an abort apart
  from a task that ended on its own.

Typical usage::

    from phone_pilot.config.settings import get_default_settings
    from phone_pilot.core.model_client import ModelClient
    from phone_pilot.core.orchestrator import TaskOrchestrator
    from phone_pilot.platform.adb import AdbDevice

    settings = get_default_settings()
    orchestrator = TaskOrchestrator(
        AdbDevice(settings), ModelClient(settings), settings,
    )
    outcome = orchestrator.run("Open WeChat and check new messages")
    print(outcome.status, outcome.message)
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from pathlib import Path

from phone_pilot.config.settings import Settings, get_default_settings
from phone_pilot.core.action_executor import ActionExecutor
from phone_pilot.core.action_parser import describe_action
from phone_pilot.core.app_registry import AppRegistry
from phone_pilot.core.cancellation import CancellationToken, TaskCancelledError
from phone_pilot.core.conversation import ConversationBuilder, ConversationHistory
from phone_pilot.core.execution_logger import ExecutionLogger
from phone_pilot.core.model_client import ChatModel
from phone_pilot.core.progress import ProgressPublisher, format_step_detail
from phone_pilot.core.step_executor import StepExecutor
from phone_pilot.models.task import (
    OutcomeStatus,
    StepResult,
    TaskOutcome,
    TaskRunState,
)
from phone_pilot.platform.interface import DeviceInterface

logger = logging.getLogger(__name__)

STOPPED_MESSAGE = "Task stopped by user"
ALREADY_RUNNING_MESSAGE = "Task already running"


class TaskOrchestrator:
    """Runs tasks on a device, one at a time.

    Args:
        device: Device to observe and control.
        model: Chat model that decides each action.
        settings: Configuration.  Defaults are used when omitted.
        app_registry: App name lookup for Launch actions.
        execution_logger: Log that receives one entry per step.  A new
            one is created when omitted.
    """

    def __init__(
        self,
        device: DeviceInterface,
        model: ChatModel,
        settings: Settings | None = None,
        app_registry: AppRegistry | None = None,
        execution_logger: ExecutionLogger | None = None,
    ) -> None:
        self._device = device
        self._model = model
        self._settings = settings or get_default_settings()
        self._registry = app_registry or AppRegistry()
        self._log = execution_logger or ExecutionLogger()

        self._builder = ConversationBuilder(self._settings.lang)
        self._history = ConversationHistory()
        self._progress = ProgressPublisher()
        self._action_executor = ActionExecutor(
            device, self._settings, app_registry=self._registry,
        )
        self._step_executor = StepExecutor(
            device,
            model,
            self._action_executor,
            self._builder,
            self._log,
            self._settings,
        )

        # Held for the whole of run() / step().
        self._run_lock = threading.Lock()
        # Guards state, token and stop flag.
        self._state_lock = threading.Lock()
        self._state = TaskRunState.IDLE
        self._token: CancellationToken | None = None
        self._stop_requested = False
        self._step = 0
        self._task = ""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, task: str) -> TaskOutcome:
        """Run *task* to completion on the calling thread.

        Args:
            task: Natural-language task description.

        Returns:
            A ``TaskOutcome``.  ``ALREADY_RUNNING`` when another run
            holds the lock; nothing else happens in that case.

        Raises:
            TaskCancelledError: If the run was cancelled with
                ``cancel()`` rather than stopped.
        """
        token = self._try_begin()
        if token is None:
            logger.warning("Rejecting task, another run is active: %s", task)
            return TaskOutcome(
                task_description=task,
                status=OutcomeStatus.ALREADY_RUNNING,
                message=ALREADY_RUNNING_MESSAGE,
            )
        try:
            return self._run_locked(task, token)
        finally:
            self._run_lock.release()

    def start(self, task: str) -> Future[TaskOutcome]:
        """Run *task* on a background thread.

        Returns:
            A future resolving to the ``TaskOutcome``, or raising
            ``TaskCancelledError`` if the run is cancelled.
        """
        future: Future[TaskOutcome] = Future()

        def _worker() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self.run(task))
            except Exception as exc:
                future.set_exception(exc)

        thread = threading.Thread(target=_worker, name="phone-pilot-run", daemon=True)
        thread.start()
        return future

    def step(self, task: str | None = None) -> StepResult:
        """Execute a single step manually.

        Passing *task* starts a fresh conversation for it.  Calling with
        no task continues the current one.

        Raises:
            RuntimeError: If a run is already active.
            ValueError: If no task has been given yet.
            TaskCancelledError: If cancelled with ``cancel()``.
        """
        token = self._try_begin()
        if token is None:
            raise RuntimeError(ALREADY_RUNNING_MESSAGE)
        try:
            if task is not None:
                self._reset_locked()
                self._task = task
                self._log.start(task)
                self._history.append(self._builder.system_message())
            elif not self._task:
                raise ValueError("No task given for the first step")

            if self._step >= self._settings.max_steps:
                return StepResult(
                    success=False,
                    finished=True,
                    action=None,
                    thinking="",
                    message=self._max_steps_message(),
                )

            try:
                token.raise_if_cancelled("before step")
                return self._execute_step(token)
            except TaskCancelledError:
                if not self._stop_requested:
                    raise
                return StepResult(
                    success=False,
                    finished=True,
                    action=None,
                    thinking="",
                    message=STOPPED_MESSAGE,
                )
        finally:
            self._finish()
            self._run_lock.release()

    def stop(self) -> None:
        """Request a graceful stop of the active run.

        The run ends at its next checkpoint with a ``STOPPED`` outcome.
        Has no effect when idle.
        """
        with self._state_lock:
            if self._state is TaskRunState.IDLE:
                logger.debug("stop() while idle, ignoring")
                return
            logger.info("Stop requested at step %d", self._step)
            self._stop_requested = True
            self._state = TaskRunState.TERMINATING
            if self._token is not None:
                self._token.cancel()
        self._progress.publish(state=TaskRunState.TERMINATING)

    def cancel(self) -> None:
        """Abort the active run; ``run`` re-raises ``TaskCancelledError``."""
        with self._state_lock:
            if self._state is TaskRunState.IDLE:
                return
            logger.info("Cancel requested at step %d", self._step)
            self._state = TaskRunState.TERMINATING
            if self._token is not None:
                self._token.cancel()
        self._progress.publish(state=TaskRunState.TERMINATING)

    def reset(self) -> None:
        """Clear history, step counter and log.

        Raises:
            RuntimeError: If a run is active.
        """
        if not self._run_lock.acquire(blocking=False):
            raise RuntimeError("Cannot reset while a task is running")
        try:
            self._reset_locked()
        finally:
            self._run_lock.release()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> TaskRunState:
        with self._state_lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is not TaskRunState.IDLE

    @property
    def current_step(self) -> int:
        return self._step

    @property
    def context_size(self) -> int:
        """Number of messages in the conversation."""
        return len(self._history)

    @property
    def image_count(self) -> int:
        """Number of images held in the conversation (0 or 1)."""
        return self._history.image_count

    @property
    def history(self) -> ConversationHistory:
        return self._history

    @property
    def execution_logger(self) -> ExecutionLogger:
        return self._log

    @property
    def progress(self) -> ProgressPublisher:
        return self._progress

    @property
    def settings(self) -> Settings:
        return self._settings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run_locked(self, task: str, token: CancellationToken) -> TaskOutcome:
        self._reset_locked()
        self._task = task
        self._log.start(task)
        self._history.append(self._builder.system_message())
        logger.info("Starting task: %s", task)

        start_ns = time.monotonic_ns()
        results: list[StepResult] = []
        status: OutcomeStatus | None = None
        message = ""

        try:
            status, message = self._loop(token, results)
        except TaskCancelledError as exc:
            if not self._stop_requested:
                logger.info("Task cancelled: %s", exc)
                raise
            status, message = OutcomeStatus.STOPPED, STOPPED_MESSAGE
        except Exception as exc:
            logger.exception("Task failed at step %d", self._step)
            status, message = OutcomeStatus.ERROR, f"Error: {exc}"
        finally:
            self._log.end(status.value if status else "cancelled", message)
            self._save_log()
            self._finish()

        duration_ms = (time.monotonic_ns() - start_ns) / 1_000_000
        logger.info(
            "Task ended: %s after %d step(s): %s",
            status.value,
            self._step,
            message,
        )
        return TaskOutcome(
            task_description=task,
            status=status,
            message=message,
            steps_taken=self._step,
            step_results=results,
            duration_ms=duration_ms,
        )

    def _loop(
        self,
        token: CancellationToken,
        results: list[StepResult],
    ) -> tuple[OutcomeStatus, str]:
        """Step until the task ends.  Returns ``(status, message)``."""
        max_failures = self._settings.max_consecutive_failures
        consecutive_failures = 0
        last_failure = ""

        while self._step < self._settings.max_steps:
            if self._stop_requested:
                return OutcomeStatus.STOPPED, STOPPED_MESSAGE
            token.raise_if_cancelled("before step")

            result = self._execute_step(token)
            results.append(result)

            if result.finished:
                return OutcomeStatus.FINISHED, result.message or "Task completed"

            if result.success:
                consecutive_failures = 0
                continue

            consecutive_failures += 1
            last_failure = result.message or last_failure
            if max_failures and consecutive_failures >= max_failures:
                logger.error(
                    "Aborting after %d consecutive failed steps", consecutive_failures,
                )
                return (
                    OutcomeStatus.ERROR,
                    f"Error: {consecutive_failures} consecutive failed steps"
                    f" (last: {last_failure})",
                )

        if last_failure:
            logger.warning("Step budget exhausted, last failure: %s", last_failure)
        return OutcomeStatus.MAX_STEPS, self._max_steps_message()

    def _execute_step(self, token: CancellationToken) -> StepResult:
        self._step += 1
        step_number = self._step
        self._progress.publish(current_step=step_number)

        result = self._step_executor.execute(
            self._history, step_number, self._task, token,
        )

        self._progress.publish(step_detail=format_step_detail(step_number, result))
        if self._settings.verbose:
            logger.info("Step %d thinking: %s", step_number, result.thinking)
            if result.action is not None:
                logger.info("Step %d action: %s", step_number, describe_action(result.action))
        if not result.success:
            logger.warning("Step %d failed: %s", step_number, result.message)
        return result

    def _try_begin(self) -> CancellationToken | None:
        """Take the run lock and enter RUNNING with a fresh token.

        Both happen under ``_state_lock``, so a ``stop()`` arriving any
        time after the lock is held is recorded rather than ignored.

        Returns:
            The run's token, or ``None`` if another run holds the lock.
        """
        with self._state_lock:
            if not self._run_lock.acquire(blocking=False):
                return None
            token = CancellationToken()
            self._token = token
            self._stop_requested = False
            self._state = TaskRunState.RUNNING
        self._progress.publish(state=TaskRunState.RUNNING)
        return token

    def _finish(self) -> None:
        with self._state_lock:
            self._token = None
            self._state = TaskRunState.IDLE
        self._progress.publish(state=TaskRunState.IDLE)

    def _reset_locked(self) -> None:
        self._history.clear()
        self._step = 0
        self._task = ""
        self._log.reset()
        self._progress.publish(current_step=0, step_detail="")

    def _save_log(self) -> None:
        if not self._settings.log_dir:
            return
        try:
            self._log.save(Path(self._settings.log_dir))
        except OSError as exc:
            logger.error("Could not save execution log: %s", exc)

    def _max_steps_message(self) -> str:
        return f"Max steps ({self._settings.max_steps}) reached"

    def __repr__(self) -> str:
        return (
            f"TaskOrchestrator(state={self.state.value}, step={self._step}, "
            f"device={self._device.get_device_name()})"
        )

"""Step executor: one observe -> think -> act cycle.

For each step the ``StepExecutor`` captures the screen, asks the model
what to do next, parses and validates the reply, and dispatches the
resulting action to the device through the ``ActionExecutor``.

Recoverable problems (device unavailable, model call failure, an
unparseable or invalid reply, a failed gesture) produce a failed
``StepResult`` and the run continues.  Cancellation is observed at
checkpoints between the stages and raises ``TaskCancelledError``; a
gesture that has already been dispatched is never interrupted.
Anything else (a screenshot that cannot be encoded, a bug) propagates
to the orchestrator.

Every ``StepResult`` produced is recorded in the ``ExecutionLogger``.

Typical usage::

    executor = StepExecutor(device, model, action_executor, builder,
                            execution_logger, settings)
    result = executor.execute(history, step_number=1,
                              task="Open WeChat", token=token)
"""

from __future__ import annotations

import logging

from phone_pilot.config.settings import Settings
from phone_pilot.core.action_executor import ActionExecutor
from phone_pilot.core.action_parser import (
    describe_action,
    extract_thinking,
    parse_response,
    validate_action,
)
from phone_pilot.core.cancellation import CancellationToken, TaskCancelledError
from phone_pilot.core.conversation import ConversationBuilder, ConversationHistory
from phone_pilot.core.execution_logger import ExecutionLogger
from phone_pilot.core.model_client import ChatModel
from phone_pilot.models.actions import Action, ActionKind
from phone_pilot.models.messages import Role
from phone_pilot.models.task import StepResult
from phone_pilot.platform.interface import DeviceInterface

logger = logging.getLogger(__name__)

NO_THINKING = "No thinking provided"
UNKNOWN_APP = "Unknown"


class StepExecutor:
    """Executes single steps of a task.

    Args:
        device: Device to observe and control.
        model: Chat model that decides the next action.
        action_executor: Dispatches validated actions.
        builder: Creates the per-step conversation messages.
        execution_logger: Receives one entry per produced result.
        settings: Supplies the post-dispatch settle delay.
    """

    def __init__(
        self,
        device: DeviceInterface,
        model: ChatModel,
        action_executor: ActionExecutor,
        builder: ConversationBuilder,
        execution_logger: ExecutionLogger,
        settings: Settings,
    ) -> None:
        self._device = device
        self._model = model
        self._action_executor = action_executor
        self._builder = builder
        self._log = execution_logger
        self._settings = settings

    def execute(
        self,
        history: ConversationHistory,
        step_number: int,
        task: str,
        token: CancellationToken,
    ) -> StepResult:
        """Run one step.

        Args:
            history: Conversation of the current run.  The user turn
                and (when a reply was parsed) the assistant turn are
                appended to it.
            step_number: 1-based number of this step.
            task: The task text; sent in the first user turn only.
            token: Cancellation token of the run.

        Returns:
            The step's ``StepResult``.

        Raises:
            TaskCancelledError: If *token* is cancelled at a checkpoint.
        """
        if not self._device.is_available():
            return self._record(step_number, StepResult(
                success=False,
                finished=False,
                action=None,
                thinking="",
                message="Device not available",
            ))

        # -- Observe -----------------------------------------------------
        token.raise_if_cancelled("before screenshot")
        screenshot = self._device.capture_screenshot()
        token.raise_if_cancelled("after screenshot")
        if screenshot.is_sensitive:
            logger.info("Step %d: screen is sensitive, sending placeholder", step_number)

        current_app = self._current_app()
        image_b64 = screenshot.to_base64()
        if self._is_first_turn(history):
            message = self._builder.task_message(task, current_app, image_b64)
        else:
            message = self._builder.continuation_message(
                step_number, current_app, image_b64,
            )
        history.append(message)

        # -- Think -------------------------------------------------------
        token.raise_if_cancelled("before model call")
        try:
            response = self._model.chat_completion(history.messages, token)
        except TaskCancelledError:
            raise
        except Exception as exc:
            logger.error("Step %d: model call failed: %s", step_number, exc)
            return self._record(step_number, StepResult(
                success=False,
                finished=False,
                action=None,
                thinking="",
                message=f"Error: {exc}",
            ))
        token.raise_if_cancelled("after model call")

        thinking = extract_thinking(response) or NO_THINKING
        action = parse_response(response)
        if action is None:
            logger.warning("Step %d: failed to parse action from reply", step_number)
            logger.debug("Unparseable reply: %s", response)
            return self._record(step_number, StepResult(
                success=False,
                finished=False,
                action=None,
                thinking=thinking,
                message="Failed to parse action",
            ))
        if not validate_action(action):
            logger.warning(
                "Step %d: invalid parameters for %s", step_number, action.kind.value,
            )
            return self._record(step_number, StepResult(
                success=False,
                finished=False,
                action=action,
                thinking=thinking,
                message="Invalid action parameters",
            ))

        token.raise_if_cancelled("after validation")
        history.strip_images()
        history.append(self._builder.assistant_message(response))

        # -- Act ---------------------------------------------------------
        if action.kind is ActionKind.FINISH:
            return self._record(step_number, StepResult(
                success=True,
                finished=True,
                action=action,
                thinking=thinking,
                message=action.message or "Task completed",
            ))

        token.raise_if_cancelled("before dispatch")
        outcome = self._action_executor.execute(action, token)
        token.raise_if_cancelled("after dispatch")
        token.sleep(self._settings.action_delay_seconds)

        if outcome.requires_confirmation:
            logger.info(
                "Step %d: %s needs confirmation: %s",
                step_number,
                action.kind.value,
                outcome.message,
            )
        return self._record(step_number, StepResult(
            success=outcome.success,
            finished=outcome.should_finish,
            action=action,
            thinking=thinking,
            message=outcome.message,
        ))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _current_app(self) -> str:
        try:
            return self._device.get_current_app_name() or UNKNOWN_APP
        except Exception as exc:
            logger.warning("Could not read foreground app: %s", exc)
            return UNKNOWN_APP

    @staticmethod
    def _is_first_turn(history: ConversationHistory) -> bool:
        return not any(m.role is Role.USER for m in history.messages)

    def _record(self, step_number: int, result: StepResult) -> StepResult:
        action: Action | None = result.action
        self._log.add_step(
            step_number=step_number,
            action=action.kind.value if action is not None else "none",
            action_description=describe_action(action) if action is not None else "",
            thinking=result.thinking,
            success=result.success,
            message=result.message,
        )
        return result

    def __repr__(self) -> str:
        return f"StepExecutor(device={self._device.get_device_name()})"

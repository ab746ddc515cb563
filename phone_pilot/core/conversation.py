"""Conversation building and history management.

``ConversationBuilder`` creates the messages sent each step: the system
prompt, the first-step task message, continuation messages for later
steps, and the assistant turns that echo the model's replies.

``ConversationHistory`` holds the ordered turns of the current run.  It
keeps at most one live screenshot: appending a user turn that carries
an image first strips images from every earlier turn, and
``strip_images`` drops the last one once the model has answered.
"""

from __future__ import annotations

import logging
import threading
from typing import Any

from phone_pilot.core.prompts import DEFAULT_LANG, get_labels, get_system_prompt
from phone_pilot.models.messages import ImagePart, Message, Role, TextPart

logger = logging.getLogger(__name__)


class ConversationBuilder:
    """Factory for the messages of one run.

    Args:
        lang: Language of the system prompt and message labels.
        system_prompt: Overrides the bundled prompt for *lang*.
    """

    def __init__(
        self,
        lang: str = DEFAULT_LANG,
        system_prompt: str | None = None,
    ) -> None:
        self._lang = lang
        self._labels = get_labels(lang)
        self._system_prompt = system_prompt

    @property
    def lang(self) -> str:
        return self._lang

    def system_message(self) -> Message:
        prompt = self._system_prompt or get_system_prompt(self._lang)
        return Message(role=Role.SYSTEM, content=prompt)

    def task_message(
        self,
        task: str,
        current_app: str,
        screenshot_b64: str | None = None,
    ) -> Message:
        """First user turn: the task, the foreground app and the screen."""
        text = (
            f"{self._labels.task}: {task}\n"
            f"{self._labels.current_app}: {current_app}"
        )
        return self._user_message(text, screenshot_b64)

    def continuation_message(
        self,
        step_number: int,
        current_app: str,
        screenshot_b64: str | None = None,
    ) -> Message:
        """User turn for every step after the first."""
        text = (
            f"{self._labels.current_app}: {current_app}\n"
            f"{self._labels.step}: {step_number}"
        )
        return self._user_message(text, screenshot_b64)

    @staticmethod
    def assistant_message(content: str) -> Message:
        return Message(role=Role.ASSISTANT, content=content)

    @staticmethod
    def _user_message(text: str, screenshot_b64: str | None) -> Message:
        if screenshot_b64 is None:
            return Message(role=Role.USER, content=text)
        # Vision models expect the image before the text.
        return Message(
            role=Role.USER,
            content=(ImagePart(data=screenshot_b64), TextPart(text=text)),
        )


class ConversationHistory:
    """Thread-safe ordered list of conversation turns.

    The orchestrator thread appends; other threads may read sizes and
    snapshots concurrently.
    """

    def __init__(self) -> None:
        self._messages: list[Message] = []
        self._lock = threading.Lock()

    def append(self, message: Message) -> None:
        """Append a turn.

        A turn that carries an image replaces every earlier image, so
        the history never holds more than one.
        """
        with self._lock:
            if message.image_count:
                self._strip_locked()
            self._messages.append(message)

    def strip_images(self) -> None:
        """Remove images from every turn in the history."""
        with self._lock:
            self._strip_locked()

    def clear(self) -> None:
        with self._lock:
            self._messages.clear()

    @property
    def messages(self) -> tuple[Message, ...]:
        """Snapshot of the current turns."""
        with self._lock:
            return tuple(self._messages)

    @property
    def image_count(self) -> int:
        with self._lock:
            return sum(m.image_count for m in self._messages)

    def to_api(self) -> list[dict[str, Any]]:
        """Render the history as an OpenAI-compatible ``messages`` list."""
        return [m.to_api_dict() for m in self.messages]

    def _strip_locked(self) -> None:
        stripped = 0
        for index, message in enumerate(self._messages):
            if message.image_count:
                self._messages[index] = message.without_images()
                stripped += 1
        if stripped:
            logger.debug("Stripped images from %d message(s)", stripped)

    def __len__(self) -> int:
        with self._lock:
            return len(self._messages)

    def __repr__(self) -> str:
        return f"ConversationHistory(messages={len(self)})"

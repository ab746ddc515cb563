"""Tests for phone_pilot.core.conversation and phone_pilot.core.prompts.

Covers message construction in both languages, the single-live-image
rule of ConversationHistory, and wire rendering.
"""

from __future__ import annotations

import datetime

from phone_pilot.core.conversation import ConversationBuilder, ConversationHistory
from phone_pilot.core.prompts import get_labels, get_system_prompt
from phone_pilot.models.messages import ImagePart, Message, Role, TextPart


def _image_turn(builder: ConversationBuilder, step: int) -> Message:
    return builder.continuation_message(step, "微信", f"IMG{step}")


class TestPrompts:
    """Tests for the bundled prompts and labels."""

    def test_zh_prompt_mentions_grammar(self) -> None:
        prompt = get_system_prompt("zh")
        assert 'do(action="Tap", element=[x,y])' in prompt
        assert "finish(message=" in prompt

    def test_en_prompt_mentions_grammar(self) -> None:
        prompt = get_system_prompt("en")
        assert 'do(action="Swipe", start=[x1,y1], end=[x2,y2])' in prompt
        assert "<answer>" in prompt

    def test_date_embedded(self) -> None:
        prompt = get_system_prompt("en", today=datetime.date(2024, 5, 1))
        assert "2024-05-01" in prompt

    def test_format_placeholders_rendered(self) -> None:
        """Literal braces in the template survive formatting."""
        assert "<think>{think}</think>" in get_system_prompt("en")

    def test_regional_code_accepted(self) -> None:
        assert get_labels("en-US").task == "Task"

    def test_unknown_language_falls_back_to_zh(self) -> None:
        assert get_labels("fr").task == "任务"


class TestConversationBuilder:
    """Tests for ConversationBuilder."""

    def test_system_message(self) -> None:
        message = ConversationBuilder("en").system_message()
        assert message.role is Role.SYSTEM
        assert isinstance(message.content, str)

    def test_custom_system_prompt(self) -> None:
        message = ConversationBuilder("en", system_prompt="be brief").system_message()
        assert message.content == "be brief"

    def test_task_message_zh(self) -> None:
        message = ConversationBuilder("zh").task_message("打开微信", "桌面", "AAA")
        assert message.role is Role.USER
        assert message.image_count == 1
        assert message.text == "任务: 打开微信\n当前应用: 桌面"

    def test_image_precedes_text(self) -> None:
        message = ConversationBuilder("en").task_message("t", "app", "AAA")
        assert isinstance(message.content, tuple)
        assert isinstance(message.content[0], ImagePart)
        assert isinstance(message.content[1], TextPart)

    def test_continuation_message_en(self) -> None:
        message = ConversationBuilder("en").continuation_message(3, "Chrome", "AAA")
        assert message.text == "Current app: Chrome\nStep: 3"

    def test_message_without_screenshot_is_text(self) -> None:
        message = ConversationBuilder("en").task_message("t", "app")
        assert message.content == "Task: t\nCurrent app: app"

    def test_assistant_message(self) -> None:
        message = ConversationBuilder.assistant_message("reply")
        assert message == Message(role=Role.ASSISTANT, content="reply")


class TestConversationHistory:
    """Tests for ConversationHistory."""

    def test_append_and_len(self) -> None:
        history = ConversationHistory()
        history.append(ConversationBuilder("en").system_message())
        assert len(history) == 1

    def test_at_most_one_image(self) -> None:
        """Appending an image turn strips every earlier image."""
        builder = ConversationBuilder("en")
        history = ConversationHistory()
        history.append(builder.system_message())
        for step in range(1, 5):
            history.append(_image_turn(builder, step))
            history.append(builder.assistant_message("ok"))
            assert history.image_count == 1

    def test_live_image_is_most_recent(self) -> None:
        builder = ConversationBuilder("en")
        history = ConversationHistory()
        history.append(_image_turn(builder, 1))
        history.append(_image_turn(builder, 2))
        first, second = history.messages
        assert first.image_count == 0
        assert first.content == "Current app: 微信\nStep: 1"
        assert isinstance(second.content, tuple)
        assert second.content[0] == ImagePart(data="IMG2")

    def test_strip_images(self) -> None:
        builder = ConversationBuilder("en")
        history = ConversationHistory()
        history.append(_image_turn(builder, 1))
        history.strip_images()
        assert history.image_count == 0
        assert len(history) == 1

    def test_clear(self) -> None:
        history = ConversationHistory()
        history.append(ConversationBuilder("en").system_message())
        history.clear()
        assert len(history) == 0

    def test_to_api(self) -> None:
        builder = ConversationBuilder("en", system_prompt="sys")
        history = ConversationHistory()
        history.append(builder.system_message())
        history.append(_image_turn(builder, 1))
        api = history.to_api()
        assert api[0] == {"role": "system", "content": "sys"}
        assert api[1]["role"] == "user"
        assert api[1]["content"][0] == {
            "type": "image_url",
            "image_url": {"url": "data:image/png;base64,IMG1"},
        }
        assert api[1]["content"][1]["type"] == "text"

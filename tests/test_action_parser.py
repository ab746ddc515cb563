"""Tests for phone_pilot.core.action_parser.

Covers finish() extraction with nested quotes and CJK text, every do()
kind and its spelling variants, <answer>/<think> tag handling,
unparseable replies, validation, and action descriptions.
"""

from __future__ import annotations

import pytest

from phone_pilot.core.action_parser import (
    describe_action,
    extract_thinking,
    parse_response,
    validate_action,
)
from phone_pilot.models.actions import (
    ActionKind,
    Back,
    CallApi,
    DoubleTap,
    Finish,
    Home,
    Interact,
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


class TestParseFinish:
    """Tests for finish(message=...) extraction."""

    def test_simple_message(self) -> None:
        """A plain finish message is returned verbatim."""
        action = parse_response('finish(message="Task completed successfully")')
        assert action == Finish(message="Task completed successfully")

    def test_nested_single_quotes_not_clipped(self) -> None:
        """Single quotes inside a double-quoted message are kept."""
        action = parse_response(
            "finish(message=\"I found the item 'iPhone 15' with price $999\")"
        )
        assert isinstance(action, Finish)
        assert action.message == "I found the item 'iPhone 15' with price $999"

    def test_cjk_punctuation(self) -> None:
        """CJK quotes and punctuation do not break extraction."""
        action = parse_response(
            'finish(message="已完成：找到了“最新款”手机，价格为￥5999。")'
        )
        assert isinstance(action, Finish)
        assert "“最新款”" in action.message
        assert action.message.endswith("。")

    def test_nested_parentheses(self) -> None:
        """Balanced parentheses inside the message are part of it."""
        action = parse_response('finish(message="Sent (to Alice) ok")')
        assert isinstance(action, Finish)
        assert action.message == "Sent (to Alice) ok"

    def test_embedded_double_quotes(self) -> None:
        """Double quotes inside the message survive."""
        action = parse_response('finish(message="Title is "Hello" now")')
        assert isinstance(action, Finish)
        assert action.message == 'Title is "Hello" now'

    def test_single_quoted_message(self) -> None:
        """The message may be delimited with single quotes."""
        action = parse_response("finish(message='done')")
        assert action == Finish(message="done")

    def test_whitespace_before_close_paren(self) -> None:
        """Whitespace between the closing quote and ')' is allowed."""
        action = parse_response('finish(message="done"  )')
        assert action == Finish(message="done")

    def test_finish_takes_priority_over_do(self) -> None:
        """finish() wins when both commands appear."""
        text = 'do(action="Back")\nfinish(message="all done")'
        assert isinstance(parse_response(text), Finish)


class TestParseDo:
    """Tests for do(action=..., ...) extraction."""

    def test_tap(self) -> None:
        action = parse_response('do(action="Tap", element=[500, 300])')
        assert action == Tap(point=Point(500, 300))

    def test_tap_with_message(self) -> None:
        """A sensitive tap carries its message."""
        action = parse_response(
            'do(action="Tap", element=[500, 800], message="Confirm payment")'
        )
        assert isinstance(action, Tap)
        assert action.point == Point(500, 800)
        assert action.message == "Confirm payment"

    def test_swipe(self) -> None:
        action = parse_response(
            'do(action="Swipe", start=[100,500], end=[100,200])'
        )
        assert action == Swipe(start=Point(100, 500), end=Point(100, 200))

    def test_type(self) -> None:
        action = parse_response('do(action="Type", text="hello world")')
        assert action == TypeText(text="hello world")

    def test_type_with_inner_quotes_and_parens(self) -> None:
        """Typed text may contain quotes and parentheses."""
        action = parse_response('do(action="Type", text="say "hi" (now)")')
        assert isinstance(action, TypeText)
        assert action.text == 'say "hi" (now)'

    def test_type_name_alias(self) -> None:
        """Type_Name is accepted as an alias of Type."""
        action = parse_response('do(action="Type_Name", text="张三")')
        assert action == TypeText(text="张三")

    def test_launch_cjk_app(self) -> None:
        action = parse_response('do(action="Launch", app="微信")')
        assert action == Launch(app="微信")

    def test_back_and_home(self) -> None:
        assert parse_response('do(action="Back")') == Back()
        assert parse_response('do(action="Home")') == Home()

    @pytest.mark.parametrize(
        "spelling",
        ["Long Press", "long_press", "LONG PRESS", "Long_Press"],
    )
    def test_long_press_spellings(self, spelling: str) -> None:
        """Spaces and underscores are interchangeable, case is ignored."""
        action = parse_response(f'do(action="{spelling}", element=[10, 20])')
        assert action == LongPress(point=Point(10, 20))

    def test_double_tap(self) -> None:
        action = parse_response('do(action="Double Tap", element=[1, 2])')
        assert action == DoubleTap(point=Point(1, 2))

    def test_wait(self) -> None:
        action = parse_response('do(action="Wait", duration="2 seconds")')
        assert action == Wait(duration="2 seconds")

    def test_note(self) -> None:
        action = parse_response('do(action="Note", message="price is 12")')
        assert action == Note(message="price is 12")

    def test_call_api(self) -> None:
        action = parse_response(
            'do(action="Call_API", instruction="summarise the page")'
        )
        assert action == CallApi(instruction="summarise the page")

    def test_interact(self) -> None:
        assert parse_response('do(action="Interact")') == Interact()

    def test_take_over(self) -> None:
        action = parse_response('do(action="Take_over", message="Please log in")')
        assert action == TakeOver(message="Please log in")

    def test_extra_coordinates_ignored(self) -> None:
        """Only the first two integers of a point are used."""
        action = parse_response('do(action="Tap", element=[5, 6, 7])')
        assert action == Tap(point=Point(5, 6))

    def test_missing_point_still_parses(self) -> None:
        """Missing parameters are left for validation to reject."""
        action = parse_response('do(action="Tap")')
        assert action == Tap()
        assert action.point is None

    def test_unknown_kind_returns_none(self) -> None:
        assert parse_response('do(action="Teleport", element=[1, 1])') is None

    def test_missing_action_param_returns_none(self) -> None:
        assert parse_response("do(element=[1, 1])") is None


class TestTags:
    """Tests for <answer> and <think> handling."""

    def test_answer_tag_content_parsed(self) -> None:
        text = (
            "<think>The icon is top left.</think>\n"
            '<answer>do(action="Tap", element=[100, 100])</answer>'
        )
        assert parse_response(text) == Tap(point=Point(100, 100))

    def test_answer_tag_limits_parsing(self) -> None:
        """Commands outside <answer> are ignored when the tag exists."""
        text = (
            '<think>I could finish(message="early") but will not.</think>'
            '<answer>do(action="Home")</answer>'
        )
        assert parse_response(text) == Home()

    def test_extract_thinking(self) -> None:
        text = "<think>\n  Need to open settings.  \n</think><answer>x</answer>"
        assert extract_thinking(text) == "Need to open settings."

    def test_extract_thinking_absent(self) -> None:
        assert extract_thinking('do(action="Back")') is None


class TestUnparseable:
    """Replies without a command yield None, never an exception."""

    def test_random_text(self) -> None:
        assert parse_response("random text") is None

    def test_empty(self) -> None:
        assert parse_response("") is None

    def test_empty_answer_tag(self) -> None:
        assert parse_response("<answer></answer>") is None


class TestValidateAction:
    """Tests for validate_action."""

    def test_tap_without_point_invalid(self) -> None:
        assert validate_action(Tap()) is False

    def test_tap_with_point_valid(self) -> None:
        assert validate_action(Tap(point=Point(100, 200))) is True

    def test_swipe_needs_both_ends(self) -> None:
        assert validate_action(Swipe(start=Point(1, 1))) is False
        assert validate_action(Swipe(start=Point(1, 1), end=Point(2, 2))) is True

    def test_type_needs_text(self) -> None:
        assert validate_action(TypeText()) is False
        assert validate_action(TypeText(text="")) is True

    def test_launch_needs_app(self) -> None:
        assert validate_action(Launch()) is False

    def test_wait_needs_duration(self) -> None:
        assert validate_action(Wait()) is False

    def test_message_kinds(self) -> None:
        assert validate_action(Finish()) is False
        assert validate_action(Note()) is False
        assert validate_action(TakeOver()) is False
        assert validate_action(Finish(message="ok")) is True

    def test_call_api_needs_instruction(self) -> None:
        assert validate_action(CallApi()) is False

    def test_parameterless_kinds_always_valid(self) -> None:
        for action in (Back(), Home(), Interact()):
            assert validate_action(action) is True


class TestDescribeAction:
    """Tests for describe_action."""

    def test_tap(self) -> None:
        assert describe_action(Tap(point=Point(500, 300))) == "Tap at [500, 300]"

    def test_type(self) -> None:
        assert describe_action(TypeText(text="hello")) == "Type: hello"

    def test_launch(self) -> None:
        assert describe_action(Launch(app="微信")) == "Launch app: 微信"

    def test_finish(self) -> None:
        assert describe_action(Finish(message="done")) == "Finish: done"

    def test_swipe(self) -> None:
        action = Swipe(start=Point(1, 2), end=Point(3, 4))
        assert describe_action(action) == "Swipe from [1, 2] to [3, 4]"

    def test_missing_point(self) -> None:
        assert describe_action(Tap()) == "Tap at [?]"

    def test_every_kind_has_description(self) -> None:
        actions = [
            Tap(point=Point(0, 0)), LongPress(point=Point(0, 0)),
            DoubleTap(point=Point(0, 0)), TypeText(text="t"),
            Swipe(start=Point(0, 0), end=Point(1, 1)), Launch(app="a"),
            Back(), Home(), Wait(duration="1"), Finish(message="m"),
            Note(message="n"), CallApi(instruction="i"), Interact(),
            TakeOver(message="m"),
        ]
        kinds = {a.kind for a in actions}
        assert kinds == set(ActionKind)
        for action in actions:
            assert describe_action(action)

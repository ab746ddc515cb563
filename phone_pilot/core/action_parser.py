"""Action grammar parser: turns raw model replies into typed actions.

The model answers in a small command grammar, optionally wrapped in
``<think>`` / ``<answer>`` tags::

    <think>The search box is at the top.</think>
    <answer>do(action="Tap", element=[500, 120])</answer>

Supported commands::

    finish(message="<text>")
    do(action="Tap", element=[x,y])
    do(action="Type", text="<text>")
    do(action="Swipe", start=[x1,y1], end=[x2,y2])
    do(action="Launch", app="<name>")
    do(action="Back") / do(action="Home")
    do(action="Long Press", element=[x,y])
    do(action="Double Tap", element=[x,y])
    do(action="Wait", duration="<text>")
    do(action="Note", message="<text>")
    do(action="Call_API", instruction="<text>")
    do(action="Interact")
    do(action="Take_over", message="<text>")

Model text is unstructured: quoted values may themselves contain quote
characters, parentheses, or CJK punctuation.  String values are
therefore read with a depth-aware scanner instead of a plain regex.

A reply without a recognisable command is a normal outcome, not an
error: ``parse_response`` returns ``None``.

Typical usage::

    from phone_pilot.core.action_parser import (
        extract_thinking,
        parse_response,
        validate_action,
    )

    action = parse_response(reply)
    if action is not None and validate_action(action):
        ...
"""

from __future__ import annotations

import logging
import re

from phone_pilot.models.actions import (
    ACTION_CLASSES,
    Action,
    ActionKind,
    CallApi,
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

logger = logging.getLogger(__name__)

_QUOTES: str = "\"'"

_FINISH_START_RE = re.compile(r"""\bfinish\s*\(\s*message\s*=\s*["']""")
_FINISH_FALLBACK_RE = re.compile(
    r"""\bfinish\s*\(\s*message\s*=\s*["'](.*?)["']\s*\)""",
    re.DOTALL,
)
_DO_START_RE = re.compile(r"\bdo\s*\(")
_ACTION_KIND_RE = re.compile(r"""\baction\s*=\s*["']([^"']*)["']""")

# A quote followed by ", name=" closes a value that is not the last
# parameter of a do() call.
_NEXT_PARAM_RE = re.compile(r"\s*,\s*[A-Za-z_]\w*\s*=")

# Grammar spellings accepted for each kind, after lower-casing and
# collapsing runs of spaces/underscores to a single space.
_KIND_ALIASES: dict[str, ActionKind] = {
    kind.value: kind for kind in ActionKind
}
_KIND_ALIASES["type name"] = ActionKind.TYPE

# Payload fields each kind must carry to be dispatchable.
_REQUIRED_FIELDS: dict[ActionKind, tuple[str, ...]] = {
    ActionKind.TAP: ("point",),
    ActionKind.LONG_PRESS: ("point",),
    ActionKind.DOUBLE_TAP: ("point",),
    ActionKind.TYPE: ("text",),
    ActionKind.SWIPE: ("start", "end"),
    ActionKind.LAUNCH: ("app",),
    ActionKind.WAIT: ("duration",),
    ActionKind.FINISH: ("message",),
    ActionKind.NOTE: ("message",),
    ActionKind.TAKE_OVER: ("message",),
    ActionKind.CALL_API: ("instruction",),
    ActionKind.BACK: (),
    ActionKind.HOME: (),
    ActionKind.INTERACT: (),
}


# ------------------------------------------------------------------
# Public API
# ------------------------------------------------------------------


def parse_response(response: str) -> Action | None:
    """Parse a model reply into an action.

    If the reply contains ``<answer>...</answer>`` only the tag content
    is parsed.  A ``finish(...)`` command takes priority over a
    ``do(...)`` command.

    Args:
        response: Raw model reply.

    Returns:
        The parsed action, or ``None`` when the reply carries no
        recognisable command or names an unsupported action kind.
        Missing parameters do not make parsing fail; use
        ``validate_action`` to check them.
    """
    if not response:
        return None

    answer = _extract_tag(response, "answer")
    content = answer if answer is not None else response

    action = _extract_finish(content)
    if action is not None:
        return action

    action = _extract_do(content)
    if action is not None:
        return action

    logger.warning("No valid action found in response: %.200s", content)
    return None


def extract_thinking(response: str) -> str | None:
    """Return the stripped content of the ``<think>`` tag, if any."""
    return _extract_tag(response, "think")


def validate_action(action: Action) -> bool:
    """Check that an action carries every field its kind requires.

    Args:
        action: A parsed action.

    Returns:
        ``True`` when every required payload field is present.
    """
    required = _REQUIRED_FIELDS.get(action.kind)
    if required is None:
        return False
    return all(getattr(action, name, None) is not None for name in required)


def describe_action(action: Action) -> str:
    """Render a short human-readable description of an action.

    The kind-specific payload (coordinates, text, app name, message)
    is included verbatim.
    """
    kind = action.kind
    if isinstance(action, Tap):
        return f"Tap at {_format_point(action.point)}"
    if isinstance(action, LongPress):
        return f"Long press at {_format_point(action.point)}"
    if isinstance(action, DoubleTap):
        return f"Double tap at {_format_point(action.point)}"
    if isinstance(action, TypeText):
        return f"Type: {action.text}"
    if isinstance(action, Swipe):
        return (
            f"Swipe from {_format_point(action.start)} "
            f"to {_format_point(action.end)}"
        )
    if isinstance(action, Launch):
        return f"Launch app: {action.app}"
    if isinstance(action, Wait):
        return f"Wait: {action.duration}"
    if isinstance(action, Finish):
        return f"Finish: {action.message}"
    if isinstance(action, Note):
        return f"Note: {action.message}"
    if isinstance(action, CallApi):
        return f"Call API: {action.instruction}"
    if isinstance(action, TakeOver):
        return f"Take over: {action.message}"
    if kind is ActionKind.BACK:
        return "Press Back"
    if kind is ActionKind.HOME:
        return "Press Home"
    if kind is ActionKind.INTERACT:
        return "Interact"
    return kind.value


# ------------------------------------------------------------------
# Internal helpers
# ------------------------------------------------------------------


def _extract_tag(text: str, tag: str) -> str | None:
    """Return the stripped content of the first ``<tag>...</tag>``."""
    match = re.search(rf"<{tag}>(.*?)</{tag}>", text, re.DOTALL)
    if match is None:
        return None
    return match.group(1).strip()


def _scan_quoted(
    text: str,
    start: int,
    stop_at_next_param: bool = False,
) -> str | None:
    """Read a quoted value whose opening quote ends just before *start*.

    Walks forward tracking parenthesis depth.  The value ends at the
    quote that is the last non-whitespace character before a ``)`` at
    depth zero, so the value itself may contain quotes and balanced
    parentheses.  With *stop_at_next_param* a quote followed by
    ``, name=`` at depth zero also ends the value.

    Returns:
        The raw value, or ``None`` when no terminator exists.
    """
    depth = 0
    for i in range(start, len(text)):
        ch = text[i]
        if ch == "(":
            depth += 1
        elif ch == ")":
            if depth > 0:
                depth -= 1
                continue
            j = i - 1
            while j >= start and text[j].isspace():
                j -= 1
            if j >= start and text[j] in _QUOTES:
                return text[start:j]
        elif (
            stop_at_next_param
            and depth == 0
            and ch in _QUOTES
            and _NEXT_PARAM_RE.match(text, i + 1)
        ):
            return text[start:i]
    return None


def _extract_finish(text: str) -> Finish | None:
    """Extract ``finish(message="...")``."""
    start_match = _FINISH_START_RE.search(text)
    if start_match is None:
        return None

    message = _scan_quoted(text, start_match.end())
    if message is None:
        fallback = _FINISH_FALLBACK_RE.search(text)
        if fallback is None:
            return None
        message = fallback.group(1)
    return Finish(message=message)


def _extract_do(text: str) -> Action | None:
    """Extract a ``do(action="Kind", ...)`` command."""
    do_match = _DO_START_RE.search(text)
    if do_match is None:
        return None

    params = text[do_match.end():]
    kind_match = _ACTION_KIND_RE.search(params)
    if kind_match is None:
        logger.warning("do() command without an action parameter")
        return None

    raw_kind = kind_match.group(1)
    normalised = re.sub(r"[\s_]+", " ", raw_kind.strip().lower())
    kind = _KIND_ALIASES.get(normalised)
    if kind is None:
        logger.warning("Unknown action type: %r", raw_kind)
        return None

    if kind is ActionKind.TAP:
        return Tap(
            point=_extract_point(params, "element"),
            message=_extract_string(params, "message"),
        )
    if kind in (ActionKind.LONG_PRESS, ActionKind.DOUBLE_TAP):
        return ACTION_CLASSES[kind](point=_extract_point(params, "element"))
    if kind is ActionKind.TYPE:
        return TypeText(text=_extract_string(params, "text"))
    if kind is ActionKind.SWIPE:
        return Swipe(
            start=_extract_point(params, "start"),
            end=_extract_point(params, "end"),
        )
    if kind is ActionKind.LAUNCH:
        return Launch(app=_extract_string(params, "app"))
    if kind is ActionKind.WAIT:
        return Wait(duration=_extract_string(params, "duration"))
    if kind is ActionKind.CALL_API:
        return CallApi(instruction=_extract_string(params, "instruction"))
    if kind in (ActionKind.FINISH, ActionKind.NOTE, ActionKind.TAKE_OVER):
        return ACTION_CLASSES[kind](message=_extract_string(params, "message"))
    # Back, Home, Interact carry no parameters.
    return ACTION_CLASSES[kind]()


def _extract_point(text: str, name: str) -> Point | None:
    """Extract ``name=[x, y]`` as a ``Point``.

    Only the first two integers are used.  Non-integer items are
    skipped; fewer than two integers yields ``None``.
    """
    match = re.search(rf"\b{name}\s*=\s*\[([^\]]+)\]", text)
    if match is None:
        return None

    numbers: list[int] = []
    for item in match.group(1).split(","):
        try:
            numbers.append(int(item.strip()))
        except ValueError:
            continue
    if len(numbers) < 2:
        return None
    return Point(numbers[0], numbers[1])


def _extract_string(text: str, name: str) -> str | None:
    """Extract a quoted string parameter ``name="..."``."""
    start_match = re.search(rf"""\b{name}\s*=\s*["']""", text)
    if start_match is None:
        return None

    value = _scan_quoted(text, start_match.end(), stop_at_next_param=True)
    if value is not None:
        return value

    # Unterminated or oddly-terminated values.
    lenient = re.search(
        rf"""\b{name}\s*=\s*["'](.*?)["']""", text, re.DOTALL,
    )
    if lenient is not None:
        return lenient.group(1)
    unterminated = re.search(rf"""\b{name}\s*=\s*["']([^"']*)""", text)
    if unterminated is not None:
        return unterminated.group(1)
    return None


def _format_point(point: Point | None) -> str:
    if point is None:
        return "[?]"
    return f"[{point.x}, {point.y}]"

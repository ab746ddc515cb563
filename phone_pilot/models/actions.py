"""Device actions parsed from model replies.

Every action kind is its own frozen dataclass so that the payload of a
``Tap`` cannot be confused with the payload of a ``Launch``.  Payload
fields default to ``None``: the parser may recognise an action kind
whose parameters are missing, and ``validate_action`` is what rejects
such an action before it reaches the device.

Coordinates are kept in the model's normalized ``[0, 999]`` space.
Conversion to pixels happens in the ``ActionExecutor``.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, NamedTuple, Union


class ActionKind(Enum):
    """The kind of a device action.

    Values are the lower-case names used in the ``do(action=...)``
    grammar, with spaces where the grammar uses them.
    """

    TAP = "tap"
    LONG_PRESS = "long press"
    DOUBLE_TAP = "double tap"
    TYPE = "type"
    SWIPE = "swipe"
    LAUNCH = "launch"
    BACK = "back"
    HOME = "home"
    WAIT = "wait"
    FINISH = "finish"
    NOTE = "note"
    CALL_API = "call api"
    INTERACT = "interact"
    TAKE_OVER = "take over"


class Point(NamedTuple):
    """A normalized screen position, each axis in ``[0, 999]``."""

    x: int
    y: int


@dataclass(frozen=True)
class Tap:
    """Single tap.  A ``message`` marks a sensitive tap that needs
    confirmation from the user."""

    kind: ClassVar[ActionKind] = ActionKind.TAP
    point: Point | None = None
    message: str | None = None


@dataclass(frozen=True)
class LongPress:
    kind: ClassVar[ActionKind] = ActionKind.LONG_PRESS
    point: Point | None = None


@dataclass(frozen=True)
class DoubleTap:
    kind: ClassVar[ActionKind] = ActionKind.DOUBLE_TAP
    point: Point | None = None


@dataclass(frozen=True)
class TypeText:
    kind: ClassVar[ActionKind] = ActionKind.TYPE
    text: str | None = None


@dataclass(frozen=True)
class Swipe:
    kind: ClassVar[ActionKind] = ActionKind.SWIPE
    start: Point | None = None
    end: Point | None = None


@dataclass(frozen=True)
class Launch:
    """Open an app by display name (resolved to a package at dispatch)."""

    kind: ClassVar[ActionKind] = ActionKind.LAUNCH
    app: str | None = None


@dataclass(frozen=True)
class Back:
    kind: ClassVar[ActionKind] = ActionKind.BACK


@dataclass(frozen=True)
class Home:
    kind: ClassVar[ActionKind] = ActionKind.HOME


@dataclass(frozen=True)
class Wait:
    """Pause.  ``duration`` is free text such as ``"2 seconds"``."""

    kind: ClassVar[ActionKind] = ActionKind.WAIT
    duration: str | None = None


@dataclass(frozen=True)
class Finish:
    """Terminal action: the model declares the task done."""

    kind: ClassVar[ActionKind] = ActionKind.FINISH
    message: str | None = None


@dataclass(frozen=True)
class Note:
    kind: ClassVar[ActionKind] = ActionKind.NOTE
    message: str | None = None


@dataclass(frozen=True)
class CallApi:
    kind: ClassVar[ActionKind] = ActionKind.CALL_API
    instruction: str | None = None


@dataclass(frozen=True)
class Interact:
    """The model needs the user to choose between options."""

    kind: ClassVar[ActionKind] = ActionKind.INTERACT


@dataclass(frozen=True)
class TakeOver:
    """The model asks a human to take over (login, captcha, ...)."""

    kind: ClassVar[ActionKind] = ActionKind.TAKE_OVER
    message: str | None = None


Action = Union[
    Tap,
    LongPress,
    DoubleTap,
    TypeText,
    Swipe,
    Launch,
    Back,
    Home,
    Wait,
    Finish,
    Note,
    CallApi,
    Interact,
    TakeOver,
]

# Lookup used by the parser to build an action from its kind.
ACTION_CLASSES: dict[ActionKind, type] = {
    ActionKind.TAP: Tap,
    ActionKind.LONG_PRESS: LongPress,
    ActionKind.DOUBLE_TAP: DoubleTap,
    ActionKind.TYPE: TypeText,
    ActionKind.SWIPE: Swipe,
    ActionKind.LAUNCH: Launch,
    ActionKind.BACK: Back,
    ActionKind.HOME: Home,
    ActionKind.WAIT: Wait,
    ActionKind.FINISH: Finish,
    ActionKind.NOTE: Note,
    ActionKind.CALL_API: CallApi,
    ActionKind.INTERACT: Interact,
    ActionKind.TAKE_OVER: TakeOver,
}

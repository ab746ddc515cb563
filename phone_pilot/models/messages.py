"""Chat messages exchanged with the multimodal model.

A ``Message`` carries either plain text or an ordered tuple of parts.
Only user turns carry an ``ImagePart`` (the screenshot), and once a
turn is no longer the most recent one its image is stripped with
``Message.without_images`` so that long tasks keep a bounded history.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Union


class Role(Enum):
    """Author of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class TextPart:
    """A text fragment inside a multi-part message."""

    text: str

    def to_api_dict(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(frozen=True)
class ImagePart:
    """An inline image inside a multi-part message.

    Attributes:
        data: Base64-encoded image bytes, without a data-URI prefix.
        media_type: MIME type of the encoded image.
    """

    data: str
    media_type: str = "image/png"

    @property
    def data_uri(self) -> str:
        return f"data:{self.media_type};base64,{self.data}"

    def to_api_dict(self) -> dict[str, Any]:
        return {"type": "image_url", "image_url": {"url": self.data_uri}}


ContentPart = Union[TextPart, ImagePart]


@dataclass(frozen=True)
class Message:
    """One turn of the conversation.

    Attributes:
        role: Who authored the turn.
        content: Plain text, or an ordered tuple of text/image parts.
    """

    role: Role
    content: str | tuple[ContentPart, ...]

    @property
    def image_count(self) -> int:
        """Number of image parts in this message."""
        if isinstance(self.content, str):
            return 0
        return sum(1 for part in self.content if isinstance(part, ImagePart))

    @property
    def text(self) -> str:
        """All text content joined with newlines."""
        if isinstance(self.content, str):
            return self.content
        return "\n".join(
            part.text for part in self.content if isinstance(part, TextPart)
        )

    def without_images(self) -> Message:
        """Return a copy of this message with every image part removed.

        When a single text part remains the content collapses to a plain
        string, which is how text-only turns are sent to the API.
        Messages that carry no images are returned unchanged.
        """
        if isinstance(self.content, str) or self.image_count == 0:
            return self
        remaining = tuple(
            part for part in self.content if not isinstance(part, ImagePart)
        )
        if len(remaining) == 1 and isinstance(remaining[0], TextPart):
            return Message(role=self.role, content=remaining[0].text)
        return Message(role=self.role, content=remaining)

    def to_api_dict(self) -> dict[str, Any]:
        """Render the OpenAI-compatible ``messages[]`` entry."""
        if isinstance(self.content, str):
            content: Any = self.content
        else:
            content = [part.to_api_dict() for part in self.content]
        return {"role": self.role.value, "content": content}

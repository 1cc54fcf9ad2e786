"""Conversation data model and its Anthropic wire format.

Content blocks are one dataclass per variant so a text block can never
carry tool fields and vice versa. Messages are frozen once built; the
engine only ever appends whole messages to a history list.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class TextBlock:
    text: str = ""

    def to_api(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass
class ToolUseBlock:
    """A tool_use block. partial_input buffers input_json_delta fragments."""

    id: str
    name: str
    input: dict[str, Any] | None = None
    partial_input: str | None = field(default=None, repr=False)

    def to_api(self) -> dict[str, Any]:
        return {
            "type": "tool_use",
            "id": self.id,
            "name": self.name,
            "input": self.input if self.input is not None else {},
        }


@dataclass
class ToolResultBlock:
    tool_use_id: str
    content: str

    def to_api(self) -> dict[str, Any]:
        return {"type": "tool_result", "tool_use_id": self.tool_use_id, "content": self.content}


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


def block_from_api(data: dict[str, Any]) -> ContentBlock | None:
    """Build a content block from its wire dict. Unknown types return None."""
    block_type = data.get("type")
    if block_type == "text":
        return TextBlock(text=data.get("text", "") or "")
    if block_type == "tool_use":
        raw_input = data.get("input")
        return ToolUseBlock(
            id=data.get("id", ""),
            name=data.get("name", ""),
            input=raw_input if isinstance(raw_input, dict) else None,
        )
    if block_type == "tool_result":
        content = data.get("content", "")
        if not isinstance(content, str):
            content = str(content)
        return ToolResultBlock(tool_use_id=data.get("tool_use_id", ""), content=content)
    return None


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation reconstructed from the stream."""

    id: str
    name: str
    input: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ToolResult:
    tool_use_id: str
    content: str


@dataclass(frozen=True)
class ConversationMessage:
    role: Role
    content: tuple[ContentBlock, ...]

    @classmethod
    def user_text(cls, text: str) -> ConversationMessage:
        return cls(Role.USER, (TextBlock(text),))

    @classmethod
    def assistant_text(cls, text: str) -> ConversationMessage:
        return cls(Role.ASSISTANT, (TextBlock(text),))

    @classmethod
    def assistant_turn(cls, text: str, calls: list[ToolCall]) -> ConversationMessage:
        """Assistant message: the turn's text (if any), then one tool_use per call."""
        blocks: list[ContentBlock] = []
        if text:
            blocks.append(TextBlock(text))
        for call in calls:
            blocks.append(ToolUseBlock(id=call.id, name=call.name, input=dict(call.input)))
        return cls(Role.ASSISTANT, tuple(blocks))

    @classmethod
    def tool_results(cls, results: list[ToolResult]) -> ConversationMessage:
        """One user message carrying every tool_result, in call order."""
        return cls(
            Role.USER,
            tuple(ToolResultBlock(r.tool_use_id, r.content) for r in results),
        )

    def merge(self, other: ConversationMessage) -> ConversationMessage:
        """This message with other's blocks appended. Roles must match."""
        if other.role != self.role:
            raise ValueError(f"Cannot merge {other.role} message into {self.role} message")
        return ConversationMessage(self.role, self.content + other.content)

    @property
    def text(self) -> str:
        return "".join(b.text for b in self.content if isinstance(b, TextBlock))

    def to_api(self) -> dict[str, Any]:
        return {"role": str(self.role), "content": [b.to_api() for b in self.content]}

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> ConversationMessage:
        content = data.get("content", "")
        if isinstance(content, str):
            blocks: tuple[ContentBlock, ...] = (TextBlock(content),)
        else:
            blocks = tuple(b for b in (block_from_api(c) for c in content) if b is not None)
        return cls(Role(data.get("role", "user")), blocks)

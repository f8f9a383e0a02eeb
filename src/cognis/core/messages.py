"""Transcript message model: ChatMessage, ToolCall and AgentResult."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from cognis.core.types import MessageRole


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValueError("tool call name must not be blank")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": dict(self.arguments)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ToolCall:
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            arguments=dict(data.get("arguments") or {}),
        )


@dataclass(frozen=True)
class ChatMessage:
    """One transcript entry.

    A ``tool`` message carries a non-empty ``tool_call_id`` and no tool calls;
    only ``assistant`` messages may carry tool calls.
    """

    role: MessageRole
    content: str = ""
    tool_call_id: Optional[str] = None
    tool_calls: tuple[ToolCall, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "content", self.content or "")
        object.__setattr__(self, "tool_calls", tuple(self.tool_calls or ()))
        if self.role == MessageRole.TOOL:
            if not self.tool_call_id or not self.tool_call_id.strip():
                raise ValueError("tool message requires a tool_call_id")
            if self.tool_calls:
                raise ValueError("tool message must not carry tool calls")
        elif self.role == MessageRole.SYSTEM:
            if self.tool_call_id or self.tool_calls:
                raise ValueError("system message must not carry tool data")
        elif self.role == MessageRole.USER and self.tool_calls:
            raise ValueError("only assistant messages may carry tool calls")

    @classmethod
    def system(cls, content: str) -> ChatMessage:
        return cls(MessageRole.SYSTEM, content)

    @classmethod
    def user(cls, content: str) -> ChatMessage:
        return cls(MessageRole.USER, content)

    @classmethod
    def assistant(cls, content: str, tool_calls: list[ToolCall] | tuple[ToolCall, ...] = ()) -> ChatMessage:
        return cls(MessageRole.ASSISTANT, content, tool_calls=tuple(tool_calls))

    @classmethod
    def tool(cls, content: str, tool_call_id: str) -> ChatMessage:
        return cls(MessageRole.TOOL, content, tool_call_id=tool_call_id)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": str(self.role), "content": self.content}
        if self.tool_call_id:
            data["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            data["tool_calls"] = [c.to_dict() for c in self.tool_calls]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChatMessage:
        return cls(
            role=MessageRole(str(data.get("role", "user")).lower()),
            content=str(data.get("content") or ""),
            tool_call_id=data.get("tool_call_id") or None,
            tool_calls=tuple(ToolCall.from_dict(c) for c in data.get("tool_calls") or ()),
        )


@dataclass(frozen=True)
class AgentResult:
    content: str
    transcript: tuple[ChatMessage, ...]
    usage: dict[str, Any] = field(default_factory=dict)

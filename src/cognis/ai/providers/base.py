"""Common provider interface and reply shape."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from cognis.core.messages import ChatMessage, ToolCall

ERROR_PREFIX = "Error calling LLM:"

# Provider default endpoints.
OPENROUTER_API_BASE = "https://openrouter.ai/api/v1"
OPENAI_API_BASE = "https://api.openai.com/v1"
ANTHROPIC_API_BASE = "https://api.anthropic.com/v1"
COPILOT_API_BASE = "https://api.githubcopilot.com"
CODEX_ENDPOINT = "https://chatgpt.com/backend-api/codex/responses"

MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_MS = 250
MAX_BACKOFF_MS = 2000


@dataclass
class LLMResponse:
    """Unified reply from any provider.

    A fatal failure is an ordinary reply whose content starts with
    ``ERROR_PREFIX`` and which carries no tool calls.
    """

    content: str = ""
    tool_calls: list[ToolCall] = field(default_factory=list)
    usage: dict[str, Any] = field(default_factory=dict)

    @property
    def is_error(self) -> bool:
        return (self.content or "").startswith(ERROR_PREFIX)

    @property
    def has_tool_calls(self) -> bool:
        return bool(self.tool_calls)

    @classmethod
    def error(cls, detail: str, usage: Optional[dict[str, Any]] = None) -> LLMResponse:
        return cls(content=f"{ERROR_PREFIX} {detail}", usage=dict(usage or {}))


class LLMProvider(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    async def chat(
        self,
        model: str,
        messages: list[ChatMessage],
        tools: Optional[list[dict[str, Any]]] = None,
    ) -> LLMResponse:
        """Send the transcript; ``tools`` are ``{type:function, function:{...}}`` definitions."""
        ...

    async def aclose(self) -> None:
        return None


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Decode a tool-call argument payload; blank or malformed input gives ``{}``."""
    if isinstance(raw, dict):
        return raw
    if raw is None:
        return {}
    text = str(raw).strip()
    if not text:
        return {}
    try:
        parsed = json.loads(text)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


def function_spec(tool: dict[str, Any]) -> dict[str, Any]:
    """Unwrap ``{type:function, function:{...}}`` to the inner function block."""
    inner = tool.get("function") if isinstance(tool.get("function"), dict) else tool
    return {
        "name": str(inner.get("name") or ""),
        "description": str(inner.get("description") or ""),
        "parameters": inner.get("parameters") or {"type": "object", "properties": {}},
    }


def next_backoff(current_ms: int) -> int:
    return min(current_ms * 2, MAX_BACKOFF_MS)


def is_retryable_status(status: int) -> bool:
    return status == 429 or status >= 500

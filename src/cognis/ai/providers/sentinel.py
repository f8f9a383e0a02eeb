"""Providers that never touch the network."""

from __future__ import annotations

from typing import Any, Optional

from cognis.ai.providers.base import LLMProvider, LLMResponse
from cognis.core.messages import ChatMessage
from cognis.core.types import MessageRole


class DisabledProvider(LLMProvider):
    """Stands in for an unconfigured slot so fallback chains skip it."""

    def __init__(self, name: str, reason: str = "missing API key"):
        self._name = name
        self._reason = reason

    @property
    def name(self) -> str:
        return self._name

    async def chat(
        self,
        model: str,
        messages: list[ChatMessage],
        tools: Optional[list[dict[str, Any]]] = None,
    ) -> LLMResponse:
        return LLMResponse.error(
            f"provider {self._name} is not configured ({self._reason})",
            usage={"provider": self._name, "disabled": True},
        )


class EchoProvider(LLMProvider):
    """Replies with the latest user message; useful offline."""

    def __init__(self, name: str = "echo"):
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    async def chat(
        self,
        model: str,
        messages: list[ChatMessage],
        tools: Optional[list[dict[str, Any]]] = None,
    ) -> LLMResponse:
        last_user = next((m.content for m in reversed(messages) if m.role == MessageRole.USER), "")
        return LLMResponse(content=f"[{self._name}] {last_user}", usage={"provider": self._name})

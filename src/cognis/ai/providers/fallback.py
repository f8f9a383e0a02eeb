"""Provider chain where the first non-error reply wins."""

from __future__ import annotations

from typing import Any, Optional, Sequence

from cognis.ai.providers.base import LLMProvider, LLMResponse
from cognis.core.messages import ChatMessage
from cognis.log import get_logger

logger = get_logger(__name__)

MAX_LOGGED_ERROR = 300


class FallbackProvider(LLMProvider):
    def __init__(self, name: str, chain: Sequence[LLMProvider]):
        self._name = name
        self._chain = tuple(chain)

    @property
    def name(self) -> str:
        return self._name

    @property
    def chain(self) -> tuple[LLMProvider, ...]:
        return self._chain

    async def chat(
        self,
        model: str,
        messages: list[ChatMessage],
        tools: Optional[list[dict[str, Any]]] = None,
    ) -> LLMResponse:
        last = LLMResponse.error("no providers in fallback chain")
        for provider in self._chain:
            last = await provider.chat(model, messages, tools)
            if not last.is_error:
                logger.debug("provider_served", provider=provider.name, chain=self._name)
                return last
            logger.warning(
                "provider_failed",
                provider=provider.name,
                chain=self._name,
                error=_truncate(last.content, MAX_LOGGED_ERROR),
            )
        return last

    async def aclose(self) -> None:
        for provider in self._chain:
            await provider.aclose()


def _truncate(value: str, limit: int) -> str:
    if not value:
        return ""
    return value if len(value) <= limit else value[:limit] + "..."

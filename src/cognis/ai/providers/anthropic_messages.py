"""Anthropic Messages API provider using the official SDK."""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import anthropic
import httpx

from cognis.ai.providers.base import (
    ANTHROPIC_API_BASE,
    DEFAULT_BACKOFF_MS,
    MAX_ATTEMPTS,
    LLMProvider,
    LLMResponse,
    function_spec,
    is_retryable_status,
    next_backoff,
    parse_arguments,
)
from cognis.core.messages import ChatMessage, ToolCall
from cognis.core.types import MessageRole
from cognis.log import get_logger

logger = get_logger(__name__)

MAX_TOKENS = 4096
MODEL_PREFIX = "anthropic/"


class AnthropicProvider(LLMProvider):
    """System messages are hoisted into ``system``; tool traffic uses content blocks.

    The SDK's own retries are disabled so the shared retry policy applies.
    """

    def __init__(
        self,
        name: str,
        api_key: str,
        api_base: Optional[str] = None,
        extra_headers: Optional[dict[str, str]] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        backoff_ms: int = DEFAULT_BACKOFF_MS,
    ):
        self._name = name
        self._api_key = api_key or ""
        self._backoff_ms = backoff_ms
        base = (api_base or ANTHROPIC_API_BASE).rstrip("/")
        if base.endswith("/v1"):
            base = base[: -len("/v1")]
        self._client = anthropic.AsyncAnthropic(
            api_key=self._api_key or "unset",
            base_url=base,
            max_retries=0,
            timeout=httpx.Timeout(connect=20.0, read=90.0, write=20.0, pool=20.0),
            default_headers=extra_headers or None,
            http_client=http_client,
        )

    @property
    def name(self) -> str:
        return self._name

    async def chat(
        self,
        model: str,
        messages: list[ChatMessage],
        tools: Optional[list[dict[str, Any]]] = None,
    ) -> LLMResponse:
        if not self._api_key.strip():
            return LLMResponse.error(f"missing API key for provider {self._name}")

        kwargs: dict[str, Any] = {
            "model": _strip_prefix(model),
            "max_tokens": MAX_TOKENS,
            "messages": [_wire_message(m) for m in messages if m.role != MessageRole.SYSTEM],
        }
        system = "\n\n".join(m.content for m in messages if m.role == MessageRole.SYSTEM and m.content)
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = [
                {"name": spec["name"], "description": spec["description"], "input_schema": spec["parameters"]}
                for spec in map(function_spec, tools)
            ]

        backoff = self._backoff_ms
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                response = await self._client.messages.create(**kwargs)
            except anthropic.APIConnectionError as e:
                if attempt < MAX_ATTEMPTS:
                    logger.debug("provider_retry", provider=self._name, attempt=attempt, error=str(e))
                    await asyncio.sleep(backoff / 1000)
                    backoff = next_backoff(backoff)
                    continue
                return LLMResponse.error(str(e) or type(e).__name__)
            except anthropic.APIStatusError as e:
                if is_retryable_status(e.status_code) and attempt < MAX_ATTEMPTS:
                    logger.debug("provider_retry", provider=self._name, attempt=attempt, status=e.status_code)
                    await asyncio.sleep(backoff / 1000)
                    backoff = next_backoff(backoff)
                    continue
                return LLMResponse.error(
                    f"HTTP {e.status_code} {e.response.text}",
                    usage={"http_status": e.status_code},
                )
            except anthropic.AnthropicError as e:
                return LLMResponse.error(str(e) or type(e).__name__)

            logger.debug("api_response", provider=self._name, stop_reason=response.stop_reason)
            return _parse_message(response)
        return LLMResponse.error("retry attempts exhausted")

    async def aclose(self) -> None:
        await self._client.close()


def _strip_prefix(model: str) -> str:
    return model[len(MODEL_PREFIX):] if model.startswith(MODEL_PREFIX) else model


def _wire_message(message: ChatMessage) -> dict[str, Any]:
    if message.role == MessageRole.TOOL:
        return {
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": message.tool_call_id, "content": message.content}
            ],
        }
    if message.role == MessageRole.ASSISTANT and message.tool_calls:
        blocks: list[dict[str, Any]] = []
        if message.content.strip():
            blocks.append({"type": "text", "text": message.content})
        blocks += [
            {"type": "tool_use", "id": call.id, "name": call.name, "input": dict(call.arguments)}
            for call in message.tool_calls
        ]
        return {"role": "assistant", "content": blocks}
    return {"role": str(message.role), "content": message.content}


def _parse_message(response: Any) -> LLMResponse:
    texts: list[str] = []
    tool_calls: list[ToolCall] = []
    for block in response.content or []:
        if block.type == "text":
            texts.append(block.text)
        elif block.type == "tool_use" and block.name:
            tool_calls.append(ToolCall(id=block.id, name=block.name, arguments=parse_arguments(block.input)))
    usage = response.usage.model_dump() if response.usage is not None else {}
    return LLMResponse(content="".join(texts), tool_calls=tool_calls, usage=usage)

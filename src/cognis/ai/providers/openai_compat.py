"""OpenAI-compatible ``/chat/completions`` client (OpenAI, OpenRouter, Copilot, Bedrock gateways)."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from cognis.ai.providers.base import (
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

DEFAULT_TIMEOUT = httpx.Timeout(connect=20.0, read=90.0, write=20.0, pool=20.0)


@dataclass
class _ToolBuffer:
    name: str = ""
    arguments: str = ""


class OpenAICompatProvider(LLMProvider):
    def __init__(
        self,
        name: str,
        api_key: str,
        api_base: str,
        extra_headers: Optional[dict[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
        backoff_ms: int = DEFAULT_BACKOFF_MS,
    ):
        self._name = name
        self._api_key = api_key or ""
        self._endpoint = api_base.rstrip("/") + "/chat/completions"
        self._extra_headers = dict(extra_headers or {})
        self._client = client or httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        self._backoff_ms = backoff_ms

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

        payload: dict[str, Any] = {
            "model": model,
            "messages": [_wire_message(m) for m in messages],
            "stream": True,
        }
        if tools:
            payload["tools"] = [{"type": "function", "function": function_spec(t)} for t in tools]
            payload["tool_choice"] = "auto"

        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
            **self._extra_headers,
        }

        backoff = self._backoff_ms
        for attempt in range(1, MAX_ATTEMPTS + 1):
            try:
                response = await self._client.post(self._endpoint, headers=headers, json=payload)
            except httpx.TransportError as e:
                if attempt < MAX_ATTEMPTS:
                    logger.debug("provider_retry", provider=self._name, attempt=attempt, error=str(e))
                    await asyncio.sleep(backoff / 1000)
                    backoff = next_backoff(backoff)
                    continue
                return LLMResponse.error(str(e) or type(e).__name__)
            except httpx.HTTPError as e:
                return LLMResponse.error(str(e) or type(e).__name__)

            if response.is_success:
                return _parse_body(response.text)
            if is_retryable_status(response.status_code) and attempt < MAX_ATTEMPTS:
                logger.debug("provider_retry", provider=self._name, attempt=attempt, status=response.status_code)
                await asyncio.sleep(backoff / 1000)
                backoff = next_backoff(backoff)
                continue
            return LLMResponse.error(
                f"HTTP {response.status_code} {response.text}",
                usage={"http_status": response.status_code},
            )
        return LLMResponse.error("retry attempts exhausted")

    async def aclose(self) -> None:
        await self._client.aclose()


def _wire_message(message: ChatMessage) -> dict[str, Any]:
    wire: dict[str, Any] = {"role": str(message.role), "content": message.content}
    if message.role == MessageRole.TOOL:
        wire["tool_call_id"] = message.tool_call_id
    elif message.role == MessageRole.ASSISTANT and message.tool_calls:
        wire["tool_calls"] = [
            {
                "id": call.id or f"call_{i}",
                "type": "function",
                "function": {"name": call.name, "arguments": json.dumps(call.arguments)},
            }
            for i, call in enumerate(message.tool_calls)
        ]
    return wire


def _parse_body(body: str) -> LLMResponse:
    if any(line.lstrip().startswith("data:") for line in body.splitlines()):
        return parse_sse(body)
    return parse_json(body)


def parse_sse(body: str) -> LLMResponse:
    """Fold streamed chat-completion chunks into a single reply."""
    parts: list[str] = []
    usage: dict[str, Any] = {}
    buffers: dict[str, _ToolBuffer] = {}
    index_ids: dict[int, str] = {}

    for raw_line in body.splitlines():
        line = raw_line.strip()
        if not line.startswith("data:"):
            continue
        data = line[len("data:"):].strip()
        if data == "[DONE]":
            break
        try:
            event = json.loads(data)
        except ValueError:
            continue
        if not isinstance(event, dict):
            continue
        if isinstance(event.get("usage"), dict):
            usage = event["usage"]
        for choice in event.get("choices") or []:
            delta = choice.get("delta") or {}
            if isinstance(delta.get("content"), str):
                parts.append(delta["content"])
            for call in delta.get("tool_calls") or []:
                index = _as_int(call.get("index"))
                call_id = call.get("id")
                if call_id:
                    index_ids[index] = call_id
                else:
                    call_id = index_ids.get(index) or f"call_{max(index, 0)}"
                buffer = buffers.setdefault(call_id, _ToolBuffer())
                function = call.get("function") or {}
                if function.get("name"):
                    buffer.name = function["name"]
                if function.get("arguments"):
                    buffer.arguments += function["arguments"]

    tool_calls = [
        ToolCall(id=call_id, name=buffer.name, arguments=parse_arguments(buffer.arguments))
        for call_id, buffer in buffers.items()
        if buffer.name
    ]
    return LLMResponse(content="".join(parts), tool_calls=tool_calls, usage=usage)


def parse_json(body: str) -> LLMResponse:
    """Parse a non-streamed completion."""
    try:
        document = json.loads(body) if body.strip() else {}
    except ValueError:
        return LLMResponse.error(f"unparseable response: {body[:300]}")
    if not isinstance(document, dict):
        document = {}
    choices = document.get("choices") or [{}]
    message = choices[0].get("message") or {}
    tool_calls = []
    for i, call in enumerate(message.get("tool_calls") or []):
        function = call.get("function") or {}
        if not function.get("name"):
            continue
        tool_calls.append(
            ToolCall(
                id=call.get("id") or f"call_{i}",
                name=function["name"],
                arguments=parse_arguments(function.get("arguments")),
            )
        )
    usage = document.get("usage") if isinstance(document.get("usage"), dict) else {}
    return LLMResponse(content=message.get("content") or "", tool_calls=tool_calls, usage=usage)


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0

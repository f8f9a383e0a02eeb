"""ChatGPT Codex ``/responses`` provider (event-stream dialect)."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from cognis.ai.providers.base import (
    CODEX_ENDPOINT,
    LLMProvider,
    LLMResponse,
    function_spec,
    parse_arguments,
)
from cognis.core.messages import ChatMessage, ToolCall
from cognis.core.types import MessageRole
from cognis.log import get_logger

logger = get_logger(__name__)

MODEL_PREFIXES = ("openai-codex/", "openai_codex/")


@dataclass
class _ToolBuffer:
    name: str = ""
    arguments: str = ""


class CodexResponsesProvider(LLMProvider):
    """Single attempt per call; transport failures become error replies."""

    def __init__(
        self,
        name: str,
        access_token: str,
        endpoint: Optional[str] = None,
        account_id: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._name = name
        self._access_token = access_token or ""
        self._endpoint = (endpoint or "").strip() or CODEX_ENDPOINT
        self._account_id = (account_id or "").strip()
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(connect=20.0, read=90.0, write=20.0, pool=20.0)
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
        if not self._access_token.strip():
            return LLMResponse.error(f"missing access token for provider {self._name}")

        payload = build_payload(model, messages, tools)
        headers = {
            "Authorization": f"Bearer {self._access_token}",
            "OpenAI-Beta": "responses=experimental",
            "Accept": "text/event-stream",
            "Content-Type": "application/json",
            "originator": "cognis",
        }
        if self._account_id:
            headers["chatgpt-account-id"] = self._account_id

        try:
            response = await self._client.post(self._endpoint, headers=headers, json=payload)
        except httpx.HTTPError as e:
            return LLMResponse.error(str(e) or type(e).__name__)

        if not response.is_success:
            return LLMResponse.error(
                f"HTTP {response.status_code} {response.text}",
                usage={"http_status": response.status_code},
            )
        body = response.text
        if "text/event-stream" in response.headers.get("content-type", "") or body.lstrip().startswith(("data:", "event:")):
            return parse_sse(body)
        return parse_json(body)

    async def aclose(self) -> None:
        await self._client.aclose()


def build_payload(
    model: str, messages: list[ChatMessage], tools: Optional[list[dict[str, Any]]]
) -> dict[str, Any]:
    normalized = model or ""
    for prefix in MODEL_PREFIXES:
        normalized = normalized.replace(prefix, "")

    payload: dict[str, Any] = {
        "model": normalized,
        "stream": True,
        "tool_choice": "auto",
        "parallel_tool_calls": True,
        "store": False,
        "input": _input_items(messages),
    }
    instructions = "\n\n".join(
        m.content for m in messages if m.role == MessageRole.SYSTEM and m.content.strip()
    )
    if instructions:
        payload["instructions"] = instructions
    if tools:
        payload["tools"] = [{"type": "function", **function_spec(t)} for t in tools]
    return payload


def _input_items(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    items: list[dict[str, Any]] = []
    for message in messages:
        match message.role:
            case MessageRole.SYSTEM:
                continue
            case MessageRole.USER:
                items.append(
                    {"role": "user", "content": [{"type": "input_text", "text": message.content}]}
                )
            case MessageRole.ASSISTANT:
                if message.content.strip() or not message.tool_calls:
                    items.append(
                        {
                            "type": "message",
                            "role": "assistant",
                            "content": [{"type": "output_text", "text": message.content}],
                            "status": "completed",
                        }
                    )
                items += [
                    {
                        "type": "function_call",
                        "call_id": call.id,
                        "name": call.name,
                        "arguments": json.dumps(call.arguments),
                    }
                    for call in message.tool_calls
                ]
            case MessageRole.TOOL:
                items.append(
                    {
                        "type": "function_call_output",
                        "call_id": message.tool_call_id,
                        "output": message.content,
                    }
                )
    return items


def parse_sse(body: str) -> LLMResponse:
    """Collect text deltas, function-call items and argument deltas from a response stream."""
    parts: list[str] = []
    usage: dict[str, Any] = {}
    buffers: dict[str, _ToolBuffer] = {}
    item_calls: dict[str, str] = {}

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
        event_type = str(event.get("type") or "")

        if "output_text.delta" in event_type:
            parts.append(str(event.get("delta") or ""))

        if event_type == "response.output_item.added":
            item = event.get("item") or {}
            if item.get("type") == "function_call":
                call_id = str(item.get("call_id") or item.get("id") or "")
                if item.get("id"):
                    item_calls[str(item["id"])] = call_id
                buffer = buffers.setdefault(call_id, _ToolBuffer())
                buffer.name = str(item.get("name") or buffer.name)
                buffer.arguments += str(item.get("arguments") or "")

        if "function_call_arguments.delta" in event_type:
            call_id = str(event.get("call_id") or item_calls.get(str(event.get("item_id") or ""), ""))
            buffers.setdefault(call_id, _ToolBuffer()).arguments += str(event.get("delta") or "")

        usage_node = event.get("usage")
        if usage_node is None and isinstance(event.get("response"), dict):
            usage_node = event["response"].get("usage")
        if isinstance(usage_node, dict):
            usage = usage_node

    tool_calls = [
        ToolCall(id=call_id, name=buffer.name, arguments=parse_arguments(buffer.arguments))
        for call_id, buffer in buffers.items()
        if buffer.name
    ]
    return LLMResponse(content="".join(parts), tool_calls=tool_calls, usage=usage)


def parse_json(body: str) -> LLMResponse:
    try:
        document = json.loads(body) if body.strip() else {}
    except ValueError:
        return LLMResponse.error(f"unparseable response: {body[:300]}")
    if not isinstance(document, dict):
        return LLMResponse()
    usage = document.get("usage") if isinstance(document.get("usage"), dict) else {}
    return LLMResponse(content=str(document.get("output_text") or ""), usage=usage)

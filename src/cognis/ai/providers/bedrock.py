"""AWS Bedrock provider on the Converse API (boto3 ``bedrock-runtime``)."""

from __future__ import annotations

import asyncio
import os
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from cognis.ai.providers.base import LLMProvider, LLMResponse, function_spec, parse_arguments
from cognis.core.messages import ChatMessage, ToolCall
from cognis.core.types import MessageRole
from cognis.log import get_logger

logger = get_logger(__name__)

MODEL_PREFIX = "bedrock/"
CLIENT_CONFIG = Config(connect_timeout=20, read_timeout=90)


def _first_present(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value and value.strip():
            return value.strip()
    return None


def build_client(
    region: Optional[str] = None,
    api_base: Optional[str] = None,
    access_key_id: Optional[str] = None,
    secret_access_key: Optional[str] = None,
    session_token: Optional[str] = None,
    profile: Optional[str] = None,
) -> Any:
    """Create a ``bedrock-runtime`` client.

    Credentials come from a static key pair (plus optional session token),
    else the named profile, else the default boto3 chain. The region falls
    back to ``AWS_REGION`` then ``AWS_DEFAULT_REGION``.
    """
    effective_region = _first_present(region, os.environ.get("AWS_REGION"), os.environ.get("AWS_DEFAULT_REGION"))
    if effective_region is None:
        raise ValueError("missing AWS region for Bedrock provider")

    if _first_present(access_key_id) and _first_present(secret_access_key):
        session = boto3.session.Session(
            aws_access_key_id=access_key_id.strip(),
            aws_secret_access_key=secret_access_key.strip(),
            aws_session_token=_first_present(session_token),
        )
    elif _first_present(profile):
        session = boto3.session.Session(profile_name=profile.strip())
    else:
        session = boto3.session.Session()

    return session.client(
        "bedrock-runtime",
        region_name=effective_region,
        endpoint_url=_first_present(api_base),
        config=CLIENT_CONFIG,
    )


class BedrockProvider(LLMProvider):
    """Calls are synchronous in boto3, so each one runs in a worker thread."""

    def __init__(self, name: str, client: Any):
        self._name = name
        self._client = client

    @classmethod
    def from_settings(
        cls,
        name: str,
        region: Optional[str] = None,
        api_base: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        session_token: Optional[str] = None,
        profile: Optional[str] = None,
    ) -> BedrockProvider:
        return cls(name, build_client(region, api_base, access_key_id, secret_access_key, session_token, profile))

    @property
    def name(self) -> str:
        return self._name

    async def chat(
        self,
        model: str,
        messages: list[ChatMessage],
        tools: Optional[list[dict[str, Any]]] = None,
    ) -> LLMResponse:
        if not model or not model.strip():
            return LLMResponse.error(f"missing model for provider {self._name}")

        request: dict[str, Any] = {
            "modelId": _strip_prefix(model),
            "messages": to_bedrock_messages(messages),
        }
        system = [{"text": m.content} for m in messages if m.role == MessageRole.SYSTEM and m.content.strip()]
        if system:
            request["system"] = system
        tool_config = to_tool_config(tools)
        if tool_config is not None:
            request["toolConfig"] = tool_config

        try:
            response = await asyncio.to_thread(self._client.converse, **request)
        except (BotoCoreError, ClientError) as e:
            return LLMResponse.error(str(e) or type(e).__name__)

        logger.debug("api_response", provider=self._name, stop_reason=response.get("stopReason"))
        return parse_converse_response(response)

    async def aclose(self) -> None:
        await asyncio.to_thread(self._client.close)


def _strip_prefix(model: str) -> str:
    normalized = model.strip()
    if normalized.lower().startswith(MODEL_PREFIX):
        return normalized[len(MODEL_PREFIX):]
    return normalized


def to_bedrock_messages(messages: list[ChatMessage]) -> list[dict[str, Any]]:
    """System messages are skipped here; tool results travel as ``user`` turns."""
    wire: list[dict[str, Any]] = []
    for message in messages:
        if message.role == MessageRole.SYSTEM:
            continue

        content: list[dict[str, Any]] = []
        if message.role == MessageRole.ASSISTANT and message.tool_calls:
            if message.content.strip():
                content.append({"text": message.content})
            index = 0
            for call in message.tool_calls:
                call_id = call.id
                if not call_id or not call_id.strip():
                    call_id = f"tool_{index}"
                    index += 1
                content.append({"toolUse": {"toolUseId": call_id, "name": call.name, "input": dict(call.arguments)}})
        elif message.role == MessageRole.TOOL:
            content.append(
                {
                    "toolResult": {
                        "toolUseId": message.tool_call_id or "",
                        "status": "success",
                        "content": [{"text": message.content}],
                    }
                }
            )
        elif message.content.strip():
            content.append({"text": message.content})

        if not content:
            continue
        role = "assistant" if message.role == MessageRole.ASSISTANT else "user"
        wire.append({"role": role, "content": content})
    return wire


def to_tool_config(tools: Optional[list[dict[str, Any]]]) -> Optional[dict[str, Any]]:
    specs = [function_spec(t) for t in tools or []]
    mapped = [
        {
            "toolSpec": {
                "name": spec["name"],
                "description": spec["description"],
                "inputSchema": {"json": spec["parameters"]},
            }
        }
        for spec in specs
        if spec["name"].strip()
    ]
    return {"tools": mapped} if mapped else None


def parse_converse_response(response: dict[str, Any]) -> LLMResponse:
    texts: list[str] = []
    tool_calls: list[ToolCall] = []
    message = (response.get("output") or {}).get("message") or {}
    for block in message.get("content") or []:
        if "text" in block:
            texts.append(block["text"])
        tool_use = block.get("toolUse")
        if tool_use and tool_use.get("name"):
            tool_calls.append(
                ToolCall(
                    id=str(tool_use.get("toolUseId") or ""),
                    name=tool_use["name"],
                    arguments=parse_arguments(tool_use.get("input")),
                )
            )

    usage: dict[str, Any] = {}
    raw_usage = response.get("usage")
    if raw_usage:
        usage = {
            "input_tokens": raw_usage.get("inputTokens"),
            "output_tokens": raw_usage.get("outputTokens"),
            "total_tokens": raw_usage.get("totalTokens"),
        }
    return LLMResponse(content="".join(texts), tool_calls=tool_calls, usage=usage)

"""Bedrock Converse dialect, exercised through ``botocore.stub.Stubber``."""

from __future__ import annotations

import boto3
import pytest
from botocore.stub import Stubber

from cognis.ai.providers.base import ERROR_PREFIX
from cognis.ai.providers.bedrock import BedrockProvider, build_client, to_tool_config
from cognis.core.messages import ChatMessage, ToolCall

TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "lookup",
            "description": "Look up the weather",
            "parameters": {"type": "object", "properties": {"city": {"type": "string"}}},
        },
    }
]


@pytest.fixture(autouse=True)
def aws_env(monkeypatch):
    for key in ("AWS_PROFILE", "AWS_REGION", "AWS_DEFAULT_REGION"):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def client():
    return boto3.client(
        "bedrock-runtime",
        region_name="us-east-1",
        aws_access_key_id="AK",
        aws_secret_access_key="S",
    )


def converse_reply(*content: dict, stop_reason: str = "end_turn") -> dict:
    return {
        "output": {"message": {"role": "assistant", "content": list(content)}},
        "stopReason": stop_reason,
        "usage": {"inputTokens": 12, "outputTokens": 5, "totalTokens": 17},
        "metrics": {"latencyMs": 40},
    }


async def test_tool_round_trip_maps_to_converse_blocks(client):
    messages = [
        ChatMessage.system("be brief"),
        ChatMessage.user("weather in Oslo?"),
        ChatMessage.assistant("", [ToolCall(id="", name="lookup", arguments={"city": "Oslo"})]),
        ChatMessage.tool("sunny", "tool_0"),
    ]
    expected = {
        "modelId": "anthropic.claude-3",
        "messages": [
            {"role": "user", "content": [{"text": "weather in Oslo?"}]},
            {
                "role": "assistant",
                "content": [{"toolUse": {"toolUseId": "tool_0", "name": "lookup", "input": {"city": "Oslo"}}}],
            },
            {
                "role": "user",
                "content": [
                    {"toolResult": {"toolUseId": "tool_0", "status": "success", "content": [{"text": "sunny"}]}}
                ],
            },
        ],
        "system": [{"text": "be brief"}],
        "toolConfig": to_tool_config(TOOLS),
    }
    reply = converse_reply(
        {"text": "Checking Bergen too. "},
        {"toolUse": {"toolUseId": "tu-1", "name": "lookup", "input": {"city": "Bergen"}}},
        stop_reason="tool_use",
    )

    with Stubber(client) as stubber:
        stubber.add_response("converse", reply, expected)
        response = await BedrockProvider("bedrock", client).chat("bedrock/anthropic.claude-3", messages, TOOLS)
        stubber.assert_no_pending_responses()

    assert response.content == "Checking Bergen too. "
    assert response.tool_calls == [ToolCall(id="tu-1", name="lookup", arguments={"city": "Bergen"})]
    assert response.usage == {"input_tokens": 12, "output_tokens": 5, "total_tokens": 17}


def test_tool_config_shape():
    assert to_tool_config(TOOLS) == {
        "tools": [
            {
                "toolSpec": {
                    "name": "lookup",
                    "description": "Look up the weather",
                    "inputSchema": {"json": {"type": "object", "properties": {"city": {"type": "string"}}}},
                }
            }
        ]
    }
    assert to_tool_config([]) is None


async def test_plain_text_reply_without_tools(client):
    expected = {"modelId": "amazon.nova-pro", "messages": [{"role": "user", "content": [{"text": "hi"}]}]}
    with Stubber(client) as stubber:
        stubber.add_response("converse", converse_reply({"text": "hello"}), expected)
        response = await BedrockProvider("bedrock", client).chat("amazon.nova-pro", [ChatMessage.user("hi")])

    assert response.content == "hello"
    assert response.tool_calls == []


async def test_service_error_becomes_error_reply(client):
    with Stubber(client) as stubber:
        stubber.add_client_error(
            "converse", service_error_code="ValidationException", service_message="bad model", http_status_code=400
        )
        response = await BedrockProvider("bedrock", client).chat("nope", [ChatMessage.user("hi")])

    assert response.is_error
    assert "ValidationException" in response.content
    assert response.tool_calls == []


async def test_blank_model_short_circuits(client):
    response = await BedrockProvider("bedrock", client).chat("  ", [ChatMessage.user("hi")])
    assert response.content == f"{ERROR_PREFIX} missing model for provider bedrock"


def test_client_needs_a_region():
    with pytest.raises(ValueError, match="missing AWS region"):
        build_client(access_key_id="AK", secret_access_key="S")


def test_client_region_and_endpoint(monkeypatch):
    monkeypatch.setenv("AWS_DEFAULT_REGION", "eu-west-1")
    client = build_client(
        access_key_id="AK",
        secret_access_key="S",
        session_token="T",
        api_base="https://bedrock.internal.example",
    )
    assert client.meta.region_name == "eu-west-1"
    assert client.meta.endpoint_url == "https://bedrock.internal.example"

    explicit = build_client(region="us-west-2", access_key_id="AK", secret_access_key="S")
    assert explicit.meta.region_name == "us-west-2"

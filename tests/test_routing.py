"""Provider registry, model-hint routing and fallback chains."""

from __future__ import annotations

import pytest

from cognis.ai.providers.base import LLMResponse
from cognis.ai.providers.fallback import FallbackProvider
from cognis.ai.providers.registry import ProviderRegistry, ProviderRouter, infer_provider_name
from cognis.ai.providers.sentinel import DisabledProvider, EchoProvider
from cognis.core.errors import ProviderNotRegisteredError, UnknownProviderError
from cognis.core.messages import ChatMessage


@pytest.mark.parametrize(
    "model, expected",
    [
        ("bedrock/anthropic.claude-3", "bedrock"),
        ("gpt-5-codex", "openai_codex"),
        ("github/gpt-4o", "github_copilot"),
        ("copilot-chat", "github_copilot"),
        ("anthropic/claude-opus-4-5", "anthropic"),
        ("gpt-4o", "openai"),
        ("openai/o3", "openai"),
        ("meta-llama/llama-3", "openrouter"),
        ("", "openrouter"),
        (None, "openrouter"),
    ],
)
def test_infer_provider_name(model, expected):
    assert infer_provider_name(model) == expected


def test_registry_normalizes_names():
    registry = ProviderRegistry()
    registry.register(EchoProvider("openai-codex"))
    assert registry.find("OpenAI_Codex") is not None
    assert registry.names() == ["openai_codex"]


def test_router_prefers_explicit_provider():
    registry = ProviderRegistry()
    registry.register(EchoProvider("openrouter"))
    registry.register(EchoProvider("anthropic"))
    router = ProviderRouter(registry)

    assert router.resolve("OpenRouter", "claude-sonnet").name == "openrouter"
    assert router.resolve(None, "claude-sonnet").name == "anthropic"
    assert router.resolve("  ", "llama").name == "openrouter"


def test_router_errors():
    router = ProviderRouter(ProviderRegistry())
    with pytest.raises(UnknownProviderError, match="Unknown provider: nope"):
        router.resolve("nope", None)
    with pytest.raises(ProviderNotRegisteredError, match="anthropic"):
        router.resolve(None, "claude-3")


async def test_fallback_skips_error_replies(scripted):
    failing = scripted("first", LLMResponse.error("HTTP 500 boom"))
    healthy = scripted("second", LLMResponse(content="ok"))
    chain = FallbackProvider("openrouter", [failing, healthy])

    reply = await chain.chat("m", [ChatMessage.user("hi")])

    assert reply.content == "ok"
    assert len(failing.calls) == 1
    assert len(healthy.calls) == 1


async def test_fallback_stops_at_first_success(scripted):
    first = scripted("first", LLMResponse(content="one"))
    second = scripted("second", LLMResponse(content="two"))
    reply = await FallbackProvider("x", [first, second]).chat("m", [ChatMessage.user("hi")])
    assert reply.content == "one"
    assert second.calls == []


async def test_fallback_returns_last_error_when_all_fail():
    chain = FallbackProvider("x", [DisabledProvider("a"), DisabledProvider("b")])
    reply = await chain.chat("m", [ChatMessage.user("hi")])
    assert reply.is_error
    assert "provider b is not configured" in reply.content


async def test_empty_fallback_chain_is_an_error():
    reply = await FallbackProvider("x", []).chat("m", [ChatMessage.user("hi")])
    assert reply.is_error

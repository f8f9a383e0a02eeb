"""Agent loop: tool execution, guardrail, iteration cap and post-turn bookkeeping."""

from __future__ import annotations

from typing import Any

import pytest

from cognis.ai.orchestrator import (
    GUARDRAIL_MESSAGE,
    MAX_ITERATIONS_MESSAGE,
    TOOL_REMINDER,
    AgentOrchestrator,
    AgentSettings,
    claims_unverified_action,
    mask_phone,
    mcp_metadata,
)
from cognis.ai.providers.base import LLMResponse
from cognis.ai.tools.base import Tool, ToolContext
from cognis.ai.tools.registry import ToolRegistry
from cognis.core.messages import ToolCall
from cognis.core.types import MessageRole
from cognis.memory.store import FileMemoryStore
from cognis.memory.summary import SessionSummaryManager
from cognis.services.profile import FileProfileStore
from cognis.storage.conversation_repo import FileConversationStore


class EchoTool(Tool):
    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echo text back"

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> str:
        return str(args.get("text", ""))


class BrokenTool(Tool):
    @property
    def name(self) -> str:
        return "broken"

    @property
    def description(self) -> str:
        return "Always fails"

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> str:
        raise RuntimeError("kaboom")


@pytest.fixture
def tools() -> ToolRegistry:
    registry = ToolRegistry()
    registry.register(EchoTool())
    registry.register(BrokenTool())
    return registry


@pytest.fixture
def settings() -> AgentSettings:
    return AgentSettings(system_prompt="You are a test agent.", provider="scripted", model="test-model")


def tool_reply(*calls: ToolCall) -> LLMResponse:
    return LLMResponse(tool_calls=list(calls))


async def test_tool_then_answer(scripted, make_router, tools, settings):
    provider = scripted(
        "scripted",
        tool_reply(ToolCall(id="t1", name="echo", arguments={"text": "x"})),
        LLMResponse(content="final answer"),
    )
    agent = AgentOrchestrator(make_router(provider), tools)

    result = await agent.run("echo x please", settings)

    assert result.content == "final answer"
    assert [m.role for m in result.transcript] == [
        MessageRole.SYSTEM, MessageRole.USER, MessageRole.ASSISTANT, MessageRole.TOOL, MessageRole.ASSISTANT,
    ]
    assert result.transcript[2].tool_calls[0].name == "echo"
    assert result.transcript[3].content == "x"
    assert result.transcript[3].tool_call_id == "t1"
    assert provider.calls[0]["model"] == "test-model"
    assert {d["function"]["name"] for d in provider.calls[0]["tools"]} == {"echo", "broken"}


async def test_guardrail_replaces_unverified_claims(scripted, make_router, tools, settings):
    provider = scripted("scripted", LLMResponse(content="Done, text sent successfully to your wife."))
    agent = AgentOrchestrator(make_router(provider), tools)

    result = await agent.run("Send a text to my wife", settings)

    assert result.content == GUARDRAIL_MESSAGE
    assert len(provider.calls) == 2
    reminder = provider.calls[1]["messages"][-1]
    assert reminder.role == MessageRole.SYSTEM
    assert reminder.content == TOOL_REMINDER


async def test_guardrail_accepts_answer_after_reminder(scripted, make_router, tools, settings):
    provider = scripted(
        "scripted",
        LLMResponse(content="Done, message sent."),
        LLMResponse(content="I cannot text anyone yet; no messaging tool is connected."),
    )
    result = await AgentOrchestrator(make_router(provider), tools).run("send a text to Ana", settings)
    assert result.content.startswith("I cannot text anyone yet")


async def test_claim_after_a_tool_ran_is_trusted(scripted, make_router, tools, settings):
    provider = scripted(
        "scripted",
        tool_reply(ToolCall(id="t1", name="echo", arguments={"text": "sms queued"})),
        LLMResponse(content="Done, text sent."),
    )
    result = await AgentOrchestrator(make_router(provider), tools).run("send a text to Ana", settings)
    assert result.content == "Done, text sent."


async def test_unknown_and_failing_tools_feed_errors_back(scripted, make_router, tools, settings):
    provider = scripted(
        "scripted",
        tool_reply(ToolCall(id="", name="nope"), ToolCall(id="", name="broken")),
        LLMResponse(content="recovered"),
    )
    result = await AgentOrchestrator(make_router(provider), tools).run("do things", settings)

    tool_messages = [m for m in result.transcript if m.role == MessageRole.TOOL]
    assert [m.tool_call_id for m in tool_messages] == ["call_0", "call_1"]
    assert tool_messages[0].content == "Error: Tool 'nope' not found"
    assert tool_messages[1].content == "Error executing tool 'broken': kaboom"
    assert result.content == "recovered"


async def test_iteration_cap(scripted, make_router, tools):
    provider = scripted("scripted", tool_reply(ToolCall(id="t", name="echo", arguments={"text": "again"})))
    settings = AgentSettings(provider="scripted", model="m", max_tool_iterations=3)

    result = await AgentOrchestrator(make_router(provider), tools).run("loop", settings)

    assert result.content == MAX_ITERATIONS_MESSAGE
    assert len(provider.calls) == 3
    assert result.transcript[-1].content == MAX_ITERATIONS_MESSAGE


async def test_provider_error_is_returned_as_content(scripted, make_router, tools, settings):
    provider = scripted("scripted", LLMResponse.error("HTTP 500 boom", usage={"http_status": 500}))
    result = await AgentOrchestrator(make_router(provider), tools).run("hi", settings)
    assert result.content == "Error calling LLM: HTTP 500 boom"
    assert result.usage == {"http_status": 500}


def test_settings_defaults():
    settings = AgentSettings(model="  ", max_tool_iterations=0)
    assert settings.model == "anthropic/claude-opus-4-5"
    assert settings.max_tool_iterations == 1
    assert "Cognis" in settings.system_prompt


async def test_tool_events_are_audited(scripted, make_router, tools, settings, observability):
    provider = scripted(
        "scripted",
        tool_reply(ToolCall(id="a", name="echo", arguments={"text": "abc"}), ToolCall(id="b", name="broken")),
        LLMResponse(content="ok"),
    )
    agent = AgentOrchestrator(make_router(provider), tools, ToolContext(observability=observability))

    await agent.run("go", settings, metadata={"client_id": "web-1", "task_id": "task-9", "other": "x"})

    events = observability.recent(10)
    by_type: dict[str, list] = {}
    for event in events:
        by_type.setdefault(event.type, []).append(event)
    assert len(by_type["tool_started"]) == 2
    (succeeded,) = by_type["tool_succeeded"]
    (failed,) = by_type["tool_failed"]
    assert succeeded.attributes["tool_name"] == "echo"
    assert succeeded.attributes["output_chars"] == 3
    assert succeeded.attributes["client_id"] == "web-1"
    assert succeeded.attributes["task_id"] == "task-9"
    assert "other" not in succeeded.attributes
    assert failed.attributes["error"] == "kaboom"


async def test_unknown_tool_is_audited_as_failed(scripted, make_router, tools, settings, observability):
    provider = scripted(
        "scripted",
        tool_reply(ToolCall(id="x", name="nope", arguments={"q": 1})),
        LLMResponse(content="ok"),
    )
    agent = AgentOrchestrator(make_router(provider), tools, ToolContext(observability=observability))

    await agent.run("go", settings, metadata={"client_id": "web-1"})

    (event,) = observability.recent(10)
    assert event.type == "tool_failed"
    assert event.attributes["tool_name"] == "nope"
    assert event.attributes["error"] == "not_found"
    assert event.attributes["client_id"] == "web-1"


async def test_turn_is_persisted_and_remembered(scripted, make_router, tools, settings, workspace, clock):
    memory = FileMemoryStore(workspace / "memory" / "memories.json", clock)
    summary = SessionSummaryManager(workspace / "memory" / "session-summary.txt")
    profile = FileProfileStore(workspace / "profile.json")
    profile.set_field("name", "Ana")
    conversations = FileConversationStore(workspace / "memory" / "history.json")
    memory.remember("Ana drinks espresso every morning", tags=["coffee"])

    provider = scripted("scripted", LLMResponse(content="Noted."))
    agent = AgentOrchestrator(
        make_router(provider),
        tools,
        ToolContext(workspace=workspace, memory=memory, profile=profile, summary=summary),
        conversations,
        clock=clock,
    )

    await agent.run("My name is Ana. What espresso should I buy?", settings)

    system_prompt = provider.calls[0]["messages"][0].content
    assert system_prompt.startswith("You are a test agent.")
    assert "## Identity And Branding Policy" in system_prompt
    assert "**Name:** Ana" in system_prompt
    assert "- Ana drinks espresso every morning" in system_prompt

    (turn,) = await conversations.list()
    assert turn.prompt == "My name is Ana. What espresso should I buy?"
    assert turn.response == "Noted."
    assert turn.created_at == clock.now

    assert any(e.content == "User name is Ana" for e in memory.list())
    assert summary.current_summary().endswith("| Assistant: Noted.")

    await agent.run("and tea?", settings)
    second_prompt = provider.calls[1]["messages"][0].content
    assert "## Session Summary" in second_prompt


@pytest.mark.parametrize(
    "prompt, reply, expected",
    [
        ("Send a text to my wife", "Done, text sent.", True),
        ("please pay the invoice", "Payment sent.", True),
        ("Order pizza", "Here are some options.", False),
        ("What is the weather?", "Done.", False),
        ("", "done", False),
    ],
)
def test_claims_unverified_action(prompt, reply, expected):
    assert claims_unverified_action(prompt, reply) is expected


def test_mcp_metadata():
    output = '{"http_status": 201, "http_ok": true, "data": {"sid": "SM1", "status": "queued", "to": "+1 555 010 9999"}}'
    assert mcp_metadata("mcp", {"tool": "twilio.send_sms"}, output) == {
        "mcp_http_status": 201,
        "mcp_http_ok": True,
        "mcp_tool": "twilio.send_sms",
        "provider_sid": "SM1",
        "provider_status": "queued",
        "provider_to": "***9999",
    }
    assert mcp_metadata("mcp", {}, "not json") == {}
    assert mcp_metadata("echo", {}, output) == {}


@pytest.mark.parametrize(
    "value, masked",
    [("+1 (555) 010-9999", "***9999"), ("alice@example.com", "alice@example.com"), ("", "")],
)
def test_mask_phone(value, masked):
    assert mask_phone(value) == masked

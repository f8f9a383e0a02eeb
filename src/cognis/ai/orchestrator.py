"""Bounded LLM/tool iteration loop producing one terminal reply per run."""

from __future__ import annotations

import dataclasses
import json
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from cognis.ai.providers.registry import ProviderRouter
from cognis.ai.tools.base import Tool, ToolContext
from cognis.ai.tools.mcp import MCP_TOOL_NAME
from cognis.ai.tools.registry import ToolRegistry
from cognis.core.messages import AgentResult, ChatMessage, ToolCall
from cognis.log import get_logger
from cognis.memory.extractor import HeuristicMemoryExtractor, MemoryExtractor
from cognis.storage.conversation_repo import ConversationStore
from cognis.storage.models import ConversationTurn

logger = get_logger(__name__)

DEFAULT_MODEL = "anthropic/claude-opus-4-5"
DEFAULT_MAX_TOOL_ITERATIONS = 20
DEFAULT_SYSTEM_PROMPT = (
    "You are Cognis. Always present yourself only as Cognis and do not disclose "
    "underlying model/provider branding."
)
RECALL_LIMIT = 8
MAX_ITERATIONS_MESSAGE = "Stopped after max tool iterations"

IDENTITY_POLICY = """## Identity And Branding Policy
- You are Cognis.
- Never claim to be Claude, Anthropic, OpenAI, or any other underlying model/provider.
- If asked who created or built you, answer: "I am Cognis." and keep the response focused on Cognis capabilities.
- Do not mention internal provider names, model names, or vendor ownership unless explicitly asked for low-level technical diagnostics.
"""

GUARDRAIL_MESSAGE = (
    "I could not verify execution of that external action yet. "
    "I need to run the relevant tool first and confirm its result before I can say it was sent/completed."
)
TOOL_REMINDER = (
    "External actions must be executed via tools before confirmation. "
    "If the user asked to send/pay/order/call, call the required tool now."
)
ACTION_INTENTS = (
    "send a text", "text my", "sms", "send message", "message my",
    "call ", "pay ", "purchase ", "buy ", "order ", "book ", "request ride", "uber", "lyft", "twilio",
)
COMPLETION_CLAIMS = (
    "text sent", "message sent", "sent to", "done", "i sent", "i've sent",
    "completed", "payment sent", "order placed",
)
PHONE_PATTERN = re.compile(r"^\+?[0-9()\-\s]{7,}$")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AgentSettings:
    system_prompt: Optional[str] = None
    provider: Optional[str] = None
    model: Optional[str] = None
    max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_tool_iterations", max(1, self.max_tool_iterations))
        if not self.model or not self.model.strip():
            object.__setattr__(self, "model", DEFAULT_MODEL)
        if self.system_prompt is None:
            object.__setattr__(self, "system_prompt", DEFAULT_SYSTEM_PROMPT)


class AgentOrchestrator:
    """Runs one user utterance to a terminal reply.

    Each iteration asks the resolved provider for a reply. Tool calls are
    executed in order and their outputs appended to the transcript; a reply
    without tool calls ends the run. Replies that claim an external action
    was performed when no tool ran are challenged once and then replaced by
    a fixed guardrail message.

    After the run the turn is persisted, memories are extracted and the
    session summary is updated. These steps are best-effort and never fail
    the run.
    """

    def __init__(
        self,
        router: ProviderRouter,
        tools: ToolRegistry,
        services: Optional[ToolContext] = None,
        conversations: Optional[ConversationStore] = None,
        extractor: Optional[MemoryExtractor] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._router = router
        self._tools = tools
        self._services = services or ToolContext()
        self._conversations = conversations
        self._extractor = extractor or HeuristicMemoryExtractor()
        self._clock = clock

    async def run(
        self,
        user_prompt: str,
        settings: AgentSettings,
        workspace: Optional[Path] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AgentResult:
        ctx = dataclasses.replace(self._services, workspace=workspace or self._services.workspace)
        run_attrs = _run_attributes(metadata or {})
        transcript: list[ChatMessage] = [
            ChatMessage.system(self._build_system_prompt(settings.system_prompt, user_prompt)),
            ChatMessage.user(user_prompt),
        ]

        provider = self._router.resolve(settings.provider, settings.model)
        logger.debug("agent_run_started", provider=provider.name, model=settings.model)

        usage: dict[str, Any] = {}
        executed_tool = False
        reminded = False
        for iteration in range(settings.max_tool_iterations):
            response = await provider.chat(settings.model, transcript, self._tools.definitions())
            usage = response.usage

            if not response.has_tool_calls:
                content = response.content or ""
                if not executed_tool and claims_unverified_action(user_prompt, content):
                    if not reminded:
                        reminded = True
                        logger.info("guardrail_reminder", iteration=iteration)
                        transcript.append(ChatMessage.system(TOOL_REMINDER))
                        continue
                    logger.warning("guardrail_triggered", iteration=iteration)
                    content = GUARDRAIL_MESSAGE
                return await self._finish(user_prompt, content, transcript, usage)

            calls = [
                call if call.id else dataclasses.replace(call, id=f"call_{i}")
                for i, call in enumerate(response.tool_calls)
            ]
            transcript.append(ChatMessage.assistant(response.content or "", calls))
            for call in calls:
                executed_tool = True
                output = await self._execute_tool(call, ctx, run_attrs)
                transcript.append(ChatMessage.tool(output, call.id))

        logger.warning("agent_max_iterations", iterations=settings.max_tool_iterations)
        return await self._finish(user_prompt, MAX_ITERATIONS_MESSAGE, transcript, usage)

    async def _finish(
        self,
        user_prompt: str,
        content: str,
        transcript: list[ChatMessage],
        usage: dict[str, Any],
    ) -> AgentResult:
        transcript.append(ChatMessage.assistant(content))
        result = AgentResult(content=content, transcript=tuple(transcript), usage=dict(usage))
        await self._post_process_turn(user_prompt, result)
        return result

    async def _execute_tool(self, call: ToolCall, ctx: ToolContext, run_attrs: dict[str, Any]) -> str:
        tool = self._tools.get(call.name)
        if tool is None:
            self._record_tool_event(
                "tool_failed", call.name, call.arguments, None, time.monotonic(), run_attrs, error="not_found"
            )
            return f"Error: Tool '{call.name}' not found"
        return await self._safely_execute(tool, call.arguments, ctx, run_attrs)

    async def _safely_execute(
        self,
        tool: Tool,
        arguments: dict[str, Any],
        ctx: ToolContext,
        run_attrs: dict[str, Any],
    ) -> str:
        started = time.monotonic()
        self._record_tool_event("tool_started", tool.name, arguments, None, started, run_attrs)
        try:
            output = await tool.execute(dict(arguments), ctx)
        except Exception as e:
            logger.warning("tool_failed", tool_name=tool.name, error=str(e), exc_info=True)
            self._record_tool_event(
                "tool_failed", tool.name, arguments, None, started, run_attrs, error=str(e) or "execution_error"
            )
            return f"Error executing tool '{tool.name}': {e}"
        output = "" if output is None else str(output)
        self._record_tool_event("tool_succeeded", tool.name, arguments, output, started, run_attrs)
        return output

    def _record_tool_event(
        self,
        event_type: str,
        tool_name: str,
        arguments: dict[str, Any],
        output: Optional[str],
        started: float,
        run_attrs: dict[str, Any],
        error: Optional[str] = None,
    ) -> None:
        observability = self._services.observability
        if observability is None:
            return
        attrs: dict[str, Any] = dict(run_attrs)
        attrs["tool_name"] = tool_name
        attrs["duration_ms"] = max(0, int((time.monotonic() - started) * 1000))
        attrs["input_chars"] = len(json.dumps(arguments, default=str))
        if error:
            attrs["error"] = error
        if output is not None:
            attrs["output_chars"] = len(output)
            if event_type == "tool_succeeded":
                attrs.update(mcp_metadata(tool_name, arguments, output))
        try:
            observability.record(event_type, attrs)
        except Exception as e:
            logger.debug("tool_audit_failed", event_type=event_type, error=str(e))

    async def _post_process_turn(self, user_prompt: str, result: AgentResult) -> None:
        await self._persist_turn(user_prompt, result)
        self._extract_memories(user_prompt, result.content)
        self._update_summary(user_prompt, result.content)

    async def _persist_turn(self, user_prompt: str, result: AgentResult) -> None:
        if self._conversations is None:
            return
        turn = ConversationTurn(
            created_at=self._clock(),
            prompt=user_prompt,
            response=result.content,
            transcript=result.transcript,
        )
        try:
            await self._conversations.append(turn)
        except Exception as e:
            logger.warning("conversation_persist_failed", error=str(e))

    def _extract_memories(self, user_prompt: str, response: str) -> None:
        memory = self._services.memory
        if memory is None:
            return
        try:
            for extracted in self._extractor.extract(user_prompt, response):
                memory.remember(extracted.content, "agent_loop", list(extracted.tags))
        except Exception as e:
            logger.debug("memory_extraction_skipped", error=str(e))

    def _update_summary(self, user_prompt: str, response: str) -> None:
        summary = self._services.summary
        if summary is None:
            return
        try:
            summary.record_turn(user_prompt, response)
        except Exception as e:
            logger.debug("session_summary_skipped", error=str(e))

    def _build_system_prompt(self, base_prompt: Optional[str], user_prompt: str) -> str:
        parts = [base_prompt or "", IDENTITY_POLICY]

        if self._services.profile is not None:
            try:
                profile = self._services.profile.format_for_prompt()
                if profile.strip():
                    parts.append(profile)
            except Exception as e:
                logger.debug("profile_injection_skipped", error=str(e))

        if self._services.memory is not None and user_prompt.strip():
            try:
                recalled = self._services.memory.recall(user_prompt, RECALL_LIMIT)
                if recalled:
                    lines = "".join(f"- {entry.content}\n" for entry in recalled)
                    parts.append(f"## Recalled Memories (relevant)\n\n{lines}")
            except Exception as e:
                logger.debug("memory_injection_skipped", error=str(e))

        if self._services.summary is not None:
            try:
                summary = self._services.summary.current_summary()
                if summary.strip():
                    parts.append(f"## Session Summary\n\n{summary}")
            except Exception as e:
                logger.debug("summary_injection_skipped", error=str(e))

        return "\n\n".join(parts)


def claims_unverified_action(user_prompt: str, content: str) -> bool:
    """True when the user asked for an external action and the reply claims it happened."""
    prompt = (user_prompt or "").strip().lower()
    response = (content or "").strip().lower()
    if not prompt or not response:
        return False
    return any(t in prompt for t in ACTION_INTENTS) and any(t in response for t in COMPLETION_CLAIMS)


def mcp_metadata(tool_name: str, arguments: dict[str, Any], output: str) -> dict[str, Any]:
    """Audit attributes pulled from an MCP bridge reply; non-JSON output yields none."""
    if tool_name != MCP_TOOL_NAME:
        return {}
    try:
        parsed = json.loads(output)
    except ValueError:
        return {}
    if not isinstance(parsed, dict):
        return {}

    metadata: dict[str, Any] = {}
    if parsed.get("http_status") is not None:
        metadata["mcp_http_status"] = parsed["http_status"]
    if parsed.get("http_ok") is not None:
        metadata["mcp_http_ok"] = parsed["http_ok"]
    mcp_tool = str(arguments.get("tool") or "").strip()
    if mcp_tool:
        metadata["mcp_tool"] = mcp_tool
    data = parsed.get("data")
    if isinstance(data, dict):
        if data.get("sid") is not None:
            metadata["provider_sid"] = str(data["sid"])
        if data.get("status") is not None:
            metadata["provider_status"] = str(data["status"])
        if data.get("to") is not None:
            metadata["provider_to"] = mask_phone(str(data["to"]))
    return metadata


def mask_phone(value: str) -> str:
    raw = (value or "").strip()
    if not raw or not PHONE_PATTERN.match(raw):
        return raw
    digits = re.sub(r"[^0-9]", "", raw)
    return "***" + digits[-4:]


def _run_attributes(metadata: dict[str, Any]) -> dict[str, Any]:
    attrs: dict[str, Any] = {}
    for key in ("client_id", "task_id"):
        value = metadata.get(key)
        text = "" if value is None else str(value).strip()
        if text:
            attrs[key] = text
    return attrs

"""Application wiring: providers, stores, services, tools and the agent loop."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from botocore.exceptions import BotoCoreError

from cognis.ai.orchestrator import AgentOrchestrator, AgentSettings
from cognis.ai.providers.anthropic_messages import AnthropicProvider
from cognis.ai.providers.base import (
    ANTHROPIC_API_BASE,
    CODEX_ENDPOINT,
    COPILOT_API_BASE,
    OPENAI_API_BASE,
    OPENROUTER_API_BASE,
    LLMProvider,
)
from cognis.ai.providers.bedrock import BedrockProvider
from cognis.ai.providers.codex import CodexResponsesProvider
from cognis.ai.providers.fallback import FallbackProvider
from cognis.ai.providers.openai_compat import OpenAICompatProvider
from cognis.ai.providers.registry import ProviderRegistry, ProviderRouter
from cognis.ai.providers.sentinel import DisabledProvider
from cognis.ai.tools.base import ToolContext
from cognis.ai.tools.registry import ToolRegistry
from cognis.ai.tools.vision import VisionTool
from cognis.config import CognisConfig, ProviderConfig, resolve_workspace
from cognis.core.errors import CognisError
from cognis.core.messages import AgentResult
from cognis.log import get_logger
from cognis.memory.store import FileMemoryStore
from cognis.memory.summary import SessionSummaryManager
from cognis.services.base import Service
from cognis.services.bus import MessageBus
from cognis.services.cron import CronService, FileCronStore
from cognis.services.mcp_client import McpClient
from cognis.services.observability import FileAuditStore, ObservabilityService
from cognis.services.payments.ledger import PaymentLedgerService
from cognis.services.payments.store import FilePaymentStore
from cognis.services.profile import FileProfileStore
from cognis.services.scheduler import CronDispatcher
from cognis.services.transcriber import NoopTranscriber, OpenAITranscriber, Transcriber
from cognis.services.workflow import WorkflowService
from cognis.storage.conversation_repo import (
    ConversationStore,
    FileConversationStore,
    SqliteConversationStore,
)
from cognis.storage.database import Database

logger = get_logger(__name__)

CONVERSATION_STORE_ENV = "COGNIS_CONVERSATION_STORE"
CONVERSATION_SQLITE_PATH_ENV = "COGNIS_CONVERSATION_SQLITE_PATH"
WS_TOKEN_ENV = "COGNIS_WS_TOKEN"

SESSION_SUMMARY_MAX_CHARS = 2000

GATEWAY_SYSTEM_PROMPT = (
    "You are Cognis, an autonomous intelligence engine focused on precise execution. "
    "Always present yourself only as Cognis and do not disclose underlying model/provider branding. "
    "Use the workflow tool for daily briefs, goal execution loops, and relationship nudges when relevant. "
    "Use the payments tool for guarded purchase flows and always enforce policy before execution."
)

# registered name -> slots tried in order
FALLBACK_CHAINS: dict[str, tuple[str, ...]] = {
    "openrouter": ("openrouter", "openai", "anthropic"),
    "openai": ("openai", "openrouter", "anthropic"),
    "anthropic": ("anthropic", "openrouter", "openai"),
    "openai_codex": ("openai_codex", "openai", "openrouter", "anthropic"),
    "github_copilot": ("github_copilot", "openai", "openrouter", "anthropic"),
    "bedrock": ("bedrock", "openrouter", "openai", "anthropic"),
}


def _base(config: ProviderConfig, default: str) -> str:
    return (config.api_base or "").strip() or default


def build_base_providers(config: CognisConfig) -> dict[str, LLMProvider]:
    """One concrete client (or a disabled stand-in) per provider slot."""
    providers = config.providers

    def openai_compat(name: str, slot: ProviderConfig, default_base: str) -> LLMProvider:
        if not slot.configured:
            return DisabledProvider(name, "missing API key")
        return OpenAICompatProvider(name, slot.api_key, _base(slot, default_base), slot.extra_headers)

    anthropic_slot = providers.anthropic
    if anthropic_slot.configured:
        anthropic: LLMProvider = AnthropicProvider(
            "anthropic",
            anthropic_slot.api_key,
            _base(anthropic_slot, ANTHROPIC_API_BASE),
            anthropic_slot.extra_headers,
        )
    else:
        anthropic = DisabledProvider("anthropic", "missing API key")

    codex_slot = providers.openai_codex
    if codex_slot.configured:
        codex: LLMProvider = CodexResponsesProvider(
            "openai_codex",
            codex_slot.api_key,
            endpoint=_base(codex_slot, CODEX_ENDPOINT),
            account_id=codex_slot.account_id,
        )
    else:
        codex = DisabledProvider("openai_codex", "missing API key")

    bedrock_slot = providers.bedrock
    if bedrock_slot.configured_for_bedrock:
        try:
            bedrock: LLMProvider = BedrockProvider.from_settings(
                "bedrock",
                region=bedrock_slot.region,
                api_base=bedrock_slot.api_base,
                access_key_id=bedrock_slot.access_key_id,
                secret_access_key=bedrock_slot.secret_access_key,
                session_token=bedrock_slot.session_token,
                profile=bedrock_slot.profile,
            )
        except (ValueError, BotoCoreError) as e:
            logger.warning("bedrock_unavailable", error=str(e))
            bedrock = DisabledProvider("bedrock", str(e))
    else:
        bedrock = DisabledProvider("bedrock", "bedrock is not configured")

    return {
        "openrouter": openai_compat("openrouter", providers.openrouter, OPENROUTER_API_BASE),
        "openai": openai_compat("openai", providers.openai, OPENAI_API_BASE),
        "anthropic": anthropic,
        "openai_codex": codex,
        "github_copilot": openai_compat("github_copilot", providers.github_copilot, COPILOT_API_BASE),
        "bedrock": bedrock,
    }


def build_provider_registry(base: dict[str, LLMProvider]) -> ProviderRegistry:
    registry = ProviderRegistry()
    for name, chain in FALLBACK_CHAINS.items():
        registry.register(FallbackProvider(name, [base[slot] for slot in chain]))
    return registry


def build_vision_tool(config: CognisConfig) -> Optional[VisionTool]:
    openai = config.providers.openai
    if openai.configured:
        return VisionTool(_base(openai, OPENAI_API_BASE) + "/chat/completions", openai.api_key, "gpt-4o")
    openrouter = config.providers.openrouter
    if openrouter.configured:
        return VisionTool(
            _base(openrouter, OPENROUTER_API_BASE) + "/chat/completions", openrouter.api_key, "openai/gpt-4o"
        )
    return None


def build_transcriber(config: CognisConfig) -> Transcriber:
    openai = config.providers.openai
    if openai.configured:
        return OpenAITranscriber(_base(openai, OPENAI_API_BASE), openai.api_key, "whisper-1")
    return NoopTranscriber()


def conversation_sqlite_path(workspace: Path) -> Path:
    raw = os.environ.get(CONVERSATION_SQLITE_PATH_ENV, "").strip()
    if not raw:
        return workspace / ".cognis" / "conversations.db"
    if raw.startswith("~/"):
        return Path.home() / raw[2:]
    return Path(raw)


class CognisApp(Service):
    """Top-level application: owns every store and service for one workspace."""

    def __init__(self, config: CognisConfig, workspace: Optional[Path] = None):
        self.config = config
        self.workspace = (
            Path(workspace).expanduser().resolve() if workspace else resolve_workspace(config.defaults.workspace)
        )
        ws = self.workspace

        self._base_providers = build_base_providers(config)
        self.providers = build_provider_registry(self._base_providers)

        self.cron = CronService(FileCronStore(ws / ".cognis" / "cron" / "jobs.json"))
        self.bus = MessageBus()
        self.memory = FileMemoryStore(ws / "memory" / "memories.json")
        self.profile = FileProfileStore(ws / "profile.json")
        self.summary = SessionSummaryManager(ws / "memory" / "session-summary.txt", SESSION_SUMMARY_MAX_CHARS)
        self._database: Optional[Database] = None
        self.conversations = self._build_conversation_store()
        self.observability = ObservabilityService(
            FileAuditStore(ws / ".cognis" / "observability" / "audit-events.json")
        )
        self.payments = PaymentLedgerService(
            FilePaymentStore(ws / ".cognis" / "payments" / "ledger.json"),
            observability=self.observability,
        )
        self.workflows = WorkflowService(self.profile, self.memory, self.summary, self.conversations)
        self.mcp = McpClient()

        self.tools = ToolRegistry()
        self.tools.discover_and_register(vision=build_vision_tool(config))

        self.orchestrator = AgentOrchestrator(
            ProviderRouter(self.providers),
            self.tools,
            ToolContext(
                workspace=ws,
                cron=self.cron,
                bus=self.bus,
                memory=self.memory,
                profile=self.profile,
                summary=self.summary,
                payments=self.payments,
                observability=self.observability,
                workflow=self.workflows,
                mcp=self.mcp,
            ),
            self.conversations,
        )
        self._started = False

    @property
    def service_name(self) -> str:
        return "cognis"

    def _build_conversation_store(self) -> ConversationStore:
        backend = os.environ.get(CONVERSATION_STORE_ENV, "sqlite").strip().lower()
        if backend == "sqlite":
            self._database = Database(conversation_sqlite_path(self.workspace))
            return SqliteConversationStore(self._database)
        return FileConversationStore(self.workspace / "memory" / "history.json")

    async def start(self) -> None:
        if self._started:
            return
        if self._database is not None:
            try:
                await self._database.initialize()
            except Exception as e:
                raise CognisError(
                    f"Failed to initialize SQLite conversation store at {self._database.path}: {e}"
                ) from e
        try:
            self.cron.ensure_daily_digest()
        except Exception as e:
            logger.warning("daily_digest_bootstrap_failed", error=str(e))
        self._started = True
        logger.info("cognis_started", workspace=str(self.workspace), providers=self.providers.names())

    async def stop(self) -> None:
        if not self._started:
            return
        await self.conversations.close()
        for provider in self._base_providers.values():
            try:
                await provider.aclose()
            except Exception as e:
                logger.debug("provider_close_failed", provider=provider.name, error=str(e))
        self._started = False
        logger.info("cognis_stopped")

    async def health_check(self) -> bool:
        return self._started

    def agent_settings(self, model: Optional[str] = None, provider: Optional[str] = None) -> AgentSettings:
        defaults = self.config.defaults
        return AgentSettings(
            system_prompt=GATEWAY_SYSTEM_PROMPT,
            provider=provider or defaults.provider,
            model=model or defaults.model,
            max_tool_iterations=defaults.max_tool_iterations,
        )

    async def run_agent(
        self,
        prompt: str,
        model: Optional[str] = None,
        provider: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AgentResult:
        return await self.orchestrator.run(prompt, self.agent_settings(model, provider), self.workspace, metadata)

    def gateway(self, ws_token: Optional[str] = None):
        """Build the gateway server; the app and the cron dispatcher start with it."""
        from cognis.gateway.server import GatewayServer

        dispatcher = CronDispatcher(self.cron, self.bus, self.workflows)
        return GatewayServer(
            workspace=self.workspace,
            transcriber=build_transcriber(self.config),
            orchestrator=self.orchestrator,
            agent_settings=self.agent_settings(),
            bus=self.bus,
            ws_token=os.environ.get(WS_TOKEN_ENV, "") if ws_token is None else ws_token,
            payments=self.payments,
            observability=self.observability,
            services=[self, dispatcher],
        )

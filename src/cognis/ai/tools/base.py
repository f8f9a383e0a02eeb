"""Abstract tool interface and the context tools run in."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from cognis.core.errors import ServiceNotConfiguredError, ServiceTypeError
from cognis.memory.store import MemoryStore
from cognis.memory.summary import SessionSummaryManager
from cognis.services.bus import MessageBus
from cognis.services.cron import CronService
from cognis.services.mcp_client import McpClient
from cognis.services.observability import ObservabilityService
from cognis.services.payments.ledger import PaymentLedgerService
from cognis.services.profile import FileProfileStore
from cognis.services.workflow import WorkflowService

# collaborator field -> (expected type, label used in "is not configured" errors)
_SERVICES: dict[str, tuple[type, str]] = {
    "cron": (CronService, "cron service"),
    "bus": (MessageBus, "message bus"),
    "memory": (MemoryStore, "memory store"),
    "profile": (FileProfileStore, "profile store"),
    "summary": (SessionSummaryManager, "session summary"),
    "payments": (PaymentLedgerService, "payment ledger"),
    "observability": (ObservabilityService, "observability service"),
    "workflow": (WorkflowService, "workflow service"),
    "mcp": (McpClient, "mcp client"),
}


@dataclass
class ToolContext:
    """Workspace plus the optional collaborators a tool may use."""

    workspace: Optional[Path] = None
    cron: Optional[CronService] = None
    bus: Optional[MessageBus] = None
    memory: Optional[MemoryStore] = None
    profile: Optional[FileProfileStore] = None
    summary: Optional[SessionSummaryManager] = None
    payments: Optional[PaymentLedgerService] = None
    observability: Optional[ObservabilityService] = None
    workflow: Optional[WorkflowService] = None
    mcp: Optional[McpClient] = None

    def require(self, name: str) -> Any:
        """Return the collaborator stored under ``name``.

        Raises :class:`ServiceNotConfiguredError` when it is absent and
        :class:`ServiceTypeError` when it has the wrong type.
        """
        expected, label = _SERVICES[name]
        service = getattr(self, name)
        if service is None:
            raise ServiceNotConfiguredError(f"{label} is not configured")
        if not isinstance(service, expected):
            raise ServiceTypeError(f"Service '{name}' is not of type {expected.__name__}")
        return service


class Tool(ABC):
    """Base class for all model-callable tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name sent to the model."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        ...

    @property
    def input_schema(self) -> dict[str, Any]:
        """JSON Schema dict describing accepted parameters."""
        return {"type": "object", "properties": {}}

    @abstractmethod
    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> str:
        """Run the tool and return a text result for the model."""
        ...

    def to_definition(self) -> dict[str, Any]:
        """Serialize to an OpenAI-style function definition."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.input_schema,
            },
        }


def text_arg(args: dict[str, Any], key: str, default: str = "") -> str:
    value = args.get(key)
    return default if value is None else str(value).strip()


def int_arg(args: dict[str, Any], key: str, default: int) -> int:
    value = args.get(key)
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(str(value).strip())
    except ValueError:
        try:
            return int(float(str(value).strip()))
        except ValueError:
            return default


def bool_arg(args: dict[str, Any], key: str, default: bool) -> bool:
    value = args.get(key)
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def list_arg(args: dict[str, Any], key: str) -> list[str]:
    value = args.get(key)
    if not isinstance(value, (list, tuple)):
        return []
    return [text for item in value if (text := str(item).strip())]

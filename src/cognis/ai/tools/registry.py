"""Tool registry for discovering and managing available tools."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, Optional

from cognis.ai.tools.base import Tool
from cognis.log import get_logger

if TYPE_CHECKING:
    from cognis.ai.tools.vision import VisionTool

logger = get_logger(__name__)


class ToolRegistry:
    """Name to tool mapping; registering a name again replaces the earlier tool."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}
        self._lock = threading.Lock()

    def register(self, tool: Tool) -> None:
        with self._lock:
            self._tools[tool.name] = tool
        logger.debug("tool_registered", tool_name=tool.name)

    def get(self, name: str) -> Optional[Tool]:
        with self._lock:
            return self._tools.get(name)

    def all_tools(self) -> list[Tool]:
        with self._lock:
            return list(self._tools.values())

    def definitions(self) -> list[dict[str, Any]]:
        return [tool.to_definition() for tool in self.all_tools()]

    def discover_and_register(self, vision: Optional[VisionTool] = None) -> None:
        """Import and register all built-in tools."""
        from cognis.ai.tools.cron import CronTool
        from cognis.ai.tools.filesystem import FileSystemTool
        from cognis.ai.tools.mcp import McpTool
        from cognis.ai.tools.memory import MemoryTool
        from cognis.ai.tools.message import MessageTool, NotifyTool
        from cognis.ai.tools.payments import PaymentsTool
        from cognis.ai.tools.profile import ProfileTool
        from cognis.ai.tools.workflow import WorkflowTool

        self.register(FileSystemTool())
        self.register(CronTool())
        self.register(MemoryTool())
        self.register(MessageTool())
        self.register(NotifyTool())
        self.register(ProfileTool())
        self.register(PaymentsTool())
        self.register(WorkflowTool())
        self.register(McpTool())
        if vision is not None:
            self.register(vision)

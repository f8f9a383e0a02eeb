"""Bridge to tools hosted on the MCP server."""

from __future__ import annotations

import json
from typing import Any

from cognis.ai.tools.base import Tool, ToolContext, text_arg
from cognis.services.mcp_client import McpClient

MCP_TOOL_NAME = "mcp"


class McpTool(Tool):
    @property
    def name(self) -> str:
        return MCP_TOOL_NAME

    @property
    def description(self) -> str:
        return "Discover and call tools exposed by MCP servers (actions: list_tools, call_tool)"

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": ["list_tools", "call_tool"]},
                "tool": {"type": "string"},
                "arguments": {"type": "object"},
            },
            "required": ["action"],
        }

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> str:
        action = text_arg(args, "action")
        try:
            client: McpClient = ctx.require("mcp")
            match action:
                case "list_tools":
                    return json.dumps(await client.list_tools(), indent=2)
                case "call_tool":
                    tool = text_arg(args, "tool")
                    if not tool:
                        return "Error: tool is required for action=call_tool"
                    arguments = args.get("arguments")
                    result = await client.call_tool(tool, arguments if isinstance(arguments, dict) else {})
                    return json.dumps(result, indent=2)
                case _:
                    return f"Error: unknown action: {action}"
        except Exception as e:
            return f"Error: {e}"

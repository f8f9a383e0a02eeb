"""Long-term memory tool."""

from __future__ import annotations

from typing import Any

from cognis.ai.tools.base import Tool, ToolContext, int_arg, list_arg, text_arg
from cognis.memory.store import MemoryEntry, MemoryStore


class MemoryTool(Tool):
    @property
    def name(self) -> str:
        return "memory"

    @property
    def description(self) -> str:
        return "Manage long-term memory: remember, recall, forget, list"

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": ["remember", "recall", "forget", "list"]},
                "content": {"type": "string"},
                "tags": {"type": "array", "items": {"type": "string"}},
                "query": {"type": "string"},
                "id": {"type": "string"},
                "maxResults": {"type": "integer"},
            },
            "required": ["action"],
        }

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> str:
        action = text_arg(args, "action")
        try:
            store: MemoryStore = ctx.require("memory")
            match action:
                case "remember":
                    content = text_arg(args, "content")
                    if not content:
                        return "Error: content is required"
                    entry = store.remember(content, "agent", list_arg(args, "tags"))
                    return f"Memory stored (id: {entry.id})"
                case "recall":
                    entries = store.recall(str(args.get("query") or ""), _positive(args, 10))
                    if not entries:
                        return "No matching memories found"
                    return "\n".join(_line(e) for e in entries)
                case "forget":
                    memory_id = text_arg(args, "id")
                    if not memory_id:
                        return "Error: id is required"
                    if store.forget(memory_id):
                        return f"Memory removed: {memory_id}"
                    return f"Memory not found: {memory_id}"
                case "list":
                    entries = store.recall("", _positive(args, 20))
                    if not entries:
                        return "No memories stored"
                    lines = [f"Stored memories ({store.count()} total):"]
                    lines += [_line(e) for e in entries]
                    return "\n".join(lines)
                case _:
                    return f"Error: unknown action: {action}"
        except Exception as e:
            return f"Error: {e}"


def _positive(args: dict[str, Any], default: int) -> int:
    value = int_arg(args, "maxResults", default)
    return value if value > 0 else default


def _line(entry: MemoryEntry) -> str:
    tags = f" ({', '.join(entry.tags)})" if entry.tags else ""
    return f"- [{entry.id}] {entry.content}{tags}"

"""Workspace file tool: read, write and list."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from cognis.ai.tools.base import Tool, ToolContext, text_arg
from cognis.ai.tools.guard import WorkspaceGuard

MAX_READ_BYTES = 500_000


class FileSystemTool(Tool):
    """Reads, writes and lists files; every path is confined to the workspace."""

    def __init__(self, guard: WorkspaceGuard | None = None):
        self._guard = guard or WorkspaceGuard()

    @property
    def name(self) -> str:
        return "filesystem"

    @property
    def description(self) -> str:
        return "Read, write, or list files in workspace"

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["read", "write", "list"],
                    "description": (
                        "'read' = read file content, "
                        "'write' = create or replace a file, "
                        "'list' = list directory contents"
                    ),
                },
                "path": {"type": "string", "description": "Path relative to the workspace"},
                "content": {"type": "string", "description": "File content (for 'write')"},
            },
            "required": ["action", "path"],
        }

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> str:
        action = text_arg(args, "action")
        path_arg = text_arg(args, "path")
        if not action or not path_arg:
            return "Error: action and path are required"

        try:
            target = self._guard.resolve(ctx.workspace, path_arg)
            match action:
                case "read":
                    return self._read_file(target)
                case "write":
                    content = args.get("content")
                    return self._write_file(target, "" if content is None else str(content))
                case "list":
                    return self._list_dir(target)
                case _:
                    return f"Error: unsupported action: {action}"
        except PermissionError:
            return f"Error: permission denied for '{path_arg}'"
        except Exception as e:
            return f"Error: {e}"

    @staticmethod
    def _read_file(path: Path) -> str:
        if not path.exists():
            return f"Error: file not found: {path}"
        if path.is_dir():
            return f"Error: path is a directory: {path}"
        size = path.stat().st_size
        if size > MAX_READ_BYTES:
            return f"Error: file is too large ({_format_size(size)}). Max 500KB."
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            return f"Error: '{path}' is a binary file and cannot be read as text."

    @staticmethod
    def _write_file(path: Path, content: str) -> str:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return f"Wrote {path}"

    @staticmethod
    def _list_dir(path: Path) -> str:
        if not path.exists():
            return f"Error: path not found: {path}"
        if not path.is_dir():
            return f"Error: path is not a directory: {path}"
        lines = []
        for entry in sorted(path.iterdir()):
            kind = "dir" if entry.is_dir() else "file"
            lines.append(f"{kind} {entry.relative_to(path)}")
        return "\n".join(lines)


def _format_size(size: float) -> str:
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}TB"

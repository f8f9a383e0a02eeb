"""Image and document analysis through an OpenAI-compatible vision endpoint."""

from __future__ import annotations

import base64
from pathlib import Path
from typing import Any, Optional

import httpx

from cognis.ai.tools.base import Tool, ToolContext, text_arg
from cognis.ai.tools.guard import WorkspaceGuard

DEFAULT_MODEL = "gpt-4o"
DEFAULT_QUESTION = "Describe this image in detail."

_MIME_TYPES = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".pdf": "application/pdf",
}


class VisionTool(Tool):
    def __init__(
        self,
        api_url: str,
        api_key: str,
        model: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        guard: Optional[WorkspaceGuard] = None,
    ):
        self._api_url = api_url or ""
        self._api_key = api_key or ""
        self._model = (model or "").strip() or DEFAULT_MODEL
        self._client = client or httpx.AsyncClient(timeout=60.0)
        self._guard = guard or WorkspaceGuard()

    @property
    def name(self) -> str:
        return "view_image"

    @property
    def description(self) -> str:
        return "Analyze an image/document file via OpenAI-compatible vision API"

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Workspace path of the file"},
                "question": {"type": "string"},
            },
            "required": ["path"],
        }

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> str:
        if not self._api_url.strip() or not self._api_key.strip():
            return "Error: vision is not configured"
        path_arg = text_arg(args, "path")
        if not path_arg:
            return "Error: path is required"
        question = text_arg(args, "question", DEFAULT_QUESTION) or DEFAULT_QUESTION

        try:
            path = self._guard.resolve(ctx.workspace, path_arg)
            data = path.read_bytes()
            encoded = base64.b64encode(data).decode("ascii")
            payload = {
                "model": self._model,
                "messages": [
                    {
                        "role": "user",
                        "content": [
                            {"type": "image_url", "image_url": {"url": f"data:{_mime(path)};base64,{encoded}"}},
                            {"type": "text", "text": question},
                        ],
                    }
                ],
                "max_tokens": 1024,
            }
            response = await self._client.post(
                self._api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
            if not response.is_success:
                return f"Error: vision API status {response.status_code}: {response.text}"
            choices = response.json().get("choices") or [{}]
            content = (choices[0].get("message") or {}).get("content")
            return content if isinstance(content, str) and content else "(empty response)"
        except Exception as e:
            return f"Error: {e}"


def _mime(path: Path) -> str:
    return _MIME_TYPES.get(path.suffix.lower(), "application/octet-stream")

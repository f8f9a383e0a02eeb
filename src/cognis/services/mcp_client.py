"""HTTP client for the companion MCP tool server."""

from __future__ import annotations

from typing import Any, Optional

import httpx

from cognis.log import get_logger

logger = get_logger(__name__)

DEFAULT_MCP_BASE_URL = "http://127.0.0.1:8791"


class McpClient:
    """Lists and invokes tools on an MCP bridge.

    Every parsed reply is annotated with ``http_status`` and ``http_ok`` so
    the caller can tell a tool-level failure from a transport one.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        raw = (base_url or "").strip() or DEFAULT_MCP_BASE_URL
        self._base_url = raw.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    async def list_tools(self) -> dict[str, Any]:
        return await self._request("GET", "/mcp/tools")

    async def call_tool(self, name: str, arguments: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        payload = {"name": name, "arguments": arguments or {}}
        logger.debug("mcp_call", tool=name)
        return await self._request("POST", "/mcp/call", json=payload)

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            response = await client.request(method, self._base_url + path, **kwargs)
        text = response.text
        parsed = response.json() if text.strip() else {}
        if not isinstance(parsed, dict):
            parsed = {"result": parsed}
        parsed["http_status"] = response.status_code
        parsed["http_ok"] = response.is_success
        return parsed

"""Shared fixtures: temp workspace, fixed clocks and scripted providers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import pytest

from cognis.ai.providers.base import LLMProvider, LLMResponse
from cognis.ai.providers.registry import ProviderRegistry, ProviderRouter
from cognis.core.messages import ChatMessage
from cognis.services.observability import FileAuditStore, ObservabilityService


class MutableClock:
    """Callable clock the test can move forward."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class ScriptedProvider(LLMProvider):
    """Returns queued replies in order; the last reply repeats once the queue is empty."""

    def __init__(self, name: str, replies: list[LLMResponse]):
        self._name = name
        self._replies = list(replies)
        self.calls: list[dict[str, Any]] = []

    @property
    def name(self) -> str:
        return self._name

    async def chat(
        self,
        model: str,
        messages: list[ChatMessage],
        tools: Optional[list[dict[str, Any]]] = None,
    ) -> LLMResponse:
        self.calls.append({"model": model, "messages": list(messages), "tools": tools})
        if len(self._replies) > 1:
            return self._replies.pop(0)
        return self._replies[0]


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "workspace"
    ws.mkdir()
    return ws


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def observability(workspace: Path, clock: MutableClock) -> ObservabilityService:
    return ObservabilityService(FileAuditStore(workspace / ".cognis" / "observability" / "audit-events.json"), clock)


def router_for(provider: LLMProvider) -> ProviderRouter:
    registry = ProviderRegistry()
    registry.register(provider)
    return ProviderRouter(registry)


@pytest.fixture
def scripted():
    """Factory fixture: ``scripted("name", reply, ...)`` builds a :class:`ScriptedProvider`."""

    def _make(name: str, *replies: LLMResponse) -> ScriptedProvider:
        return ScriptedProvider(name, list(replies))

    return _make


@pytest.fixture
def make_router():
    return router_for


@pytest.fixture(autouse=True)
def _restore_structlog_config():
    """``main()`` calls ``setup_logging``, which caches loggers bound to the
    stderr pytest captured for that test; restore the defaults and drop the
    cached loggers afterwards so later tests do not write to a closed stream."""
    import sys

    import structlog
    from structlog._config import BoundLoggerLazyProxy

    yield
    structlog.reset_defaults()
    for name, module in list(sys.modules.items()):
        if name == "cognis" or name.startswith("cognis."):
            for value in list(vars(module).values()):
                if isinstance(value, BoundLoggerLazyProxy):
                    vars(value).pop("bind", None)

"""Provider lookup by name and model-hint routing."""

from __future__ import annotations

import threading
from typing import Optional

from cognis.ai.providers.base import LLMProvider
from cognis.core.errors import ProviderNotRegisteredError, UnknownProviderError
from cognis.log import get_logger

logger = get_logger(__name__)


def normalize_name(name: Optional[str]) -> str:
    return (name or "").lower().replace("-", "_")


class ProviderRegistry:
    """Name to provider mapping; ``openai-codex`` and ``OpenAI_Codex`` are the same key."""

    def __init__(self) -> None:
        self._providers: dict[str, LLMProvider] = {}
        self._lock = threading.Lock()

    def register(self, provider: LLMProvider) -> None:
        with self._lock:
            self._providers[normalize_name(provider.name)] = provider
        logger.debug("provider_registered", provider=provider.name)

    def find(self, name: Optional[str]) -> Optional[LLMProvider]:
        with self._lock:
            return self._providers.get(normalize_name(name))

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._providers)

    def all(self) -> list[LLMProvider]:
        with self._lock:
            return list(self._providers.values())


class ProviderRouter:
    def __init__(self, registry: ProviderRegistry):
        self._registry = registry

    def resolve(self, preferred: Optional[str], model: Optional[str]) -> LLMProvider:
        """Return the preferred provider, or infer one from the model id."""
        if preferred and preferred.strip():
            provider = self._registry.find(preferred)
            if provider is None:
                raise UnknownProviderError(f"Unknown provider: {preferred}")
            return provider

        name = infer_provider_name(model)
        provider = self._registry.find(name)
        if provider is None:
            raise ProviderNotRegisteredError(f"Provider {name} is not registered")
        return provider


def infer_provider_name(model: Optional[str]) -> str:
    normalized = (model or "").lower()
    if normalized.startswith("bedrock/"):
        return "bedrock"
    if "codex" in normalized:
        return "openai_codex"
    if "copilot" in normalized or "github" in normalized:
        return "github_copilot"
    if "claude" in normalized:
        return "anthropic"
    if "gpt" in normalized or normalized.startswith("openai/"):
        return "openai"
    return "openrouter"

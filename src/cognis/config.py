"""Configuration loader with env-var interpolation, deep-merge onto defaults, and Pydantic validation.

The config document is JSON (``~/.cognis/config.json``) or YAML when the path
ends in ``.yaml``/``.yml``. Field keys are camelCase on disk; snake_case keys
are accepted as well. Provider slot names are snake_case, with ``-`` aliases.
"""

from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from cognis.log import get_logger

logger = get_logger(__name__)

DEFAULT_WORKSPACE = "~/.cognis/workspace"
DEFAULT_MODEL = "anthropic/claude-opus-4-5"

PROVIDER_SLOTS = (
    "openrouter",
    "openai",
    "anthropic",
    "openai_codex",
    "github_copilot",
    "bedrock",
    "bedrock_openai",
)

# Values under these keys are user data (header names), not config fields.
_OPAQUE_KEYS = {"extraHeaders", "extra_headers"}


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AgentDefaults(_CamelModel):
    workspace: str = DEFAULT_WORKSPACE
    provider: str = "openrouter"
    model: str = DEFAULT_MODEL
    max_tokens: int = 8192
    temperature: float = 0.7
    max_tool_iterations: int = 20


class AgentsConfig(_CamelModel):
    defaults: AgentDefaults = Field(default_factory=AgentDefaults)


class ProviderConfig(_CamelModel):
    api_key: str = ""
    api_base: Optional[str] = None
    auth_method: Optional[str] = None
    account_id: Optional[str] = None
    extra_headers: dict[str, str] = Field(default_factory=dict)
    region: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None
    profile: Optional[str] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    @property
    def configured_for_bedrock(self) -> bool:
        if _present(self.region) or _present(self.profile):
            return True
        return _present(self.access_key_id) and _present(self.secret_access_key)


class ProvidersConfig(BaseModel):
    model_config = ConfigDict(extra="ignore")

    openrouter: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)
    openai_codex: ProviderConfig = Field(default_factory=ProviderConfig)
    github_copilot: ProviderConfig = Field(default_factory=ProviderConfig)
    bedrock: ProviderConfig = Field(default_factory=ProviderConfig)
    bedrock_openai: ProviderConfig = Field(default_factory=ProviderConfig)

    def get(self, name: str) -> ProviderConfig:
        return getattr(self, name.strip().lower().replace("-", "_"))


class WebSearchConfig(_CamelModel):
    api_key: str = ""
    max_results: int = 5


class WebToolsConfig(_CamelModel):
    search: WebSearchConfig = Field(default_factory=WebSearchConfig)


class ToolsConfig(_CamelModel):
    web: WebToolsConfig = Field(default_factory=WebToolsConfig)


class CognisConfig(_CamelModel):
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)

    @property
    def defaults(self) -> AgentDefaults:
        return self.agents.defaults

    def to_document(self) -> dict[str, Any]:
        """Serialize to the on-disk (camelCase) shape."""
        return self.model_dump(mode="json", by_alias=True)


def _present(value: Optional[str]) -> bool:
    return bool(value and value.strip())


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        value = os.environ.get(match.group(1))
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def _canonical_keys(node: Any, in_providers: bool = False) -> Any:
    """Rewrite snake_case field keys to camelCase and hyphenated slots to snake_case."""
    if not isinstance(node, dict):
        return node
    result: dict[str, Any] = {}
    for key, value in node.items():
        key = str(key)
        if in_providers:
            canonical = key.strip().lower().replace("-", "_")
            result[canonical] = _canonical_keys(value)
            continue
        canonical = to_camel(key) if "_" in key else key
        if canonical in _OPAQUE_KEYS:
            result[canonical] = value
        else:
            result[canonical] = _canonical_keys(value, in_providers=canonical == "providers")
    return result


def deep_merge(base: Any, override: Any) -> Any:
    """Recursively merge ``override`` onto ``base``; non-mapping values replace."""
    if base is None:
        return override
    if override is None:
        return base
    if not isinstance(base, dict) or not isinstance(override, dict):
        return override
    merged = dict(base)
    for key, value in override.items():
        merged[key] = deep_merge(merged.get(key), value)
    return merged


def default_config_path() -> Path:
    return Path.home() / ".cognis" / "config.json"


def resolve_workspace(workspace: str | None) -> Path:
    """Expand ``~/`` and make the workspace path absolute."""
    raw = (workspace or "").strip() or DEFAULT_WORKSPACE
    return Path(raw).expanduser().resolve()


def _parse_document(path: Path, text: str) -> Any:
    if path.suffix.lower() in (".yaml", ".yml"):
        return yaml.safe_load(text)
    return json.loads(text)


def load_config(
    config_path: str | Path | None = None, env_path: str | Path | None = ".env"
) -> CognisConfig:
    """Load configuration, falling back to defaults for a missing or unreadable file."""
    if env_path is not None:
        env_file = Path(env_path)
        if env_file.exists():
            load_dotenv(env_file)

    path = Path(config_path) if config_path else default_config_path()
    if not path.exists():
        return CognisConfig()

    try:
        raw_text = _interpolate_env_vars(path.read_text(encoding="utf-8"))
        document = _parse_document(path, raw_text)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning("config_unreadable", path=str(path), error=str(e))
        return CognisConfig()
    if not isinstance(document, dict):
        logger.warning("config_not_a_mapping", path=str(path))
        return CognisConfig()

    merged = deep_merge(CognisConfig().to_document(), _canonical_keys(document))
    try:
        return CognisConfig.model_validate(merged)
    except ValidationError as e:
        logger.warning("config_invalid", path=str(path), error=str(e))
        return CognisConfig()


def save_config(config: CognisConfig, config_path: str | Path | None = None) -> Path:
    path = Path(config_path) if config_path else default_config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    document = config.to_document()
    if path.suffix.lower() in (".yaml", ".yml"):
        text = yaml.safe_dump(document, sort_keys=False)
    else:
        text = json.dumps(document, indent=2) + "\n"
    path.write_text(text, encoding="utf-8")
    return path


WORKSPACE_TEMPLATES = {
    "AGENTS.md": "# Agent Instructions\n\nYou are a precise AI assistant.\n",
    "SOUL.md": "# Soul\n\nI am Cognis.\n",
    "USER.md": "# User\n\nAdd user preferences here.\n",
    "memory/MEMORY.md": "# Long-term Memory\n\n",
}


def ensure_workspace(workspace: Path) -> list[Path]:
    """Create the workspace and seed template files that do not exist yet."""
    workspace.mkdir(parents=True, exist_ok=True)
    created: list[Path] = []
    for relative, content in WORKSPACE_TEMPLATES.items():
        target = workspace / relative
        if target.exists():
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        created.append(target)
    return created


class OnboardResult(BaseModel):
    config_path: Path
    workspace: Path
    created: bool
    overwritten: bool


def onboard(config_path: str | Path | None = None, overwrite: bool = False) -> OnboardResult:
    """Write a config file (fresh or refreshed) and bootstrap the workspace."""
    path = Path(config_path) if config_path else default_config_path()
    created = not path.exists()
    if created or overwrite:
        config = CognisConfig()
    else:
        config = load_config(path, env_path=None)
    save_config(config, path)

    workspace = resolve_workspace(config.defaults.workspace)
    ensure_workspace(workspace)
    logger.info("onboard_complete", config=str(path), workspace=str(workspace))
    return OnboardResult(
        config_path=path,
        workspace=workspace,
        created=created,
        overwritten=not created and overwrite,
    )

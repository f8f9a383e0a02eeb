"""Config loading, env interpolation, camelCase aliases and onboarding."""

from __future__ import annotations

import json

import pytest

from cognis.config import (
    DEFAULT_MODEL,
    CognisConfig,
    ProviderConfig,
    deep_merge,
    load_config,
    onboard,
    resolve_workspace,
    save_config,
)


@pytest.fixture
def home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return tmp_path / "home"


def write_json(path, document) -> None:
    path.write_text(json.dumps(document), encoding="utf-8")


def test_missing_file_gives_defaults(tmp_path):
    config = load_config(tmp_path / "nope.json", env_path=None)
    assert config.defaults.model == DEFAULT_MODEL
    assert config.defaults.provider == "openrouter"
    assert config.defaults.max_tool_iterations == 20
    assert not config.providers.openai.configured


def test_partial_document_is_merged_onto_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("TEST_OPENAI_KEY", "sk-env")
    path = tmp_path / "config.json"
    write_json(
        path,
        {
            "agents": {"defaults": {"maxToolIterations": 7}},
            "providers": {
                "openai": {"apiKey": "${TEST_OPENAI_KEY}", "extra_headers": {"X-Trace_Id": "1"}},
                "openai-codex": {"api_key": "tok", "account_id": "acct"},
                "github_copilot": {"apiKey": "${UNSET_VAR_FOR_TEST}"},
            },
        },
    )

    config = load_config(path, env_path=None)

    assert config.defaults.max_tool_iterations == 7
    assert config.defaults.model == DEFAULT_MODEL
    assert config.providers.openai.api_key == "sk-env"
    assert config.providers.openai.extra_headers == {"X-Trace_Id": "1"}
    assert config.providers.openai_codex.account_id == "acct"
    assert config.providers.get("openai-codex").configured
    assert config.providers.github_copilot.api_key == "${UNSET_VAR_FOR_TEST}"


def test_yaml_config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("agents:\n  defaults:\n    provider: anthropic\n", encoding="utf-8")
    assert load_config(path, env_path=None).defaults.provider == "anthropic"


@pytest.mark.parametrize("text", ["{broken", "[1, 2]", '{"agents": {"defaults": {"maxToolIterations": "many"}}}'])
def test_bad_documents_fall_back_to_defaults(tmp_path, text):
    path = tmp_path / "config.json"
    path.write_text(text, encoding="utf-8")
    assert load_config(path, env_path=None) == CognisConfig()


def test_dotenv_is_loaded(tmp_path, monkeypatch):
    monkeypatch.delenv("COGNIS_TEST_DOTENV", raising=False)
    env = tmp_path / ".env"
    env.write_text("COGNIS_TEST_DOTENV=from-dotenv\n", encoding="utf-8")
    path = tmp_path / "config.json"
    write_json(path, {"providers": {"openrouter": {"apiKey": "${COGNIS_TEST_DOTENV}"}}})

    config = load_config(path, env)

    assert config.providers.openrouter.api_key == "from-dotenv"


def test_save_then_load_round_trip(tmp_path):
    config = CognisConfig()
    config.providers.anthropic.api_key = "sk-ant"
    path = save_config(config, tmp_path / "out" / "config.json")

    on_disk = json.loads(path.read_text(encoding="utf-8"))
    assert on_disk["providers"]["anthropic"]["apiKey"] == "sk-ant"
    assert "maxToolIterations" in on_disk["agents"]["defaults"]
    assert load_config(path, env_path=None).providers.anthropic.configured


@pytest.mark.parametrize(
    "slot, expected",
    [
        (ProviderConfig(region="us-east-1"), True),
        (ProviderConfig(profile="default"), True),
        (ProviderConfig(access_key_id="a", secret_access_key="b"), True),
        (ProviderConfig(access_key_id="a"), False),
        (ProviderConfig(region="  "), False),
    ],
)
def test_bedrock_configuration(slot, expected):
    assert slot.configured_for_bedrock is expected


def test_deep_merge():
    assert deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}, "d": 4}) == {"a": {"b": 1, "c": 3}, "d": 4}
    assert deep_merge({"a": 1}, None) == {"a": 1}
    assert deep_merge({"a": {"b": 1}}, {"a": [1]}) == {"a": [1]}


def test_resolve_workspace_expands_home(home):
    assert resolve_workspace("~/ws") == (home / "ws").resolve()
    assert resolve_workspace("  ") == (home / ".cognis" / "workspace").resolve()


def test_onboard_creates_refreshes_and_overwrites(tmp_path, home):
    path = tmp_path / "config.json"

    created = onboard(path)
    assert created.created and not created.overwritten
    assert (created.workspace / "AGENTS.md").exists()
    assert (created.workspace / "memory" / "MEMORY.md").exists()

    document = json.loads(path.read_text(encoding="utf-8"))
    document["agents"]["defaults"]["model"] = "gpt-4o"
    write_json(path, document)

    refreshed = onboard(path)
    assert not refreshed.created and not refreshed.overwritten
    assert load_config(path, env_path=None).defaults.model == "gpt-4o"

    overwritten = onboard(path, overwrite=True)
    assert overwritten.overwritten
    assert load_config(path, env_path=None).defaults.model == DEFAULT_MODEL

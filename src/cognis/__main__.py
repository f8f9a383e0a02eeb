"""CLI entry point for cognis."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from cognis.app import CognisApp
from cognis.config import default_config_path, load_config, onboard, resolve_workspace
from cognis.log import setup_logging

DEFAULT_GATEWAY_PORT = 8787
DEFAULT_GATEWAY_HOST = "0.0.0.0"


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-c", "--config", default=None, help="Path to config file (default ~/.cognis/config.json)")
    common.add_argument("-e", "--env", default=".env", help="Path to .env file")

    parser = argparse.ArgumentParser(
        prog="cognis",
        description="Cognis autonomous intelligence runtime",
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    onboard_parser = subparsers.add_parser(
        "onboard", parents=[common], help="Initialize or refresh config and workspace"
    )
    onboard_parser.add_argument("--overwrite", action="store_true", help="Overwrite existing config with defaults")

    agent_parser = subparsers.add_parser("agent", parents=[common], help="Send a prompt to the agent")
    agent_parser.add_argument("prompt", help="Prompt to send")
    agent_parser.add_argument("-m", "--model", default=None, help="Model override")
    agent_parser.add_argument("-p", "--provider", default=None, help="Provider override")

    subparsers.add_parser("status", parents=[common], help="Show runtime and configuration status")

    gateway_parser = subparsers.add_parser("gateway", parents=[common], help="Start the HTTP/websocket gateway")
    gateway_parser.add_argument("--port", type=int, default=DEFAULT_GATEWAY_PORT, help="Gateway port")
    gateway_parser.add_argument("--host", default=DEFAULT_GATEWAY_HOST, help="Bind address")
    gateway_parser.add_argument("--workspace", default=None, help="Workspace override")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        sys.exit(0)

    setup_logging()
    match args.command:
        case "onboard":
            code = _onboard(args.config, args.overwrite)
        case "agent":
            code = _agent(args.config, args.env, args.prompt, args.model, args.provider)
        case "status":
            code = _status(args.config, args.env)
        case "gateway":
            code = _gateway(args.config, args.env, args.host, args.port, args.workspace)
        case _:
            parser.print_help()
            code = 1
    sys.exit(code)


def _config_path(raw: Optional[str]) -> Path:
    return Path(raw) if raw else default_config_path()


def _onboard(config_path: Optional[str], overwrite: bool) -> int:
    try:
        result = onboard(_config_path(config_path), overwrite)
    except Exception as e:
        print(f"onboard failed: {e}", file=sys.stderr)
        return 1
    if result.created:
        print(f"Created config: {result.config_path}")
    elif result.overwritten:
        print(f"Overwrote config with defaults: {result.config_path}")
    else:
        print(f"Refreshed config with new defaults: {result.config_path}")
    print(f"Workspace ready: {result.workspace}")
    return 0


def _agent(
    config_path: Optional[str],
    env_path: str,
    prompt: str,
    model: Optional[str],
    provider: Optional[str],
) -> int:
    async def _run() -> str:
        app = CognisApp(load_config(_config_path(config_path), env_path))
        await app.start()
        try:
            result = await app.run_agent(prompt, model=model, provider=provider)
        finally:
            await app.stop()
        return result.content

    try:
        content = asyncio.run(_run())
    except Exception as e:
        print(f"agent failed: {e}", file=sys.stderr)
        return 1
    print(content)
    return 0


def _status(config_path: Optional[str], env_path: str) -> int:
    path = _config_path(config_path)
    try:
        config = load_config(path, env_path)
    except Exception as e:
        print(f"status failed: {e}", file=sys.stderr)
        return 1

    providers = config.providers
    print(f"Config path: {path}")
    print(f"Config exists: {path.exists()}")
    print(f"Workspace: {resolve_workspace(config.defaults.workspace)}")
    print(f"Default provider: {config.defaults.provider}")
    print(f"Default model: {config.defaults.model}")
    print(f"OpenRouter configured: {providers.openrouter.configured}")
    print(f"OpenAI configured: {providers.openai.configured}")
    print(f"Anthropic configured: {providers.anthropic.configured}")
    print(f"OpenAI Codex configured: {providers.openai_codex.configured}")
    print(f"Github Copilot configured: {providers.github_copilot.configured}")
    print(f"Bedrock configured: {providers.bedrock.configured_for_bedrock}")
    return 0


def _gateway(
    config_path: Optional[str],
    env_path: str,
    host: str,
    port: int,
    workspace: Optional[str],
) -> int:
    import uvicorn

    try:
        config = load_config(_config_path(config_path), env_path)
        app = CognisApp(config, Path(workspace) if workspace else None)
        server = app.gateway()
        print(f"Gateway started on http://127.0.0.1:{port}")
        print("Endpoints: WS /ws?client_id=<id>, POST /upload, POST /transcribe, GET /files/{name}, GET /healthz")
        uvicorn.run(server.app(), host=host, port=port, log_level="warning")
    except Exception as e:
        print(f"gateway failed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    main()

"""Agent-facing management of scheduled jobs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from cognis.ai.tools.base import Tool, ToolContext, int_arg, text_arg
from cognis.core.timeparse import NaturalTimeParser, local_zone
from cognis.services.cron import CronJob, CronService


class CronTool(Tool):
    def __init__(self, time_parser: NaturalTimeParser | None = None):
        self._time_parser = time_parser or NaturalTimeParser()

    @property
    def name(self) -> str:
        return "cron"

    @property
    def description(self) -> str:
        return "Manage scheduled jobs (add_every, add_in, add_at, add_natural, list, remove, run_due)"

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": ["add_every", "add_in", "add_at", "add_natural", "list", "remove", "run_due"],
                },
                "name": {"type": "string"},
                "message": {"type": "string", "description": "Text delivered when the job fires"},
                "everySeconds": {"type": "integer"},
                "inSeconds": {"type": "integer"},
                "at": {"type": "string", "description": "ISO or natural-language time (add_at)"},
                "when": {"type": "string", "description": "Natural-language time (add_natural)"},
                "id": {"type": "string"},
            },
            "required": ["action"],
        }

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> str:
        action = text_arg(args, "action")
        try:
            cron: CronService = ctx.require("cron")
            match action:
                case "add_every":
                    return self._add_every(cron, args)
                case "add_in":
                    return self._add_in(cron, args)
                case "add_at":
                    return self._add_parsed(cron, args, "at", "Created one-shot job")
                case "add_natural":
                    return self._add_parsed(cron, args, "when", "Created natural-language job")
                case "list":
                    return self._list(cron)
                case "remove":
                    job_id = text_arg(args, "id")
                    if not job_id:
                        return "Error: id is required"
                    return f"Removed: {job_id}" if cron.remove(job_id) else f"Not found: {job_id}"
                case "run_due":
                    return self._run_due(cron)
                case _:
                    return f"Error: unsupported action: {action}"
        except Exception as e:
            return f"Error: {e}"

    @staticmethod
    def _add_every(cron: CronService, args: dict[str, Any]) -> str:
        name, message = text_arg(args, "name"), text_arg(args, "message")
        every_seconds = int_arg(args, "everySeconds", 0)
        if not name or not message or every_seconds <= 0:
            return "Error: name, message, and everySeconds (>0) are required"
        return f"Created cron job: {cron.add_every(name, every_seconds, message).id}"

    @staticmethod
    def _add_in(cron: CronService, args: dict[str, Any]) -> str:
        name, message = text_arg(args, "name"), text_arg(args, "message")
        in_seconds = int_arg(args, "inSeconds", 0)
        if not name or not message or in_seconds <= 0:
            return "Error: name, message, and inSeconds (>0) are required"
        return f"Created one-shot job: {cron.add_in(name, in_seconds, message).id}"

    def _add_parsed(self, cron: CronService, args: dict[str, Any], key: str, label: str) -> str:
        name, message, expression = text_arg(args, "name"), text_arg(args, "message"), text_arg(args, key)
        if not name or not message or not expression:
            return f"Error: name, message, and {key} are required"
        run_at = self._time_parser.parse_to_epoch_ms(expression, local_zone())
        return f"{label}: {cron.add_at(name, run_at, message).id}"

    @staticmethod
    def _list(cron: CronService) -> str:
        jobs = cron.list()
        if not jobs:
            return "No jobs"
        return "\n".join(_describe(job) for job in jobs)

    @staticmethod
    def _run_due(cron: CronService) -> str:
        executed: list[str] = []
        count = cron.run_due(lambda job: executed.append(f"{job.id}: {job.message}"))
        if count == 0:
            return "No due jobs"
        return f"Executed {count} jobs\n" + "\n".join(executed)


def _describe(job: CronJob) -> str:
    if job.delete_after_run:
        at = datetime.fromtimestamp(job.next_run_at_ms / 1000, tz=timezone.utc)
        return f"{job.id} | {job.name} | once at {at.strftime('%Y-%m-%dT%H:%M:%SZ')}"
    return f"{job.id} | {job.name} | every {job.every_seconds}s"

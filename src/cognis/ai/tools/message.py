"""Outbound messaging through the in-process bus."""

from __future__ import annotations

from typing import Any

from cognis.ai.tools.base import Tool, ToolContext, int_arg, text_arg
from cognis.core.messages import ChatMessage
from cognis.core.pii import PiiRedactor
from cognis.core.timeparse import NaturalTimeParser, local_zone
from cognis.services.bus import MessageBus
from cognis.services.cron import CronService

LABEL_LENGTH = 40


class MessageTool(Tool):
    """Publishes ``[<channel>] <content>`` with personal data masked."""

    def __init__(self, redactor: PiiRedactor | None = None):
        self._redactor = redactor or PiiRedactor()

    @property
    def name(self) -> str:
        return "message"

    @property
    def description(self) -> str:
        return "Publish an outbound message into the internal bus"

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "channel": {"type": "string"},
                "content": {"type": "string"},
            },
            "required": ["channel", "content"],
        }

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> str:
        try:
            bus: MessageBus = ctx.require("bus")
        except Exception as e:
            return f"Error: {e}"
        channel, content = text_arg(args, "channel"), text_arg(args, "content")
        if not channel or not content:
            return "Error: channel and content are required"
        bus.publish(ChatMessage.assistant(f"[{channel}] {self._redactor.redact(content)}"))
        return f"Queued message for channel: {channel}"


class NotifyTool(Tool):
    """Immediate bus notification, or a one-shot cron job when a time is given."""

    def __init__(self, time_parser: NaturalTimeParser | None = None):
        self._time_parser = time_parser or NaturalTimeParser()

    @property
    def name(self) -> str:
        return "notify"

    @property
    def description(self) -> str:
        return "Send immediate or scheduled notification messages"

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "message": {"type": "string"},
                "label": {"type": "string"},
                "inSeconds": {"type": "integer", "description": "Delay before delivery"},
                "at": {"type": "string", "description": "Delivery time, e.g. 'tomorrow at 8am'"},
            },
            "required": ["message"],
        }

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> str:
        message = text_arg(args, "message")
        if not message:
            return "Error: message is required"
        label = str(args["label"]) if args.get("label") is not None else _truncate(message, LABEL_LENGTH)

        try:
            at = text_arg(args, "at")
            if at:
                cron: CronService = ctx.require("cron")
                run_at = self._time_parser.parse_to_epoch_ms(at, local_zone())
                job = cron.add_at(label, run_at, message)
                return f"Notification scheduled at {at} (id: {job.id})"

            in_seconds = int_arg(args, "inSeconds", 0)
            if in_seconds <= 0:
                bus: MessageBus = ctx.require("bus")
                bus.publish(ChatMessage.assistant(f"[notify] {message}"))
                return "Notification delivered immediately"

            cron = ctx.require("cron")
            job = cron.add_in(label, in_seconds, message)
            return f"Notification scheduled in {in_seconds}s (id: {job.id})"
        except Exception as e:
            return f"Error: {e}"


def _truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 1] + "..."

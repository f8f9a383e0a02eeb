"""User profile tool."""

from __future__ import annotations

from typing import Any

from cognis.ai.tools.base import Tool, ToolContext, text_arg
from cognis.services.profile import FileProfileStore

_FIELD_ACTIONS = {"set_name": "name", "set_timezone": "timezone", "set_notes": "notes"}


class ProfileTool(Tool):
    @property
    def name(self) -> str:
        return "profile"

    @property
    def description(self) -> str:
        return (
            "Read and update user profile: get, set_name, set_timezone, set_preference, "
            "set_notes, add_goal, remove_goal, add_person"
        )

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": [
                        "get", "set_name", "set_timezone", "set_preference",
                        "set_notes", "add_goal", "remove_goal", "add_person",
                    ],
                },
                "value": {"type": "string"},
                "key": {"type": "string"},
                "name": {"type": "string"},
                "notes": {"type": "string"},
            },
            "required": ["action"],
        }

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> str:
        action = text_arg(args, "action")
        try:
            store: FileProfileStore = ctx.require("profile")
            value = text_arg(args, "value")
            match action:
                case "get":
                    return store.get().model_dump_json(indent=2)
                case "set_name" | "set_timezone" | "set_notes":
                    if not value:
                        return "Error: value is required"
                    store.set_field(_FIELD_ACTIONS[action], value)
                    return "Profile updated"
                case "set_preference":
                    key = text_arg(args, "key")
                    if not key:
                        return "Error: key is required"
                    store.set_preference(key, value)
                    return "Preference updated"
                case "add_goal":
                    if not value:
                        return "Error: goal is required"
                    store.add_goal(value)
                    return "Goal added"
                case "remove_goal":
                    if not value:
                        return "Error: goal is required"
                    store.remove_goal(value)
                    return "Goal removed"
                case "add_person":
                    person = text_arg(args, "name")
                    if not person:
                        return "Error: name is required"
                    store.add_relationship(person, text_arg(args, "notes"))
                    return "Person saved"
                case _:
                    return f"Error: unknown action: {action}"
        except Exception as e:
            return f"Error: {e}"

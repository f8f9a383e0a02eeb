"""Executive workflows exposed to the agent."""

from __future__ import annotations

import re
from typing import Any

from cognis.ai.tools.base import Tool, ToolContext, bool_arg, int_arg, text_arg
from cognis.services.workflow import WorkflowService

GOAL_CHECKIN_PREFIX = "workflow:goal_checkin:"
DAY_SECONDS = 24 * 60 * 60


class WorkflowTool(Tool):
    @property
    def name(self) -> str:
        return "workflow"

    @property
    def description(self) -> str:
        return "Execute executive workflows: daily_brief, goal_plan, relationship_nudge"

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {"type": "string", "enum": ["daily_brief", "goal_plan", "relationship_nudge"]},
                "goal": {"type": "string"},
                "person": {"type": "string"},
                "horizon_days": {"type": "integer"},
                "schedule_daily": {"type": "boolean"},
            },
            "required": ["action"],
        }

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> str:
        action = text_arg(args, "action")
        try:
            workflows: WorkflowService = ctx.require("workflow")
            match action:
                case "daily_brief":
                    return workflows.build_daily_executive_brief()
                case "goal_plan":
                    return self._goal_plan(args, ctx, workflows)
                case "relationship_nudge":
                    return workflows.build_relationship_nudge(text_arg(args, "person"))
                case _:
                    return f"Error: unsupported action: {action}"
        except Exception as e:
            return f"Error: {e}"

    @staticmethod
    def _goal_plan(args: dict[str, Any], ctx: ToolContext, workflows: WorkflowService) -> str:
        goal = text_arg(args, "goal")
        plan = workflows.build_goal_execution_plan(goal, int_arg(args, "horizon_days", 7))
        if plan.startswith("Error:") or not bool_arg(args, "schedule_daily", True):
            return plan
        if ctx.cron is None:
            return plan + "\n\nDaily check-in not scheduled (cron service unavailable)."

        label = f"goal-checkin-{slug(goal)}" if goal else "goal-checkin"
        ctx.require("cron").add_every(label, DAY_SECONDS, GOAL_CHECKIN_PREFIX + goal)
        return plan + "\n\nDaily check-in scheduled."


def slug(raw: str) -> str:
    normalized = re.sub(r"[^a-z0-9]+", "-", raw.lower()).strip("-")
    return normalized or "goal"

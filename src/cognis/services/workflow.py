"""Executive workflows: daily brief, goal loop, goal check-in and relationship nudges.

The texts are built from the profile, task memories, the session summary and
recent conversation turns. Any collaborator may be absent; the workflow then
falls back to generic guidance.
"""

from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import TYPE_CHECKING, Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from cognis.services.profile import UserProfile

if TYPE_CHECKING:
    from cognis.memory.store import MemoryEntry, MemoryStore
    from cognis.memory.summary import SessionSummaryManager
    from cognis.services.profile import FileProfileStore
    from cognis.storage.conversation_repo import ConversationStore
    from cognis.storage.models import ConversationTurn

RISK_WORDS = ("deadline", "urgent", "tomorrow")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowService:
    def __init__(
        self,
        profile: Optional[FileProfileStore] = None,
        memory: Optional[MemoryStore] = None,
        summary: Optional[SessionSummaryManager] = None,
        conversations: Optional[ConversationStore] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._profile = profile
        self._memory = memory
        self._summary = summary
        self._conversations = conversations
        self._clock = clock

    def build_daily_executive_brief(self) -> str:
        profile = self._load_profile()
        tasks = self._tagged_memories("task", 6)
        lines = [f"Cognis Daily Brief - {self._today(profile)}", "", "Top Priorities:"]
        lines += [f"- {p}" for p in _priorities(profile, tasks)]
        lines += ["", "Risks & Watchouts:"]
        lines += [f"- {r}" for r in _risks(tasks)]

        summary = self._summary.current_summary() if self._summary else ""
        if summary.strip():
            lines += ["", "Context Snapshot:", f"- {_truncate(summary.replace(chr(10), ' '), 220)}"]

        nudge = self.build_relationship_nudge(None)
        if nudge:
            lines += ["", "Relationship Nudge:", f"- {nudge}"]
        return "\n".join(lines).strip()

    def build_goal_execution_plan(self, goal: Optional[str], horizon_days: int) -> str:
        normalized = (goal or "").strip()
        if not normalized:
            return "Error: goal is required"
        days = max(1, horizon_days)
        if self._profile is not None:
            self._profile.add_goal(normalized)
        return "\n".join(
            [
                f"Goal Execution Loop: {normalized}",
                f"Horizon: {days} day(s)",
                "",
                "Plan:",
                "1. Define success criteria and deadline.",
                "2. Break into 3 concrete tasks with owners and due dates.",
                "3. Execute highest-impact task today.",
                "4. Run daily check-in: progress, blocker, next action.",
                "5. End-of-horizon review: outcome, lessons, follow-up goal.",
            ]
        )

    def build_relationship_nudge(self, person_hint: Optional[str]) -> str:
        """Return ``""`` when the profile lists no people."""
        profile = self._load_profile()
        if not profile.relationships:
            return ""
        person = _pick_person(profile, person_hint)
        notes = profile.relationships.get(person, "").strip()
        mentions = self._memory.recall(person, 3) if self._memory is not None else []

        text = f"Check in with {person}"
        if notes:
            text += f" ({_truncate(notes, 100)})"
        if mentions:
            text += f". Relevant memory: {_truncate(mentions[0].content, 120)}"
        return text

    async def build_goal_checkin(self, goal: Optional[str]) -> str:
        title = (goal or "").strip() or "your current goal"
        turns = await self._recent_turns(4)
        lines = [
            f"Goal Check-in: {title}",
            "Answer in 30 seconds:",
            "1. What moved forward since yesterday?",
            "2. What is blocked?",
            "3. What single action will you complete next?",
        ]
        if turns and turns[0].prompt.strip():
            lines.append(f"Recent context: {_truncate(turns[0].prompt, 120)}")
        return "\n".join(lines).strip()

    def _load_profile(self) -> UserProfile:
        return self._profile.get() if self._profile is not None else UserProfile()

    def _today(self, profile: UserProfile) -> str:
        zone = _safe_zone(profile.timezone)
        day = self._clock().astimezone(zone)
        return f"{day.strftime('%A, %b')} {day.day} ({zone})"

    def _tagged_memories(self, tag: str, limit: int) -> list[MemoryEntry]:
        if self._memory is None:
            return []
        return [
            entry
            for entry in self._memory.recall(tag, limit)
            if any(t.lower() == tag for t in entry.tags)
        ]

    async def _recent_turns(self, limit: int) -> list[ConversationTurn]:
        if self._conversations is None:
            return []
        turns = await self._conversations.list()
        return sorted(turns, key=lambda t: t.created_at, reverse=True)[: max(1, limit)]


def _priorities(profile: UserProfile, tasks: list[MemoryEntry]) -> list[str]:
    priorities: list[str] = []
    for line in [f"Advance goal: {g}" for g in profile.goals[:3]] + [_task_line(t.content) for t in tasks[:3]]:
        if line not in priorities:
            priorities.append(line)
    return priorities or ["Capture top 3 outcomes for today."]


def _risks(tasks: list[MemoryEntry]) -> list[str]:
    risks = [
        f"Potential deadline risk: {_truncate(task.content, 120)}"
        for task in tasks
        if any(word in task.content.lower() for word in RISK_WORDS)
    ]
    return risks or ["No explicit blockers captured. Run a midday check-in."]


def _task_line(content: str) -> str:
    text = (content or "").strip()
    if text.lower().startswith("user task:"):
        text = text[len("user task:"):].strip()
    return text


def _pick_person(profile: UserProfile, hint: Optional[str]) -> str:
    if hint and hint.strip():
        for person in profile.relationships:
            if person.lower() == hint.strip().lower():
                return person
    return next(iter(profile.relationships), "")


def _safe_zone(name: str) -> tzinfo:
    try:
        return ZoneInfo(name.strip()) if name and name.strip() else ZoneInfo("UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def _truncate(value: Optional[str], limit: int) -> str:
    text = value or ""
    return text if len(text) <= limit else text[:limit] + "..."

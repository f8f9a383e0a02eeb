"""Cron dispatcher: workflow expansion and bus publication."""

from __future__ import annotations

import pytest

from cognis.core.messages import ChatMessage
from cognis.memory.store import FileMemoryStore
from cognis.services.bus import MessageBus, map_bus_message
from cognis.services.cron import CronService, FileCronStore
from cognis.services.profile import FileProfileStore
from cognis.services.scheduler import EMPTY_NUDGE, CronDispatcher
from cognis.services.workflow import WorkflowService
from cognis.storage.conversation_repo import FileConversationStore
from cognis.storage.models import ConversationTurn


class Ticker:
    def __init__(self, now: int):
        self.now = now

    def __call__(self) -> int:
        return self.now


@pytest.fixture
def ticker() -> Ticker:
    return Ticker(1_000)


@pytest.fixture
def cron(workspace, ticker) -> CronService:
    return CronService(FileCronStore(workspace / "jobs.json"), clock=ticker)


@pytest.fixture
def profile(workspace) -> FileProfileStore:
    return FileProfileStore(workspace / "profile.json")


@pytest.fixture
def conversations(workspace) -> FileConversationStore:
    return FileConversationStore(workspace / "history.json")


@pytest.fixture
def workflows(workspace, profile, conversations, clock) -> WorkflowService:
    memory = FileMemoryStore(workspace / "memories.json", clock)
    return WorkflowService(profile, memory, None, conversations, clock)


@pytest.fixture
def dispatcher(cron, workflows) -> CronDispatcher:
    return CronDispatcher(cron, MessageBus(), workflows)


async def test_daily_brief_is_tagged(dispatcher):
    text = await dispatcher.expand("workflow:daily_brief")
    assert text.startswith("[workflow:daily_brief]\nCognis Daily Brief - ")
    assert map_bus_message(ChatMessage.assistant(text))["type"] == "daily_brief"


async def test_goal_checkin_includes_recent_context(dispatcher, conversations, clock):
    await conversations.append(ConversationTurn(created_at=clock.now, prompt="Drafted the launch post", response="ok"))
    text = await dispatcher.expand("Workflow:Goal_Checkin: Launch v2 ")
    assert text.startswith("[workflow:goal_checkin]\nGoal Check-in: Launch v2\n")
    assert text.endswith("Recent context: Drafted the launch post")


async def test_relationship_nudge_falls_back_without_people(dispatcher, profile):
    assert await dispatcher.expand("workflow:relationship_nudge") == f"[workflow:workflow_result]\n{EMPTY_NUDGE}"
    profile.add_relationship("Rui", "brother")
    assert await dispatcher.expand("workflow:relationship_nudge") == (
        "[workflow:workflow_result]\nCheck in with Rui (brother)"
    )


async def test_plain_messages_pass_through(dispatcher):
    assert await dispatcher.expand("  take a break ") == "take a break"
    assert await dispatcher.expand("") == ""
    assert await dispatcher.expand(None) == ""


async def test_workflow_messages_need_the_service(cron):
    dispatcher = CronDispatcher(cron, MessageBus())
    with pytest.raises(RuntimeError, match="workflow service is not configured"):
        await dispatcher.expand("workflow:daily_brief")


async def test_tick_publishes_due_jobs(cron, workflows, ticker):
    bus = MessageBus()
    dispatcher = CronDispatcher(cron, bus, workflows)
    cron.add_every("brief", 1, "workflow:daily_brief")
    cron.add_in("reminder", 1, "stretch")

    assert await dispatcher.tick() == 0
    ticker.now = 2_001
    assert await dispatcher.tick() == 2

    frames = [map_bus_message(m) for m in bus.drain()]
    assert sorted(f["type"] for f in frames) == ["daily_brief", "notification"]
    assert {"type": "notification", "content": "stretch"} in frames
    assert [job.name for job in cron.list()] == ["brief"]


async def test_tick_skips_failed_workflows(cron, ticker):
    bus = MessageBus()
    dispatcher = CronDispatcher(cron, bus)
    cron.add_every("brief", 1, "workflow:daily_brief")
    cron.add_every("ping", 1, "ping")
    ticker.now = 2_001

    assert await dispatcher.tick() == 1
    assert [m.content for m in bus.drain()] == ["ping"]


async def test_start_and_stop(dispatcher):
    await dispatcher.start()
    assert await dispatcher.health_check() is True
    assert dispatcher.service_name == "cron_dispatcher"
    await dispatcher.stop()

"""Conversation log backends, the message bus and the profile document."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from cognis.core.messages import ChatMessage, ToolCall
from cognis.services.bus import MessageBus, map_bus_message
from cognis.services.profile import FileProfileStore
from cognis.storage.conversation_repo import FileConversationStore, SqliteConversationStore
from cognis.storage.database import Database
from cognis.storage.models import ConversationTurn, parse_timestamp

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def make_turn(prompt: str, offset: int = 0) -> ConversationTurn:
    return ConversationTurn(
        created_at=T0 + timedelta(seconds=offset),
        prompt=prompt,
        response=f"re: {prompt}",
        transcript=(
            ChatMessage.user(prompt),
            ChatMessage.assistant("", [ToolCall(id="c1", name="echo", arguments={"text": prompt})]),
            ChatMessage.tool(prompt, "c1"),
            ChatMessage.assistant(f"re: {prompt}"),
        ),
    )


@pytest.fixture
async def sqlite_store(workspace):
    db = Database(workspace / ".cognis" / "conversations.db")
    await db.initialize()
    store = SqliteConversationStore(db)
    yield store
    await store.close()


async def test_file_store_appends_in_order(workspace):
    store = FileConversationStore(workspace / "memory" / "history.json")
    assert await store.list() == []
    await store.append(make_turn("first"))
    await store.append(make_turn("second", 1))

    turns = await FileConversationStore(workspace / "memory" / "history.json").list()
    assert [t.prompt for t in turns] == ["first", "second"]
    assert turns[0] == make_turn("first")


async def test_sqlite_store_round_trips_transcripts(sqlite_store):
    await sqlite_store.append(make_turn("later", 10))
    await sqlite_store.append(make_turn("earlier", 0))

    turns = await sqlite_store.list()
    assert [t.prompt for t in turns] == ["earlier", "later"]
    assert turns[1].transcript == make_turn("later", 10).transcript
    assert turns[1].created_at == T0 + timedelta(seconds=10)


async def test_database_requires_initialize(workspace):
    with pytest.raises(RuntimeError):
        Database(workspace / "x.db").conn


def test_parse_timestamp_defaults_to_utc():
    assert parse_timestamp("2026-01-05T09:00:00Z") == T0
    assert parse_timestamp("2026-01-05T09:00:00") == T0
    assert parse_timestamp(None) == datetime.fromtimestamp(0, timezone.utc)


def test_tool_message_requires_call_id():
    with pytest.raises(ValueError):
        ChatMessage.tool("out", " ")
    with pytest.raises(ValueError):
        ToolCall(id="x", name=" ")


def test_bus_is_fifo():
    bus = MessageBus()
    assert bus.poll() is None
    bus.publish(ChatMessage.assistant("one"))
    bus.publish(ChatMessage.assistant("two"))
    bus.publish(ChatMessage.assistant("three"))
    assert bus.poll().content == "one"
    assert len(bus) == 2
    assert [m.content for m in bus.drain()] == ["two", "three"]
    assert len(bus) == 0


@pytest.mark.parametrize(
    "content, frame_type, body",
    [
        ("[workflow:daily_brief]\nDaily Executive Brief", "daily_brief", "Daily Executive Brief"),
        ("[workflow:goal_checkin]\nGoal: ship", "goal_checkin", "Goal: ship"),
        ("[workflow:workflow_result] nudge", "workflow_result", "nudge"),
        ("plain reminder", "notification", "plain reminder"),
    ],
)
def test_map_bus_message(content, frame_type, body):
    assert map_bus_message(ChatMessage.assistant(content)) == {"type": frame_type, "content": body}


def test_profile_store(workspace):
    profile = FileProfileStore(workspace / "profile.json")
    assert profile.format_for_prompt() == ""

    profile.set_field("name", "Ana")
    profile.set_preference("tone", "direct")
    profile.add_goal("run a marathon")
    profile.add_goal("run a marathon")
    profile.add_relationship("Rui", "brother")
    profile.add_relationship("Joana")

    reloaded = FileProfileStore(workspace / "profile.json").get()
    assert reloaded.name == "Ana"
    assert reloaded.goals == ["run a marathon"]

    text = profile.format_for_prompt()
    assert text.startswith("## User Profile\n")
    assert "**Name:** Ana" in text
    assert "- tone: direct" in text
    assert "- Rui: brother" in text
    assert "- Joana\n" in text

    profile.remove_goal("run a marathon")
    assert profile.get().goals == []
    with pytest.raises(ValueError):
        profile.set_field("email", "x")

"""Built-in tools executed against real stores in a temp workspace."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import httpx
import pytest

from cognis.ai.tools.base import Tool, ToolContext, bool_arg, int_arg, list_arg
from cognis.ai.tools.cron import CronTool
from cognis.ai.tools.filesystem import FileSystemTool
from cognis.ai.tools.guard import WorkspaceGuard
from cognis.ai.tools.mcp import McpTool
from cognis.ai.tools.memory import MemoryTool
from cognis.ai.tools.message import MessageTool, NotifyTool
from cognis.ai.tools.payments import PaymentsTool
from cognis.ai.tools.profile import ProfileTool
from cognis.ai.tools.registry import ToolRegistry
from cognis.ai.tools.workflow import WorkflowTool, slug
from cognis.core.errors import ServiceNotConfiguredError, ServiceTypeError, WorkspaceError
from cognis.core.pii import PiiRedactor
from cognis.core.timeparse import NaturalTimeParser
from cognis.memory.store import FileMemoryStore
from cognis.services.bus import MessageBus
from cognis.services.cron import CronService, FileCronStore
from cognis.services.mcp_client import McpClient
from cognis.services.payments.ledger import PaymentLedgerService
from cognis.services.payments.store import InMemoryPaymentStore
from cognis.services.profile import FileProfileStore
from cognis.services.workflow import WorkflowService


@pytest.fixture
def ctx(workspace, clock) -> ToolContext:
    memory = FileMemoryStore(workspace / "memory" / "memories.json", clock)
    profile = FileProfileStore(workspace / "profile.json")
    cron = CronService(FileCronStore(workspace / ".cognis" / "cron" / "jobs.json"))
    return ToolContext(
        workspace=workspace,
        cron=cron,
        bus=MessageBus(),
        memory=memory,
        profile=profile,
        payments=PaymentLedgerService(InMemoryPaymentStore(), clock=clock),
        workflow=WorkflowService(profile, memory, clock=clock),
    )


# --- context and registry -----------------------------------------------------


def test_require_reports_missing_and_mistyped_services():
    with pytest.raises(ServiceNotConfiguredError, match="cron service is not configured"):
        ToolContext().require("cron")
    with pytest.raises(ServiceTypeError, match="Service 'bus' is not of type MessageBus"):
        ToolContext(bus="not a bus").require("bus")


def test_registry_registers_builtins():
    registry = ToolRegistry()
    registry.discover_and_register()
    names = {tool.name for tool in registry.all_tools()}
    assert names == {
        "filesystem", "cron", "memory", "message", "notify", "profile", "payments", "workflow", "mcp",
    }
    definition = registry.get("cron").to_definition()
    assert definition["type"] == "function"
    assert definition["function"]["parameters"]["required"] == ["action"]
    assert registry.get("view_image") is None


def test_registering_a_name_again_replaces_the_tool():
    class Other(FileSystemTool):
        @property
        def description(self) -> str:
            return "replacement"

    registry = ToolRegistry()
    registry.register(FileSystemTool())
    registry.register(Other())
    assert len(registry.all_tools()) == 1
    assert registry.get("filesystem").description == "replacement"


@pytest.mark.parametrize(
    "args, expected",
    [({"n": "5"}, 5), ({"n": 2.9}, 2), ({"n": "3.5"}, 3), ({"n": "x"}, 7), ({"n": True}, 7), ({}, 7)],
)
def test_int_arg(args, expected):
    assert int_arg(args, "n", 7) == expected


def test_bool_and_list_args():
    assert bool_arg({"b": "TRUE"}, "b", False) is True
    assert bool_arg({"b": "yes"}, "b", True) is False
    assert bool_arg({}, "b", True) is True
    assert list_arg({"l": ["a", " ", 3]}, "l") == ["a", "3"]
    assert list_arg({"l": "a,b"}, "l") == []


# --- workspace guard and filesystem -------------------------------------------


def test_guard_confines_paths(workspace):
    guard = WorkspaceGuard()
    assert guard.resolve(workspace, "notes/a.txt") == workspace / "notes" / "a.txt"
    assert guard.resolve(workspace, ".") == workspace
    with pytest.raises(WorkspaceError, match="escapes workspace"):
        guard.resolve(workspace, "../outside.txt")
    with pytest.raises(WorkspaceError, match="escapes workspace"):
        guard.resolve(workspace, "/etc/passwd")
    with pytest.raises(WorkspaceError):
        guard.resolve(None, "a.txt")


async def test_filesystem_write_read_list(ctx, workspace):
    tool = FileSystemTool()
    assert (await tool.execute({"action": "write", "path": "docs/a.txt", "content": "hi"}, ctx)).startswith("Wrote ")
    assert await tool.execute({"action": "read", "path": "docs/a.txt"}, ctx) == "hi"
    assert await tool.execute({"action": "list", "path": "docs"}, ctx) == "file a.txt"
    assert "file not found" in await tool.execute({"action": "read", "path": "missing.txt"}, ctx)
    assert "escapes workspace" in await tool.execute({"action": "read", "path": "../../x"}, ctx)
    assert await tool.execute({"action": "read"}, ctx) == "Error: action and path are required"
    assert await tool.execute({"action": "delete", "path": "a"}, ctx) == "Error: unsupported action: delete"


async def test_filesystem_rejects_binary(ctx, workspace):
    (workspace / "blob.bin").write_bytes(b"\xff\xfe\x00\x81")
    assert "binary file" in await FileSystemTool().execute({"action": "read", "path": "blob.bin"}, ctx)


# --- cron, message, notify -------------------------------------------------------


async def test_cron_tool_lifecycle(ctx):
    tool = CronTool()
    created = await tool.execute({"action": "add_every", "name": "ping", "message": "hi", "everySeconds": 60}, ctx)
    assert created.startswith("Created cron job: ")
    job_id = created.split(": ", 1)[1]

    listing = await tool.execute({"action": "list"}, ctx)
    assert listing == f"{job_id} | ping | every 60s"

    assert await tool.execute({"action": "run_due"}, ctx) == "No due jobs"
    assert await tool.execute({"action": "remove", "id": job_id}, ctx) == f"Removed: {job_id}"
    assert await tool.execute({"action": "remove", "id": job_id}, ctx) == f"Not found: {job_id}"
    assert await tool.execute({"action": "list"}, ctx) == "No jobs"


async def test_cron_tool_validation_and_missing_service(ctx):
    tool = CronTool()
    assert await tool.execute({"action": "add_every", "name": "x", "message": "m"}, ctx) == (
        "Error: name, message, and everySeconds (>0) are required"
    )
    assert await tool.execute({"action": "explode"}, ctx) == "Error: unsupported action: explode"
    assert await tool.execute({"action": "list"}, ToolContext()) == "Error: cron service is not configured"


async def test_cron_tool_natural_language(ctx):
    parser = NaturalTimeParser(clock=lambda: datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc))
    tool = CronTool(time_parser=parser)
    result = await tool.execute({"action": "add_natural", "name": "n", "message": "m", "when": "in 2 hours"}, ctx)
    assert result.startswith("Created natural-language job: ")
    (job,) = ctx.cron.list()
    assert job.next_run_at_ms == int(datetime(2030, 1, 1, 14, 0, tzinfo=timezone.utc).timestamp() * 1000)


async def test_message_tool_redacts_and_publishes(ctx):
    result = await MessageTool().execute({"channel": "sms", "content": "mail ana@example.com now"}, ctx)
    assert result == "Queued message for channel: sms"
    assert ctx.bus.poll().content == "[sms] mail [REDACTED_EMAIL] now"


async def test_notify_immediate_and_scheduled(ctx):
    tool = NotifyTool()
    assert await tool.execute({"message": "stretch"}, ctx) == "Notification delivered immediately"
    assert ctx.bus.poll().content == "[notify] stretch"

    scheduled = await tool.execute({"message": "drink water", "inSeconds": 90}, ctx)
    assert scheduled.startswith("Notification scheduled in 90s")
    (job,) = ctx.cron.list()
    assert job.name == "drink water"
    assert job.delete_after_run
    assert await tool.execute({}, ctx) == "Error: message is required"


# --- memory and profile ----------------------------------------------------------


async def test_memory_tool(ctx):
    tool = MemoryTool()
    stored = await tool.execute({"action": "remember", "content": "Prefers tea", "tags": ["pref"]}, ctx)
    assert stored.startswith("Memory stored (id: ")

    recalled = await tool.execute({"action": "recall", "query": "tea"}, ctx)
    assert "Prefers tea (pref)" in recalled

    listing = await tool.execute({"action": "list"}, ctx)
    assert listing.startswith("Stored memories (1 total):")

    memory_id = ctx.memory.list()[0].id
    assert await tool.execute({"action": "forget", "id": memory_id}, ctx) == f"Memory removed: {memory_id}"
    assert await tool.execute({"action": "list"}, ctx) == "No memories stored"
    assert await tool.execute({"action": "remember"}, ctx) == "Error: content is required"


async def test_profile_tool(ctx):
    tool = ProfileTool()
    assert await tool.execute({"action": "set_name", "value": "Ana"}, ctx) == "Profile updated"
    assert await tool.execute({"action": "set_preference", "key": "tone", "value": "brief"}, ctx) == "Preference updated"
    assert await tool.execute({"action": "add_person", "name": "Rui", "notes": "brother"}, ctx) == "Person saved"
    profile = json.loads(await tool.execute({"action": "get"}, ctx))
    assert profile["name"] == "Ana"
    assert profile["preferences"] == {"tone": "brief"}
    assert profile["relationships"] == {"Rui": "brother"}
    assert await tool.execute({"action": "add_goal"}, ctx) == "Error: goal is required"


# --- payments ---------------------------------------------------------------------


async def test_payments_tool_flow(ctx):
    tool = PaymentsTool()
    policy = await tool.execute({"action": "set_policy", "max_per_tx": 100, "require_confirmation_over": 25}, ctx)
    assert "- max_per_tx: 100.00" in policy
    assert "- quiet_hours: (off)" in policy

    requested = await tool.execute(
        {"action": "request", "merchant": "ticketmaster", "category": "tickets", "amount": 30}, ctx
    )
    assert requested.startswith("Payment PENDING_CONFIRMATION (")
    tx_id = requested.split("(", 1)[1].split(")", 1)[0]

    assert (await tool.execute({"action": "confirm", "transaction_id": tx_id}, ctx)).startswith("Payment AUTHORIZED")
    assert (await tool.execute({"action": "capture", "transaction_id": tx_id}, ctx)).startswith("Payment CAPTURED")

    status = await tool.execute({"action": "status"}, ctx)
    assert "- captured: 30.00" in status
    assert "- transactions: 1" in status

    listing = await tool.execute({"action": "list"}, ctx)
    assert f"- {tx_id} | CAPTURED | ticketmaster | tickets | 30.00" in listing


async def test_payments_tool_errors(ctx):
    tool = PaymentsTool()
    assert await tool.execute({}, ctx) == "Error: action is required"
    assert await tool.execute({"action": "request"}, ctx) == "Error: amount is required"
    assert await tool.execute({"action": "confirm"}, ctx) == "Error: transaction_id is required"
    assert await tool.execute({"action": "refund"}, ctx) == "Error: unsupported payments action: refund"
    denied = await tool.execute({"action": "request", "merchant": "m", "amount": 500}, ctx)
    assert denied.endswith("Amount exceeds per-transaction limit.")


async def test_payments_tool_falls_back_to_workspace_ledger(workspace, observability):
    ctx = ToolContext(workspace=workspace, observability=observability)
    result = await PaymentsTool().execute({"action": "request", "merchant": "cafe", "amount": 4.5}, ctx)
    assert result.startswith("Payment AUTHORIZED")
    assert (workspace / ".cognis" / "payments" / "ledger.json").exists()
    assert sorted(event.type for event in observability.recent(10)) == ["payment_authorized", "payment_request"]


# --- workflow ------------------------------------------------------------------------


async def test_workflow_goal_plan_schedules_daily_checkin(ctx):
    result = await WorkflowTool().execute({"action": "goal_plan", "goal": "Ship v2!", "horizon_days": 3}, ctx)
    assert result.startswith("Goal Execution Loop: Ship v2!\nHorizon: 3 day(s)")
    assert result.endswith("Daily check-in scheduled.")
    (job,) = ctx.cron.list()
    assert job.name == "goal-checkin-ship-v2"
    assert job.message == "workflow:goal_checkin:Ship v2!"
    assert job.every_seconds == 86400
    assert ctx.profile.get().goals == ["Ship v2!"]


async def test_workflow_daily_brief_and_nudge(ctx):
    tool = WorkflowTool()
    brief = await tool.execute({"action": "daily_brief"}, ctx)
    assert brief.startswith("Cognis Daily Brief - Monday, Mar 2 (UTC)")
    assert "- Capture top 3 outcomes for today." in brief

    assert await tool.execute({"action": "relationship_nudge"}, ctx) == ""
    ctx.profile.add_relationship("Rui", "brother")
    assert await tool.execute({"action": "relationship_nudge", "person": "rui"}, ctx) == "Check in with Rui (brother)"


def test_slug():
    assert slug("  Learn Rust, fast ") == "learn-rust-fast"
    assert slug("!!!") == "goal"


# --- mcp -----------------------------------------------------------------------------


async def test_mcp_tool_calls_bridge(ctx):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if request.url.path == "/mcp/tools":
            return httpx.Response(200, json=[{"name": "twilio.send_sms"}])
        return httpx.Response(200, json={"data": {"sid": "SM1", "status": "queued"}})

    ctx.mcp = McpClient("http://bridge:9000/", transport=httpx.MockTransport(handler))
    tool = McpTool()

    listed = json.loads(await tool.execute({"action": "list_tools"}, ctx))
    assert listed == {"result": [{"name": "twilio.send_sms"}], "http_status": 200, "http_ok": True}

    called = json.loads(
        await tool.execute({"action": "call_tool", "tool": "twilio.send_sms", "arguments": {"to": "+1"}}, ctx)
    )
    assert called["data"]["sid"] == "SM1"
    assert json.loads(seen[-1].content) == {"name": "twilio.send_sms", "arguments": {"to": "+1"}}
    assert str(seen[-1].url) == "http://bridge:9000/mcp/call"

    assert await tool.execute({"action": "call_tool"}, ctx) == "Error: tool is required for action=call_tool"


# --- helpers ---------------------------------------------------------------------------


def test_pii_redactor():
    redactor = PiiRedactor()
    assert redactor.redact("call 555-123-4567 or +1 (555) 123-4567") == "call [REDACTED_PHONE] or [REDACTED_PHONE]"
    assert redactor.redact("from 10.0.0.1") == "from [REDACTED_IP]"
    assert redactor.redact(None) == ""


@pytest.mark.parametrize(
    "expression, expected",
    [
        ("in 5 min", datetime(2030, 1, 1, 12, 5, tzinfo=timezone.utc)),
        ("tomorrow", datetime(2030, 1, 2, 9, 0, tzinfo=timezone.utc)),
        ("today at 8:30pm", datetime(2030, 1, 1, 20, 30, tzinfo=timezone.utc)),
        ("tomorrow at 18:45", datetime(2030, 1, 2, 18, 45, tzinfo=timezone.utc)),
        ("2030-02-01T10:00:00Z", datetime(2030, 2, 1, 10, 0, tzinfo=timezone.utc)),
        ("2030-02-01 07:15", datetime(2030, 2, 1, 7, 15, tzinfo=timezone.utc)),
    ],
)
def test_natural_time_parser(expression, expected):
    parser = NaturalTimeParser(clock=lambda: datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc))
    assert parser.parse_to_epoch_ms(expression, timezone.utc) == int(expected.timestamp() * 1000)


@pytest.mark.parametrize("expression", ["", "someday", "today at 25:00"])
def test_natural_time_parser_rejects(expression):
    with pytest.raises(ValueError):
        NaturalTimeParser().parse_to_epoch_ms(expression, timezone.utc)


def test_tools_are_tools():
    assert all(isinstance(t, Tool) for t in (CronTool(), MemoryTool(), PaymentsTool()))

"""Delegated spending: policy management and guarded purchase reservations.

Amounts are dollars on the tool surface and cents in the ledger.
"""

from __future__ import annotations

from typing import Any

from cognis.ai.tools.base import Tool, ToolContext, int_arg, text_arg
from cognis.core.types import PaymentStatus
from cognis.services.payments.ledger import PaymentLedgerService
from cognis.services.payments.models import PaymentDecision, PaymentPolicy
from cognis.services.payments.money import dollars_to_cents, format_dollars
from cognis.services.payments.store import FilePaymentStore

DEFAULT_LIST_LIMIT = 10
LEDGER_PATH = ".cognis/payments/ledger.json"

_POLICY_KEYS = (
    "currency", "max_per_tx", "max_daily", "max_monthly", "require_confirmation_over",
    "allowed_merchants", "allowed_categories", "timezone", "quiet_hours_start", "quiet_hours_end",
)


class PaymentsTool(Tool):
    @property
    def name(self) -> str:
        return "payments"

    @property
    def description(self) -> str:
        return "Manage delegated spending policy and guarded purchase reservations"

    @property
    def input_schema(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "action": {
                    "type": "string",
                    "enum": [
                        "set_policy", "get_policy", "request", "confirm",
                        "capture", "cancel", "status", "list",
                    ],
                },
                "merchant": {"type": "string"},
                "category": {"type": "string"},
                "amount": {"type": "number", "description": "Amount in dollars"},
                "description": {"type": "string"},
                "external_ref": {"type": "string"},
                "transaction_id": {"type": "string"},
                "max_per_tx": {"type": "number"},
                "max_daily": {"type": "number"},
                "max_monthly": {"type": "number"},
                "require_confirmation_over": {"type": "number"},
                "allowed_merchants": {"type": "array", "items": {"type": "string"}},
                "allowed_categories": {"type": "array", "items": {"type": "string"}},
                "timezone": {"type": "string"},
                "quiet_hours_start": {"type": "integer"},
                "quiet_hours_end": {"type": "integer"},
                "currency": {"type": "string"},
                "limit": {"type": "integer"},
            },
            "required": ["action"],
        }

    async def execute(self, args: dict[str, Any], ctx: ToolContext) -> str:
        action = text_arg(args, "action")
        if not action:
            return "Error: action is required"
        try:
            ledger = _ledger(ctx)
            match action:
                case "set_policy":
                    update = {key: args[key] for key in _POLICY_KEYS if key in args}
                    return format_policy(ledger.patch_policy(update))
                case "get_policy":
                    return format_policy(ledger.policy())
                case "request":
                    if args.get("amount") is None:
                        return "Error: amount is required"
                    decision = ledger.request(
                        text_arg(args, "merchant"),
                        text_arg(args, "category"),
                        dollars_to_cents(args["amount"]),
                        text_arg(args, "description"),
                        text_arg(args, "external_ref"),
                    )
                    return format_decision(decision)
                case "confirm" | "capture" | "cancel":
                    transaction_id = text_arg(args, "transaction_id")
                    if not transaction_id:
                        return "Error: transaction_id is required"
                    return format_decision(getattr(ledger, action)(transaction_id))
                case "status":
                    return _status(ledger)
                case "list":
                    return _list(ledger, int_arg(args, "limit", DEFAULT_LIST_LIMIT))
                case _:
                    return f"Error: unsupported payments action: {action}"
        except Exception as e:
            return f"Error: {e}"


def _ledger(ctx: ToolContext) -> PaymentLedgerService:
    if ctx.payments is not None:
        return ctx.require("payments")
    # no shared ledger: fall back to the workspace ledger file
    if ctx.workspace is None:
        return ctx.require("payments")
    return PaymentLedgerService(FilePaymentStore(ctx.workspace / LEDGER_PATH), observability=ctx.observability)


def format_policy(policy: PaymentPolicy) -> str:
    lines = [
        "Spending Policy:",
        f"- currency: {policy.currency}",
        f"- max_per_tx: {format_dollars(policy.max_per_tx_cents)}",
        f"- max_daily: {format_dollars(policy.max_daily_cents)}",
        f"- max_monthly: {format_dollars(policy.max_monthly_cents)}",
        f"- require_confirmation_over: {format_dollars(policy.require_confirmation_over_cents)}",
        f"- allowed_merchants: {', '.join(policy.allowed_merchants) or '(any)'}",
        f"- allowed_categories: {', '.join(policy.allowed_categories) or '(any)'}",
        f"- timezone: {policy.timezone}",
        f"- quiet_hours: {_quiet_hours(policy)}",
    ]
    return "\n".join(lines)


def format_decision(decision: PaymentDecision) -> str:
    head = f"Payment {decision.status} ({decision.transaction_id}): {decision.message}"
    if decision.status == PaymentStatus.DENIED:
        return head
    budgets = (
        f"remaining_daily={format_dollars(decision.remaining_daily_cents)}, "
        f"remaining_monthly={format_dollars(decision.remaining_monthly_cents)}"
    )
    return f"{head} [{budgets}]"


def _status(ledger: PaymentLedgerService) -> str:
    policy, summary = ledger.policy(), ledger.summary()
    return "\n".join(
        [
            "Wallet Status:",
            f"- currency: {policy.currency}",
            f"- reserved: {format_dollars(summary.reserved_cents)}",
            f"- captured: {format_dollars(summary.captured_cents)}",
            f"- daily used: {format_dollars(summary.daily_used_cents)} "
            f"(available: {format_dollars(summary.available_daily_cents)})",
            f"- monthly used: {format_dollars(summary.monthly_used_cents)} "
            f"(available: {format_dollars(summary.available_monthly_cents)})",
            f"- transactions: {summary.total_transactions}",
        ]
    )


def _list(ledger: PaymentLedgerService, limit: int) -> str:
    transactions = ledger.list(max(1, limit))
    if not transactions:
        return "No payment transactions found."
    rows = [
        f"- {tx.id} | {tx.status} | {tx.merchant or '(merchant)'} | "
        f"{tx.category or '(category)'} | {format_dollars(tx.amount_cents)}"
        for tx in transactions
    ]
    return "Payment Transactions:\n" + "\n".join(rows)


def _quiet_hours(policy: PaymentPolicy) -> str:
    start, end = policy.quiet_hours_start, policy.quiet_hours_end
    if start is None or end is None or start == end:
        return "(off)"
    return f"{start:02d}:00-{end:02d}:00"

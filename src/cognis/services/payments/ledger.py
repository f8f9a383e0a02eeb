"""Delegated-spending ledger.

Every operation takes the ledger lock, loads the state once, applies one
transition and saves it. Accepted spend (AUTHORIZED or CAPTURED) is counted
by the day and month of the transaction's last update in the policy timezone.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Optional

from cognis.core.types import PaymentStatus
from cognis.log import get_logger
from cognis.services.payments.models import (
    PaymentDecision,
    PaymentPolicy,
    PaymentState,
    PaymentSummary,
    PaymentTransaction,
)
from cognis.services.payments.money import apply_policy_update
from cognis.services.payments.store import PaymentStore

if TYPE_CHECKING:
    from cognis.services.observability import ObservabilityService

logger = get_logger(__name__)

MSG_AUTHORIZED = "Authorized. Funds reserved for execution."
MSG_PENDING = "Pending confirmation before execution."
MSG_NOT_FOUND = "Transaction not found."

_ACCEPTED = (PaymentStatus.AUTHORIZED, PaymentStatus.CAPTURED)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class _Validation:
    allowed: bool
    reason: str = ""
    remaining_daily: int = 0
    remaining_monthly: int = 0


class PaymentLedgerService:
    def __init__(
        self,
        store: PaymentStore,
        clock: Callable[[], datetime] = _utc_now,
        observability: Optional[ObservabilityService] = None,
    ):
        self._store = store
        self._clock = clock
        self._observability = observability
        self._lock = threading.RLock()

    def policy(self) -> PaymentPolicy:
        with self._lock:
            return self._store.load().policy

    def update_policy(self, policy: PaymentPolicy) -> PaymentPolicy:
        with self._lock:
            state = self._store.load()
            self._store.save(PaymentState(policy=policy, transactions=state.transactions))
            logger.info("payment_policy_updated", currency=policy.currency)
            return policy

    def patch_policy(self, update: dict[str, Any]) -> PaymentPolicy:
        """Overlay the keys present in ``update`` (dollar amounts) onto the stored policy."""
        with self._lock:
            state = self._store.load()
            policy = apply_policy_update(state.policy, update)
            self._store.save(PaymentState(policy=policy, transactions=state.transactions))
            logger.info("payment_policy_updated", currency=policy.currency, keys=sorted(update))
            return policy

    def request(
        self,
        merchant: str,
        category: str,
        amount_cents: int,
        description: str = "",
        external_ref: str = "",
    ) -> PaymentDecision:
        with self._lock:
            self._emit("payment_request", "", merchant, category, amount_cents, external_ref, "")
            state = self._store.load()
            now = self._clock()
            validation = self._validate(state, merchant, category, amount_cents, now)
            if not validation.allowed:
                denied = self._new_transaction(
                    now, merchant, category, amount_cents, description, external_ref,
                    PaymentStatus.DENIED, validation.reason,
                )
                self._save_with(state, denied)
                self._emit_tx("payment_denied", denied, validation.reason)
                return PaymentDecision(
                    status=PaymentStatus.DENIED,
                    transaction_id=denied.id,
                    message=validation.reason,
                    remaining_daily_cents=validation.remaining_daily,
                    remaining_monthly_cents=validation.remaining_monthly,
                )

            needs_confirmation = amount_cents > state.policy.require_confirmation_over_cents
            status = PaymentStatus.PENDING_CONFIRMATION if needs_confirmation else PaymentStatus.AUTHORIZED
            approved = self._new_transaction(
                now, merchant, category, amount_cents, description, external_ref, status, ""
            )
            self._save_with(state, approved)

            remaining_daily = validation.remaining_daily
            remaining_monthly = validation.remaining_monthly
            if needs_confirmation:
                self._emit_tx("approval_requested", approved, "pending_confirmation")
                message = MSG_PENDING
            else:
                self._emit_tx("payment_authorized", approved, "authorized")
                message = MSG_AUTHORIZED
                remaining_daily = max(0, remaining_daily - amount_cents)
                remaining_monthly = max(0, remaining_monthly - amount_cents)
            return PaymentDecision(
                status=status,
                transaction_id=approved.id,
                message=message,
                remaining_daily_cents=remaining_daily,
                remaining_monthly_cents=remaining_monthly,
            )

    def confirm(self, transaction_id: str) -> PaymentDecision:
        """Promote a pending transaction after re-running validation without it."""
        with self._lock:
            state = self._store.load()
            index = _index_of(state.transactions, transaction_id)
            if index < 0:
                return _denied("", MSG_NOT_FOUND)
            tx = state.transactions[index]
            if tx.status != PaymentStatus.PENDING_CONFIRMATION:
                return _denied(tx.id, "Only pending transactions can be confirmed.")

            now = self._clock()
            validation = self._validate(state, tx.merchant, tx.category, tx.amount_cents, now, exclude_id=tx.id)
            if not validation.allowed:
                denied = tx.model_copy(
                    update={"updated_at": now, "status": PaymentStatus.DENIED, "reason": validation.reason}
                )
                self._replace(state, index, denied)
                self._emit_tx("payment_denied", denied, validation.reason)
                return PaymentDecision(
                    status=PaymentStatus.DENIED,
                    transaction_id=tx.id,
                    message=validation.reason,
                    remaining_daily_cents=validation.remaining_daily,
                    remaining_monthly_cents=validation.remaining_monthly,
                )

            authorized = tx.model_copy(
                update={"updated_at": now, "status": PaymentStatus.AUTHORIZED, "reason": ""}
            )
            self._replace(state, index, authorized)
            self._emit_tx("payment_authorized", authorized, "authorized_after_confirmation")
            return PaymentDecision(
                status=PaymentStatus.AUTHORIZED,
                transaction_id=tx.id,
                message=MSG_AUTHORIZED,
                remaining_daily_cents=max(0, validation.remaining_daily - tx.amount_cents),
                remaining_monthly_cents=max(0, validation.remaining_monthly - tx.amount_cents),
            )

    def capture(self, transaction_id: str) -> PaymentDecision:
        with self._lock:
            state = self._store.load()
            index = _index_of(state.transactions, transaction_id)
            if index < 0:
                return _denied("", MSG_NOT_FOUND)
            tx = state.transactions[index]
            if tx.status != PaymentStatus.AUTHORIZED:
                return _denied(tx.id, "Invalid transaction status for this operation.")
            captured = tx.model_copy(
                update={"updated_at": self._clock(), "status": PaymentStatus.CAPTURED, "reason": ""}
            )
            self._replace(state, index, captured)
            self._emit_tx("payment_captured", captured, "captured")
            return self._decision_with_summary(PaymentStatus.CAPTURED, tx.id, "Captured successfully.")

    def cancel(self, transaction_id: str) -> PaymentDecision:
        with self._lock:
            state = self._store.load()
            index = _index_of(state.transactions, transaction_id)
            if index < 0:
                return _denied("", MSG_NOT_FOUND)
            tx = state.transactions[index]
            if tx.status not in (PaymentStatus.AUTHORIZED, PaymentStatus.PENDING_CONFIRMATION):
                return _denied(tx.id, "Only authorized or pending transactions can be cancelled.")
            cancelled = tx.model_copy(
                update={
                    "updated_at": self._clock(),
                    "status": PaymentStatus.CANCELLED,
                    "reason": "Cancelled by user or policy.",
                }
            )
            self._replace(state, index, cancelled)
            self._emit_tx("payment_cancelled", cancelled, cancelled.reason)
            return self._decision_with_summary(PaymentStatus.CANCELLED, tx.id, "Cancelled successfully.")

    def list(self, limit: int) -> list[PaymentTransaction]:
        with self._lock:
            transactions = self._store.load().transactions
        return sorted(transactions, key=lambda tx: tx.created_at, reverse=True)[: max(1, limit)]

    def summary(self) -> PaymentSummary:
        with self._lock:
            return self._summarize(self._store.load())

    def _decision_with_summary(self, status: PaymentStatus, tx_id: str, message: str) -> PaymentDecision:
        summary = self._summarize(self._store.load())
        return PaymentDecision(
            status=status,
            transaction_id=tx_id,
            message=message,
            remaining_daily_cents=summary.available_daily_cents,
            remaining_monthly_cents=summary.available_monthly_cents,
        )

    def _validate(
        self,
        state: PaymentState,
        merchant: str,
        category: str,
        amount_cents: int,
        now: datetime,
        exclude_id: Optional[str] = None,
    ) -> _Validation:
        if amount_cents <= 0:
            return _Validation(False, "Amount must be greater than zero.")
        policy = state.policy
        if not policy.allows_merchant(merchant):
            return _Validation(False, "Merchant is blocked by policy.")
        if not policy.allows_category(category):
            return _Validation(False, "Category is blocked by policy.")
        if policy.in_quiet_hours(now):
            return _Validation(False, "Execution blocked during quiet hours.")
        if amount_cents > policy.max_per_tx_cents:
            return _Validation(False, "Amount exceeds per-transaction limit.")

        daily, monthly = self._usage(state, now, exclude_id)
        remaining_daily = max(0, policy.max_daily_cents - daily)
        remaining_monthly = max(0, policy.max_monthly_cents - monthly)
        if amount_cents > remaining_daily:
            return _Validation(False, "Amount exceeds remaining daily budget.", remaining_daily, remaining_monthly)
        if amount_cents > remaining_monthly:
            return _Validation(False, "Amount exceeds remaining monthly budget.", remaining_daily, remaining_monthly)
        return _Validation(True, "", remaining_daily, remaining_monthly)

    @staticmethod
    def _usage(state: PaymentState, now: datetime, exclude_id: Optional[str]) -> tuple[int, int]:
        zone = state.policy.zone
        today = now.astimezone(zone).date()
        daily = monthly = 0
        for tx in state.transactions:
            if exclude_id is not None and tx.id == exclude_id:
                continue
            if tx.status not in _ACCEPTED:
                continue
            tx_date = tx.updated_at.astimezone(zone).date()
            if tx_date == today:
                daily += tx.amount_cents
            if (tx_date.year, tx_date.month) == (today.year, today.month):
                monthly += tx.amount_cents
        return daily, monthly

    def _summarize(self, state: PaymentState) -> PaymentSummary:
        policy = state.policy
        daily, monthly = self._usage(state, self._clock(), None)
        return PaymentSummary(
            reserved_cents=sum(tx.amount_cents for tx in state.transactions if tx.status == PaymentStatus.AUTHORIZED),
            captured_cents=sum(tx.amount_cents for tx in state.transactions if tx.status == PaymentStatus.CAPTURED),
            daily_used_cents=daily,
            monthly_used_cents=monthly,
            available_daily_cents=max(0, policy.max_daily_cents - daily),
            available_monthly_cents=max(0, policy.max_monthly_cents - monthly),
            total_transactions=len(state.transactions),
        )

    @staticmethod
    def _new_transaction(
        now: datetime,
        merchant: str,
        category: str,
        amount_cents: int,
        description: str,
        external_ref: str,
        status: PaymentStatus,
        reason: str,
    ) -> PaymentTransaction:
        return PaymentTransaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            merchant=merchant or "",
            category=category or "",
            amount_cents=max(0, amount_cents),
            description=description or "",
            external_ref=external_ref or "",
            status=status,
            reason=reason,
        )

    def _save_with(self, state: PaymentState, tx: PaymentTransaction) -> None:
        self._store.save(PaymentState(policy=state.policy, transactions=[*state.transactions, tx]))

    def _replace(self, state: PaymentState, index: int, tx: PaymentTransaction) -> None:
        transactions = list(state.transactions)
        transactions[index] = tx
        self._store.save(PaymentState(policy=state.policy, transactions=transactions))

    def _emit_tx(self, event_type: str, tx: PaymentTransaction, detail: str) -> None:
        self._emit(event_type, tx.id, tx.merchant, tx.category, tx.amount_cents, tx.external_ref, detail)

    def _emit(
        self,
        event_type: str,
        transaction_id: str,
        merchant: str,
        category: str,
        amount_cents: int,
        external_ref: str,
        detail: str,
    ) -> None:
        if self._observability is None:
            return
        try:
            self._observability.record(
                event_type,
                {
                    "transaction_id": transaction_id or "",
                    "merchant": merchant or "",
                    "category": category or "",
                    "amount_cents": amount_cents,
                    "amount_usd": amount_cents / 100.0,
                    "external_ref": external_ref or "",
                    "detail": detail or "",
                },
            )
        except Exception as e:
            logger.debug("payment_audit_failed", event_type=event_type, error=str(e))


def _index_of(transactions: list[PaymentTransaction], transaction_id: Optional[str]) -> int:
    if not transaction_id or not transaction_id.strip():
        return -1
    for i, tx in enumerate(transactions):
        if tx.id == transaction_id:
            return i
    return -1


def _denied(transaction_id: str, message: str) -> PaymentDecision:
    return PaymentDecision(status=PaymentStatus.DENIED, transaction_id=transaction_id, message=message)

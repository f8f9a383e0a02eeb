"""Spending policy, transactions and ledger results."""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Any, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from cognis.core.types import PaymentStatus


def normalize_key(value: Optional[str]) -> str:
    return (value or "").strip().lower()


class PaymentPolicy(BaseModel):
    """Spend envelope; all amounts are cents.

    Quiet hours are ``[start, end)`` in the policy timezone and wrap midnight
    when ``start > end``; equal bounds switch them off.
    """

    currency: str = "USD"
    max_per_tx_cents: int = 10_000
    max_daily_cents: int = 20_000
    max_monthly_cents: int = 100_000
    require_confirmation_over_cents: int = 2_000
    allowed_merchants: list[str] = Field(default_factory=list)
    allowed_categories: list[str] = Field(default_factory=list)
    timezone: str = "UTC"
    quiet_hours_start: Optional[int] = None
    quiet_hours_end: Optional[int] = None

    @field_validator("currency", mode="before")
    @classmethod
    def _currency(cls, value: Any) -> str:
        text = str(value or "").strip()
        return (text or "USD").upper()

    @field_validator(
        "max_per_tx_cents",
        "max_daily_cents",
        "max_monthly_cents",
        "require_confirmation_over_cents",
        mode="after",
    )
    @classmethod
    def _non_negative(cls, value: int) -> int:
        return max(0, value)

    @field_validator("allowed_merchants", "allowed_categories", mode="before")
    @classmethod
    def _keys(cls, value: Any) -> list[str]:
        result: list[str] = []
        for item in value or []:
            key = normalize_key(str(item))
            if key and key not in result:
                result.append(key)
        return result

    @field_validator("timezone", mode="before")
    @classmethod
    def _timezone(cls, value: Any) -> str:
        text = str(value or "").strip()
        return text or "UTC"

    @field_validator("quiet_hours_start", "quiet_hours_end", mode="before")
    @classmethod
    def _hour(cls, value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        hour = int(value)
        return hour if 0 <= hour <= 23 else None

    @property
    def zone(self) -> tzinfo:
        try:
            return ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo("UTC")

    def allows_merchant(self, merchant: Optional[str]) -> bool:
        return not self.allowed_merchants or normalize_key(merchant) in self.allowed_merchants

    def allows_category(self, category: Optional[str]) -> bool:
        return not self.allowed_categories or normalize_key(category) in self.allowed_categories

    def in_quiet_hours(self, at: datetime) -> bool:
        start, end = self.quiet_hours_start, self.quiet_hours_end
        if start is None or end is None or start == end:
            return False
        hour = at.astimezone(self.zone).hour
        if start < end:
            return start <= hour < end
        return hour >= start or hour < end


class PaymentTransaction(BaseModel):
    id: str
    created_at: datetime
    updated_at: datetime
    merchant: str = ""
    category: str = ""
    amount_cents: int = Field(default=0, ge=0)
    description: str = ""
    external_ref: str = ""
    status: PaymentStatus
    reason: str = ""


class PaymentState(BaseModel):
    policy: PaymentPolicy = Field(default_factory=PaymentPolicy)
    transactions: list[PaymentTransaction] = Field(default_factory=list)


class PaymentDecision(BaseModel):
    status: PaymentStatus
    transaction_id: str
    message: str
    remaining_daily_cents: int = 0
    remaining_monthly_cents: int = 0


class PaymentSummary(BaseModel):
    reserved_cents: int = 0
    captured_cents: int = 0
    daily_used_cents: int = 0
    monthly_used_cents: int = 0
    available_daily_cents: int = 0
    available_monthly_cents: int = 0
    total_transactions: int = 0

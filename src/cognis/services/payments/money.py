"""Dollar/cent conversion and the dollar-denominated policy wire shape."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

from cognis.services.payments.models import PaymentPolicy

CENT = Decimal("1")


def dollars_to_cents(raw: Any) -> int:
    """Convert a dollar amount (``12.345`` or ``"12.345"``) to cents, rounding half up."""
    if isinstance(raw, bool):
        raise ValueError(f"invalid amount: {raw}")
    try:
        dollars = Decimal(str(raw).strip())
    except InvalidOperation as e:
        raise ValueError(f"invalid amount: {raw}") from e
    if not dollars.is_finite():
        raise ValueError(f"invalid amount: {raw}")
    return int((dollars * 100).quantize(CENT, rounding=ROUND_HALF_UP))


def cents_to_dollars(cents: int) -> float:
    return cents / 100.0


def format_dollars(cents: int) -> str:
    return f"{cents / 100.0:.2f}"


def policy_to_wire(policy: PaymentPolicy) -> dict[str, Any]:
    return {
        "currency": policy.currency,
        "max_per_tx": cents_to_dollars(policy.max_per_tx_cents),
        "max_daily": cents_to_dollars(policy.max_daily_cents),
        "max_monthly": cents_to_dollars(policy.max_monthly_cents),
        "require_confirmation_over": cents_to_dollars(policy.require_confirmation_over_cents),
        "allowed_merchants": list(policy.allowed_merchants),
        "allowed_categories": list(policy.allowed_categories),
        "timezone": policy.timezone,
        "quiet_hours_start": policy.quiet_hours_start,
        "quiet_hours_end": policy.quiet_hours_end,
    }


def apply_policy_update(current: PaymentPolicy, body: dict[str, Any]) -> PaymentPolicy:
    """Overlay a partial dollar-denominated policy onto ``current``.

    Absent keys keep their current value; a blank string keeps the current
    currency or timezone; an unparseable hour keeps the current hour.
    """
    return PaymentPolicy.model_validate(
        {
            "currency": _text_or(body.get("currency"), current.currency),
            "max_per_tx_cents": _cents_or(body.get("max_per_tx"), current.max_per_tx_cents),
            "max_daily_cents": _cents_or(body.get("max_daily"), current.max_daily_cents),
            "max_monthly_cents": _cents_or(body.get("max_monthly"), current.max_monthly_cents),
            "require_confirmation_over_cents": _cents_or(
                body.get("require_confirmation_over"), current.require_confirmation_over_cents
            ),
            "allowed_merchants": _list_or(body.get("allowed_merchants"), current.allowed_merchants),
            "allowed_categories": _list_or(body.get("allowed_categories"), current.allowed_categories),
            "timezone": _text_or(body.get("timezone"), current.timezone),
            "quiet_hours_start": _int_or(body.get("quiet_hours_start"), current.quiet_hours_start),
            "quiet_hours_end": _int_or(body.get("quiet_hours_end"), current.quiet_hours_end),
        }
    )


def _text_or(value: Any, fallback: str) -> str:
    text = "" if value is None else str(value).strip()
    return text or fallback


def _cents_or(value: Any, fallback: int) -> int:
    return fallback if value is None else dollars_to_cents(value)


def _int_or(value: Any, fallback: Optional[int]) -> Optional[int]:
    if value is None:
        return fallback
    try:
        return int(str(value).strip())
    except ValueError:
        return fallback


def _list_or(value: Any, fallback: list[str]) -> list[str]:
    if value is None:
        return list(fallback)
    if isinstance(value, (list, tuple)):
        items = [str(item).strip() for item in value]
    else:
        items = [part.strip() for part in str(value).split(",")]
    return [item for item in items if item]

"""Natural-language time expressions for scheduling ("in 5 min", "tomorrow at 8am")."""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Callable, Optional

_IN_PATTERN = re.compile(
    r"^in\s+(\d+)\s*(s|sec|secs|second|seconds|m|min|mins|minute|minutes"
    r"|h|hr|hrs|hour|hours|d|day|days)$"
)
_DAY_AT_PATTERN = re.compile(r"^(today|tomorrow)(?:\s+at\s+(.+))?$")
_MERIDIEM = re.compile(r"^(\d{1,2})(?::(\d{2}))?(am|pm)$")
_TWENTY_FOUR = re.compile(r"^(\d{1,2})(?::(\d{2}))?$")

_UNIT_SECONDS = {
    **dict.fromkeys(("s", "sec", "secs", "second", "seconds"), 1),
    **dict.fromkeys(("m", "min", "mins", "minute", "minutes"), 60),
    **dict.fromkeys(("h", "hr", "hrs", "hour", "hours"), 3600),
    **dict.fromkeys(("d", "day", "days"), 86400),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NaturalTimeParser:
    """Turns a time expression into epoch milliseconds.

    Supported forms, tried in order: ``in <n> <unit>``, ``today|tomorrow [at
    <time>]`` (default 09:00, ``8am``/``8:30pm``/``18:45``), an ISO instant with
    offset, ``YYYY-MM-DD HH:MM`` and an ISO local date-time. Local forms are
    interpreted in ``zone``.
    """

    def __init__(self, clock: Callable[[], datetime] = _utc_now):
        self._clock = clock

    def parse_to_epoch_ms(self, expression: str, zone: Optional[tzinfo] = None) -> int:
        if not expression or not expression.strip():
            raise ValueError("time expression is required")
        zone = zone or timezone.utc
        raw = expression.strip()
        normalized = raw.lower()
        now = self._clock()

        if match := _IN_PATTERN.match(normalized):
            seconds = int(match.group(1)) * _UNIT_SECONDS[match.group(2)]
            return _to_ms(now + timedelta(seconds=seconds))

        if match := _DAY_AT_PATTERN.match(normalized):
            base: date = now.astimezone(zone).date()
            if match.group(1) == "tomorrow":
                base += timedelta(days=1)
            at = self._parse_time(match.group(2))
            return _to_ms(datetime.combine(base, at, tzinfo=zone))

        try:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        except ValueError:
            parsed = None
        if parsed is not None and parsed.tzinfo is not None:
            return _to_ms(parsed)

        try:
            return _to_ms(datetime.strptime(raw, "%Y-%m-%d %H:%M").replace(tzinfo=zone))
        except ValueError:
            pass

        if parsed is not None and "T" in raw:
            return _to_ms(parsed.replace(tzinfo=zone))

        raise ValueError(f"unable to parse time expression: {expression}")

    @staticmethod
    def _parse_time(token: Optional[str]) -> time:
        if not token or not token.strip():
            return time(9, 0)
        value = token.strip().lower().replace(" ", "")
        if match := _MERIDIEM.match(value):
            hour = int(match.group(1)) % 12
            minute = int(match.group(2) or 0)
            if match.group(3) == "pm":
                hour += 12
            return time(hour, minute)
        if match := _TWENTY_FOUR.match(value):
            try:
                return time(int(match.group(1)), int(match.group(2) or 0))
            except ValueError:
                pass
        raise ValueError(f"invalid time format: {token}")


def _to_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def local_zone() -> tzinfo:
    """The host's current local timezone."""
    return datetime.now().astimezone().tzinfo or timezone.utc

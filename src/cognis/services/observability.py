"""Append-only audit log and the dashboard metrics derived from it."""

from __future__ import annotations

import math
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from pydantic import BaseModel, Field, ValidationError

from cognis.log import get_logger
from cognis.storage.files import atomic_write_json, read_json

logger = get_logger(__name__)

MAX_EVENTS = 20_000
RECOVERY_WINDOW = timedelta(hours=1)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditEvent(BaseModel):
    id: str
    timestamp: datetime
    type: str
    attributes: dict[str, Any] = Field(default_factory=dict)


class DashboardSummary(BaseModel):
    tasks_started: int = 0
    tasks_succeeded: int = 0
    tasks_failed: int = 0
    task_success_rate: float = 0.0
    p50_latency_ms: float = 0.0
    p95_latency_ms: float = 0.0
    average_cost_per_task_usd: float = 0.0
    failure_recovery_rate: float = 0.0
    safety_incident_rate: float = 0.0
    weekly_completed_tasks: int = 0
    active_users_7d: int = 0
    retention_7d: float = 0.0
    audit_events: int = 0


class AuditStore(ABC):
    @abstractmethod
    def load(self) -> list[AuditEvent]:
        ...

    @abstractmethod
    def save(self, events: list[AuditEvent]) -> None:
        ...


class FileAuditStore(AuditStore):
    def __init__(self, path: Path):
        self._path = path

    def load(self) -> list[AuditEvent]:
        try:
            raw = read_json(self._path, default=[])
            return [AuditEvent.model_validate(item) for item in raw or []]
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.warning("audit_store_load_failed", path=str(self._path), error=str(e))
            return []

    def save(self, events: list[AuditEvent]) -> None:
        atomic_write_json(self._path, [e.model_dump(mode="json") for e in events])


class ObservabilityService:
    def __init__(self, store: AuditStore, clock: Callable[[], datetime] = _utc_now):
        self._store = store
        self._clock = clock
        self._lock = threading.Lock()

    def record(self, event_type: str, attributes: Optional[dict[str, Any]] = None) -> AuditEvent:
        """Append an event, keeping only the newest ``MAX_EVENTS``."""
        event = AuditEvent(
            id=str(uuid.uuid4()),
            timestamp=self._clock(),
            type=event_type,
            attributes=dict(attributes or {}),
        )
        with self._lock:
            events = self._store.load()
            events.append(event)
            if len(events) > MAX_EVENTS:
                events = events[-MAX_EVENTS:]
            self._store.save(events)
        return event

    def recent(self, limit: int) -> list[AuditEvent]:
        with self._lock:
            events = self._store.load()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[: max(1, limit)]

    def summary(self) -> DashboardSummary:
        with self._lock:
            events = sorted(self._store.load(), key=lambda e: e.timestamp)
        now = self._clock()
        since_7d = now - timedelta(days=7)
        since_14d = now - timedelta(days=14)

        started = _by_type(events, "task_started")
        succeeded = _by_type(events, "task_succeeded")
        failed = _by_type(events, "task_failed")
        requests = _by_type(events, "payment_request")
        denied = _by_type(events, "payment_denied")

        latencies = sorted(v for v in (_number(e.attributes.get("duration_ms")) for e in succeeded) if v is not None and v >= 0)
        costs = [v for v in (_number(e.attributes.get("cost_usd")) for e in succeeded) if v is not None and v >= 0]

        current = _unique_clients(events, since_7d, now)
        previous = _unique_clients(events, since_14d, since_7d)

        return DashboardSummary(
            tasks_started=len(started),
            tasks_succeeded=len(succeeded),
            tasks_failed=len(failed),
            task_success_rate=_round2(_percentage(len(succeeded), len(started))),
            p50_latency_ms=_round2(percentile(latencies, 50)),
            p95_latency_ms=_round2(percentile(latencies, 95)),
            average_cost_per_task_usd=_round4(sum(costs) / len(costs) if costs else 0.0),
            failure_recovery_rate=_round2(_recovery_rate(failed, succeeded)),
            safety_incident_rate=_round2(_percentage(len(denied), len(requests))),
            weekly_completed_tasks=sum(1 for e in succeeded if e.timestamp >= since_7d),
            active_users_7d=len(current),
            retention_7d=_round2(_percentage(len(previous & current), len(previous))),
            audit_events=len(events),
        )


def percentile(sorted_values: list[float], p: int) -> float:
    """Nearest-rank percentile; ``p == 0`` yields the smallest value."""
    if not sorted_values:
        return 0.0
    p = max(0, min(100, p))
    if p == 0:
        return sorted_values[0]
    index = math.ceil(p / 100 * len(sorted_values)) - 1
    return sorted_values[max(0, min(len(sorted_values) - 1, index))]


def _by_type(events: Iterable[AuditEvent], event_type: str) -> list[AuditEvent]:
    wanted = event_type.lower()
    return [e for e in events if (e.type or "").lower() == wanted]


def _client(event: AuditEvent) -> str:
    value = event.attributes.get("client_id")
    return "" if value is None else str(value).strip()


def _unique_clients(events: Iterable[AuditEvent], start: datetime, end: datetime) -> set[str]:
    return {c for e in events if start <= e.timestamp <= end and (c := _client(e))}


def _recovery_rate(failures: list[AuditEvent], successes: list[AuditEvent]) -> float:
    # failures without a client cannot recover but still count in the denominator
    recovered = 0
    for failure in failures:
        client = _client(failure)
        if not client:
            continue
        deadline = failure.timestamp + RECOVERY_WINDOW
        if any(
            _client(s) == client and failure.timestamp <= s.timestamp <= deadline
            for s in successes
        ):
            recovered += 1
    return _percentage(recovered, len(failures))


def _number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None


def _percentage(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return numerator * 100.0 / denominator


def _round2(value: float) -> float:
    return math.floor(value * 100.0 + 0.5) / 100.0


def _round4(value: float) -> float:
    return math.floor(value * 10_000.0 + 0.5) / 10_000.0

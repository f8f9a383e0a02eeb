"""Persisted one-shot and interval jobs.

The service is pure domain: it never runs on its own. The gateway's cron
dispatcher (``cognis.services.scheduler``) calls :meth:`CronService.run_due`
periodically; the ``cron`` tool manages jobs on behalf of the agent.
"""

from __future__ import annotations

import threading
import time
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, ValidationError

from cognis.log import get_logger
from cognis.storage.files import atomic_write_json, read_json

logger = get_logger(__name__)

DAILY_DIGEST_NAME = "daily-digest"
DAILY_DIGEST_MESSAGE = "workflow:daily_brief"
DAILY_DIGEST_EVERY_SECONDS = 86400


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class CronJob(BaseModel):
    """Interval jobs have ``every_seconds > 0``; one-shots have 0 and ``delete_after_run``."""

    id: str
    name: str
    message: str
    every_seconds: int = 0
    delete_after_run: bool = False
    enabled: bool = True
    next_run_at_ms: int
    last_run_at_ms: int = 0

    @property
    def one_shot(self) -> bool:
        return self.every_seconds <= 0


class CronStore(ABC):
    @abstractmethod
    def load(self) -> list[CronJob]:
        ...

    @abstractmethod
    def save(self, jobs: list[CronJob]) -> None:
        ...


class FileCronStore(CronStore):
    """JSON list of jobs, rewritten with temp + rename."""

    def __init__(self, path: Path):
        self._path = path

    def load(self) -> list[CronJob]:
        try:
            raw = read_json(self._path, default=[])
            return [CronJob.model_validate(item) for item in raw or []]
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.warning("cron_store_load_failed", path=str(self._path), error=str(e))
            return []

    def save(self, jobs: list[CronJob]) -> None:
        atomic_write_json(self._path, [job.model_dump() for job in jobs])


class CronService:
    def __init__(self, store: CronStore, clock: Callable[[], int] = _epoch_ms):
        self._store = store
        self._clock = clock
        self._lock = threading.RLock()

    def add_every(self, name: str, every_seconds: int, message: str) -> CronJob:
        if every_seconds <= 0:
            raise ValueError("every_seconds must be > 0")
        with self._lock:
            jobs = self._store.load()
            job = CronJob(
                id=str(uuid.uuid4()),
                name=name,
                message=message,
                every_seconds=every_seconds,
                delete_after_run=False,
                next_run_at_ms=self._clock() + every_seconds * 1000,
            )
            jobs.append(job)
            self._store.save(jobs)
        logger.info("cron_job_added", job_id=job.id, name=name, every_seconds=every_seconds)
        return job

    def add_in(self, name: str, in_seconds: int, message: str) -> CronJob:
        if in_seconds <= 0:
            raise ValueError("in_seconds must be > 0")
        with self._lock:
            return self.add_at(name, self._clock() + in_seconds * 1000, message)

    def add_at(self, name: str, run_at_ms: int, message: str) -> CronJob:
        """Schedule a one-shot, never sooner than one second from now."""
        with self._lock:
            jobs = self._store.load()
            job = CronJob(
                id=str(uuid.uuid4()),
                name=name,
                message=message,
                every_seconds=0,
                delete_after_run=True,
                next_run_at_ms=max(self._clock() + 1000, run_at_ms),
            )
            jobs.append(job)
            self._store.save(jobs)
        logger.info("cron_job_added", job_id=job.id, name=name, run_at_ms=job.next_run_at_ms)
        return job

    def list(self) -> list[CronJob]:
        with self._lock:
            return list(self._store.load())

    def remove(self, job_id: str) -> bool:
        with self._lock:
            jobs = self._store.load()
            kept = [job for job in jobs if job.id != job_id]
            if len(kept) == len(jobs):
                return False
            self._store.save(kept)
            return True

    def run_due(self, callback: Callable[[CronJob], None]) -> int:
        """Fire every enabled job whose time has come; returns how many fired."""
        with self._lock:
            now = self._clock()
            count = 0
            updated: list[CronJob] = []
            for job in self._store.load():
                if not (job.enabled and now >= job.next_run_at_ms):
                    updated.append(job)
                    continue
                callback(job)
                count += 1
                if not job.delete_after_run:
                    updated.append(
                        job.model_copy(
                            update={
                                "next_run_at_ms": now + job.every_seconds * 1000,
                                "last_run_at_ms": now,
                            }
                        )
                    )
            if count > 0:
                self._store.save(updated)
            return count

    def ensure_daily_digest(self) -> CronJob | None:
        """Create the daily brief job unless one already exists."""
        with self._lock:
            if any(job.name == DAILY_DIGEST_NAME for job in self._store.load()):
                return None
            return self.add_every(DAILY_DIGEST_NAME, DAILY_DIGEST_EVERY_SECONDS, DAILY_DIGEST_MESSAGE)

"""User profile document and its prompt rendering."""

from __future__ import annotations

import threading
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from cognis.log import get_logger
from cognis.storage.files import atomic_write_json, read_json

logger = get_logger(__name__)

PROFILE_FIELDS = ("name", "timezone", "notes")


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class UserProfile(BaseModel):
    name: str = ""
    timezone: str = ""
    preferences: dict[str, str] = Field(default_factory=dict)
    goals: list[str] = Field(default_factory=list)
    relationships: dict[str, str] = Field(default_factory=dict)
    notes: str = ""
    updated_at: datetime = Field(default_factory=_utc_now)

    @property
    def is_empty(self) -> bool:
        return not (
            self.name.strip()
            or self.preferences
            or self.goals
            or self.relationships
            or self.notes.strip()
        )


class FileProfileStore:
    def __init__(self, path: Path):
        self._path = path
        self._lock = threading.Lock()

    def get(self) -> UserProfile:
        with self._lock:
            return self._load()

    def set_field(self, field: str, value: str) -> None:
        if field not in PROFILE_FIELDS:
            raise ValueError(f"unknown profile field: {field}")
        self._update(lambda p: {field: value})

    def set_preference(self, key: str, value: str) -> None:
        self._update(lambda p: {"preferences": {**p.preferences, key: value}})

    def add_goal(self, goal: str) -> None:
        self._update(lambda p: {"goals": p.goals if goal in p.goals else [*p.goals, goal]})

    def remove_goal(self, goal: str) -> None:
        self._update(lambda p: {"goals": [g for g in p.goals if g != goal]})

    def add_relationship(self, name: str, notes: str = "") -> None:
        self._update(lambda p: {"relationships": {**p.relationships, name: notes or ""}})

    def format_for_prompt(self) -> str:
        profile = self.get()
        if profile.is_empty:
            return ""
        lines = ["## User Profile", ""]
        if profile.name.strip():
            lines.append(f"**Name:** {profile.name}")
        if profile.timezone.strip():
            lines.append(f"**Timezone:** {profile.timezone}")
        if profile.notes.strip():
            lines.append(f"**Notes:** {profile.notes}")
        if profile.preferences:
            lines += ["", "**Preferences:**"]
            lines += [f"- {k}: {v}" for k, v in profile.preferences.items()]
        if profile.goals:
            lines += ["", "**Goals:**"]
            lines += [f"- {g}" for g in profile.goals]
        if profile.relationships:
            lines += ["", "**People:**"]
            lines += [f"- {k}: {v}" if v.strip() else f"- {k}" for k, v in profile.relationships.items()]
        return "\n".join(lines) + "\n"

    def _update(self, change) -> None:
        with self._lock:
            current = self._load()
            updated = current.model_copy(update={**change(current), "updated_at": _utc_now()})
            atomic_write_json(self._path, updated.model_dump(mode="json"))

    def _load(self) -> UserProfile:
        try:
            raw = read_json(self._path)
            return UserProfile.model_validate(raw) if raw else UserProfile()
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("profile_load_failed", path=str(self._path), error=str(e))
            return UserProfile()

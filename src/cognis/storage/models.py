"""Data models for the storage layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from cognis.core.messages import ChatMessage


@dataclass(frozen=True)
class ConversationTurn:
    created_at: datetime
    prompt: str
    response: str
    transcript: tuple[ChatMessage, ...] = field(default_factory=tuple)

    def transcript_json(self) -> str:
        return json.dumps([m.to_dict() for m in self.transcript], ensure_ascii=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "created_at": self.created_at.isoformat(),
            "prompt": self.prompt,
            "response": self.response,
            "transcript": [m.to_dict() for m in self.transcript],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConversationTurn:
        return cls(
            created_at=parse_timestamp(data.get("created_at")),
            prompt=str(data.get("prompt") or ""),
            response=str(data.get("response") or ""),
            transcript=tuple(ChatMessage.from_dict(m) for m in data.get("transcript") or ()),
        )


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        moment = value
    elif value:
        moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    else:
        moment = datetime.fromtimestamp(0, timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment

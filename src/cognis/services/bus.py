"""In-process message bus from cron and tools to websocket clients."""

from __future__ import annotations

import threading
from collections import deque
from typing import Any, Optional

from cognis.core.messages import ChatMessage
from cognis.core.types import FrameType

WORKFLOW_MARKERS: tuple[tuple[str, FrameType], ...] = (
    ("[workflow:daily_brief]", FrameType.DAILY_BRIEF),
    ("[workflow:goal_checkin]", FrameType.GOAL_CHECKIN),
    ("[workflow:workflow_result]", FrameType.WORKFLOW_RESULT),
)


class MessageBus:
    """Thread-safe FIFO; ``poll`` never blocks."""

    def __init__(self) -> None:
        self._queue: deque[ChatMessage] = deque()
        self._lock = threading.Lock()

    def publish(self, message: ChatMessage) -> None:
        with self._lock:
            self._queue.append(message)

    def poll(self) -> Optional[ChatMessage]:
        with self._lock:
            return self._queue.popleft() if self._queue else None

    def drain(self) -> list[ChatMessage]:
        with self._lock:
            items = list(self._queue)
            self._queue.clear()
            return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)


def map_bus_message(message: ChatMessage) -> dict[str, Any]:
    """Translate a workflow-tagged message into a typed ``{type, content}`` frame."""
    content = message.content or ""
    for marker, frame_type in WORKFLOW_MARKERS:
        if content.startswith(marker):
            return {"type": str(frame_type), "content": content[len(marker):].lstrip()}
    return {"type": str(FrameType.NOTIFICATION), "content": content}

"""Rolling session summary kept as a bounded text file."""

from __future__ import annotations

import re
import threading
from pathlib import Path

from cognis.storage.files import atomic_write_text

DEFAULT_MAX_CHARS = 2000
SNIPPET_LIMIT = 180

_WHITESPACE = re.compile(r"\s+")


class SessionSummaryManager:
    """Appends one ``User: ... | Assistant: ...`` line per turn, keeping the tail."""

    def __init__(self, path: Path, max_chars: int = DEFAULT_MAX_CHARS):
        self._path = path
        self._max_chars = max(64, max_chars)
        self._lock = threading.Lock()

    @property
    def max_chars(self) -> int:
        return self._max_chars

    def record_turn(self, prompt: str, response: str) -> None:
        with self._lock:
            current = self._read()
            line = f"User: {_shrink(prompt)} | Assistant: {_shrink(response)}"
            merged = f"{current}\n{line}" if current.strip() else line
            if len(merged) > self._max_chars:
                merged = merged[-self._max_chars:]
            atomic_write_text(self._path, merged + "\n")

    def current_summary(self) -> str:
        with self._lock:
            return self._read()

    def _read(self) -> str:
        if not self._path.exists():
            return ""
        return self._path.read_text(encoding="utf-8").strip()


def _shrink(value: str | None) -> str:
    normalized = _WHITESPACE.sub(" ", (value or "").strip())
    if len(normalized) <= SNIPPET_LIMIT:
        return normalized
    return normalized[:SNIPPET_LIMIT - 3] + "..."

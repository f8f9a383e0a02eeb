"""Pull durable facts about the user out of a prompt with regex heuristics."""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

MAX_MEMORIES = 5

_NAME = re.compile(r"\bmy name is ([A-Za-z][A-Za-z0-9_' -]{1,40})", re.IGNORECASE)
_LOCATION = re.compile(
    r"\b(?:i live in|i am in|i'm in|i am from|i'm from) ([A-Za-z][A-Za-z0-9,' -]{1,60})",
    re.IGNORECASE,
)
_PREFERENCE = re.compile(r"\b(?:i prefer|i like|i love) ([^.\n!?]{3,100})", re.IGNORECASE)
_REMINDER = re.compile(r"\bremind me to ([^.\n!?]{3,120})", re.IGNORECASE)
_SENTENCE_SPLIT = re.compile(r"[.!?\n]+")
_WHITESPACE = re.compile(r"\s+")

SIGNAL_WORDS = ("prefer", "goal", "always", "never", "deadline", "meeting", "timezone", "important")

_PATTERNS: tuple[tuple[re.Pattern, str, tuple[str, ...]], ...] = (
    (_NAME, "User name is {}", ("profile", "name")),
    (_LOCATION, "User location is {}", ("profile", "location")),
    (_PREFERENCE, "User preference: {}", ("preference",)),
    (_REMINDER, "User task: {}", ("task",)),
)


@dataclass(frozen=True)
class ExtractedMemory:
    content: str
    tags: list[str] = field(default_factory=list)


class MemoryExtractor(ABC):
    @abstractmethod
    def extract(self, user_prompt: str, assistant_response: str) -> list[ExtractedMemory]:
        ...


class HeuristicMemoryExtractor(MemoryExtractor):
    def extract(self, user_prompt: str, assistant_response: str) -> list[ExtractedMemory]:
        text = (user_prompt or "").strip()
        if not text:
            return []

        found: dict[str, ExtractedMemory] = {}
        for pattern, template, tags in _PATTERNS:
            for match in pattern.finditer(text):
                if len(found) >= MAX_MEMORIES:
                    break
                value = _collapse(match.group(1))
                if value:
                    _put(found, ExtractedMemory(template.format(value), list(tags)))

        for sentence in _SENTENCE_SPLIT.split(text):
            sentence = sentence.strip()
            if not 12 <= len(sentence) <= 180:
                continue
            if any(word in sentence.lower() for word in SIGNAL_WORDS):
                _put(found, ExtractedMemory(sentence, ["fact"]))
            if len(found) >= MAX_MEMORIES:
                break

        return list(found.values())[:MAX_MEMORIES]


def _put(found: dict[str, ExtractedMemory], memory: ExtractedMemory) -> None:
    found.setdefault(memory.content.lower(), memory)


def _collapse(value: str | None) -> str:
    return _WHITESPACE.sub(" ", (value or "").strip())

"""Long-term memory with hashed bag-of-tokens embeddings.

Entries live in one JSON document. Recall mixes term-frequency scores over
content and tags with the cosine of 256-dimension token sketches, so related
memories surface without an embedding model.
"""

from __future__ import annotations

import math
import re
import threading
import uuid
import zlib
from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from pydantic import BaseModel, Field, ValidationError

from cognis.log import get_logger
from cognis.storage.files import atomic_write_json, read_json

logger = get_logger(__name__)

EMBEDDING_DIMENSIONS = 256

_SPLIT = re.compile(r"[^a-z0-9]+")
STOP_WORDS = frozenset(
    "a an the and or is are was were to of in for on with at by from it this that "
    "these those be been being as if but not no you your we our they their he she "
    "his her".split()
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryEntry(BaseModel):
    id: str
    content: str
    tags: list[str] = Field(default_factory=list)
    embedding: list[float] = Field(default_factory=list)
    source: str = "agent"
    created_at: datetime
    updated_at: datetime


def tokenize(text: str) -> list[str]:
    return [
        token
        for token in _SPLIT.split((text or "").lower())
        if len(token) > 1 and token not in STOP_WORDS
    ]


def embed(text: str) -> list[float]:
    """Count tokens into CRC32 buckets and L2-normalize; no tokens gives the zero vector."""
    vector = [0.0] * EMBEDDING_DIMENSIONS
    for token in tokenize(text):
        vector[zlib.crc32(token.encode("utf-8")) % EMBEDDING_DIMENSIONS] += 1.0
    norm = math.sqrt(sum(v * v for v in vector))
    if norm == 0:
        return vector
    return [v / norm for v in vector]


def _embed_entry(content: str, tags: list[str]) -> list[float]:
    return embed(f"{content} {' '.join(tags)}")


def _dedupe(tags: list[str] | None) -> list[str]:
    seen: list[str] = []
    for tag in tags or []:
        tag = str(tag).strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


class MemoryStore(ABC):
    @abstractmethod
    def remember(self, content: str, source: str | None = None, tags: list[str] | None = None) -> MemoryEntry:
        ...

    @abstractmethod
    def forget(self, memory_id: str) -> bool:
        ...

    @abstractmethod
    def recall(self, query: str, k: int) -> list[MemoryEntry]:
        ...

    @abstractmethod
    def list(self) -> list[MemoryEntry]:
        ...

    @abstractmethod
    def count(self) -> int:
        ...


class FileMemoryStore(MemoryStore):
    def __init__(self, path: Path, clock: Callable[[], datetime] = _utc_now):
        self._path = path
        self._clock = clock
        self._lock = threading.Lock()

    def remember(self, content: str, source: str | None = None, tags: list[str] | None = None) -> MemoryEntry:
        """Store a memory, or return the existing entry with the same normalized content."""
        normalized = (content or "").strip()
        if not normalized:
            raise ValueError("content must not be blank")
        with self._lock:
            entries = self._load()
            key = normalized.lower()
            for existing in entries:
                if existing.content.strip().lower() == key:
                    return existing

            safe_tags = _dedupe(tags)
            now = self._clock()
            entry = MemoryEntry(
                id=str(uuid.uuid4()),
                content=normalized,
                tags=safe_tags,
                embedding=_embed_entry(normalized, safe_tags),
                source=source or "agent",
                created_at=now,
                updated_at=now,
            )
            entries.append(entry)
            self._save(entries)
            return entry

    def forget(self, memory_id: str) -> bool:
        with self._lock:
            entries = self._load()
            kept = [e for e in entries if e.id != memory_id]
            if len(kept) == len(entries):
                return False
            self._save(kept)
            return True

    def recall(self, query: str, k: int) -> list[MemoryEntry]:
        limit = max(1, k)
        with self._lock:
            entries = self._load()
        if not query or not query.strip():
            return _newest_first(entries)[:limit]

        terms = tokenize(query)
        query_vector = embed(query)
        scored = [(self._score(e, terms, query_vector), e) for e in entries]
        ranked = sorted((pair for pair in scored if pair[0] > 0), key=lambda pair: pair[0], reverse=True)
        return [entry for _, entry in ranked[:limit]]

    def list(self) -> list[MemoryEntry]:
        with self._lock:
            return _newest_first(self._load())

    def count(self) -> int:
        with self._lock:
            return len(self._load())

    @staticmethod
    def _score(entry: MemoryEntry, terms: list[str], query_vector: list[float]) -> float:
        if not terms:
            return 0.0
        content_tf = Counter(tokenize(entry.content))
        tag_tf = Counter(tokenize(" ".join(entry.tags)))
        score = 0.0
        for term in terms:
            score += math.log1p(content_tf[term])
            score += 2 * math.log1p(tag_tf[term])
        cosine = sum(a * b for a, b in zip(query_vector, entry.embedding))
        return score + 3.0 * cosine

    def _load(self) -> list[MemoryEntry]:
        try:
            raw = read_json(self._path, default=[])
            entries = [MemoryEntry.model_validate(item) for item in raw or []]
        except (OSError, ValueError, TypeError, ValidationError) as e:
            logger.warning("memory_load_failed", path=str(self._path), error=str(e))
            return []
        for entry in entries:
            if len(entry.embedding) != EMBEDDING_DIMENSIONS:
                entry.embedding = _embed_entry(entry.content, entry.tags)
        return entries

    def _save(self, entries: list[MemoryEntry]) -> None:
        atomic_write_json(self._path, [e.model_dump(mode="json") for e in entries])


def _newest_first(entries: list[MemoryEntry]) -> list[MemoryEntry]:
    return sorted(entries, key=lambda e: e.created_at, reverse=True)

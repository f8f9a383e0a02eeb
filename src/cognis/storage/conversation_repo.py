"""Append-only conversation log with file and SQLite backends."""

from __future__ import annotations

import asyncio
import json
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

from cognis.core.messages import ChatMessage
from cognis.log import get_logger
from cognis.storage.database import Database
from cognis.storage.files import atomic_write_json, read_json
from cognis.storage.models import ConversationTurn, parse_timestamp

logger = get_logger(__name__)


class ConversationStore(ABC):
    """Durable transcript log; turns are listed oldest-first."""

    @abstractmethod
    async def append(self, turn: ConversationTurn) -> None:
        ...

    @abstractmethod
    async def list(self) -> list[ConversationTurn]:
        ...

    async def close(self) -> None:
        return None


class FileConversationStore(ConversationStore):
    """Keeps the whole history in one JSON document, rewritten on every append."""

    def __init__(self, path: Path):
        self._path = path
        self._lock = asyncio.Lock()

    async def append(self, turn: ConversationTurn) -> None:
        async with self._lock:
            turns = self._load()
            turns.append(turn.to_dict())
            atomic_write_json(self._path, turns)

    async def list(self) -> list[ConversationTurn]:
        async with self._lock:
            return [ConversationTurn.from_dict(t) for t in self._load()]

    def _load(self) -> list[dict]:
        data = read_json(self._path, default=[])
        return data if isinstance(data, list) else []


class SqliteConversationStore(ConversationStore):
    """One row per turn; ``append`` commits in its own transaction."""

    def __init__(self, db: Database):
        self._db = db
        self._lock = asyncio.Lock()

    async def append(self, turn: ConversationTurn) -> None:
        async with self._lock:
            await self._insert(turn)

    async def _insert(self, turn: ConversationTurn) -> None:
        conn = self._db.conn
        await conn.execute("BEGIN")
        try:
            await conn.execute(
                """INSERT INTO conversation_turns
                   (id, created_at, prompt, response, transcript_json)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    str(uuid.uuid4()),
                    turn.created_at.isoformat(),
                    turn.prompt,
                    turn.response,
                    turn.transcript_json(),
                ),
            )
        except Exception:
            await conn.rollback()
            raise
        await conn.commit()

    async def list(self) -> list[ConversationTurn]:
        cursor = await self._db.conn.execute(
            """SELECT created_at, prompt, response, transcript_json
               FROM conversation_turns
               ORDER BY created_at ASC, rowid ASC"""
        )
        rows = await cursor.fetchall()
        return [self._row_to_turn(row) for row in rows]

    async def close(self) -> None:
        await self._db.close()

    @staticmethod
    def _row_to_turn(row) -> ConversationTurn:
        return ConversationTurn(
            created_at=parse_timestamp(row["created_at"]),
            prompt=row["prompt"],
            response=row["response"],
            transcript=tuple(ChatMessage.from_dict(m) for m in json.loads(row["transcript_json"] or "[]")),
        )

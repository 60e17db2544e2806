"""SQLite chat store.

Provides persistent chat storage using a SQLite database file.
Uses aiosqlite for async access; messages are stored as wire JSON.
"""

import json
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from ..conversation.models import ChatRecord
from ..messages import Message
from .base import ChatStore


class SQLiteChatStore(ChatStore):
    """SQLite-backed chat store.

    Stores one row per chat; the message list is replaced as a whole on
    every save, matching how the controller edits it.
    """

    def __init__(self, path: str | Path = "./convoflow_chats.db"):
        self._db_path = Path(path)
        self._connection: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Initialize database connection and schema."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        await self._create_schema()

    async def _create_schema(self) -> None:
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS chats (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL DEFAULT '',
                message_history_index INTEGER NOT NULL DEFAULT 0,
                messages TEXT NOT NULL DEFAULT '[]',
                seq INTEGER NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        await self._connection.execute("""
            CREATE INDEX IF NOT EXISTS idx_chats_seq ON chats(seq)
        """)

        await self._connection.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def save_chat(self, record: ChatRecord) -> None:
        now = datetime.now(timezone.utc).isoformat()
        messages_json = json.dumps([message.to_wire() for message in record.messages])

        await self._connection.execute("""
            INSERT INTO chats (id, title, message_history_index, messages, seq, updated_at)
            VALUES (?, ?, ?, ?, (SELECT COALESCE(MAX(seq), 0) + 1 FROM chats), ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                message_history_index = excluded.message_history_index,
                messages = excluded.messages,
                seq = excluded.seq,
                updated_at = excluded.updated_at
        """, (
            record.id,
            record.title,
            record.message_history_index,
            messages_json,
            now,
        ))
        await self._connection.commit()

    async def load_chat(self, chat_id: str) -> ChatRecord | None:
        async with self._connection.execute(
            "SELECT id, title, message_history_index, messages FROM chats WHERE id = ?",
            (chat_id,)
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None
        return self._row_to_record(row)

    async def list_chats(self, limit: int = 20) -> list[ChatRecord]:
        async with self._connection.execute(
            """
            SELECT id, title, message_history_index, messages
            FROM chats
            ORDER BY seq DESC
            LIMIT ?
            """,
            (limit,)
        ) as cursor:
            rows = await cursor.fetchall()

        return [self._row_to_record(row) for row in rows]

    async def delete_chat(self, chat_id: str) -> None:
        await self._connection.execute("DELETE FROM chats WHERE id = ?", (chat_id,))
        await self._connection.commit()

    @staticmethod
    def _row_to_record(row: tuple) -> ChatRecord:
        chat_id, title, history_index, messages_json = row
        return ChatRecord(
            id=chat_id,
            title=title,
            message_history_index=history_index,
            messages=[Message.from_wire(data) for data in json.loads(messages_json)],
        )

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path

"""ConversationStore: aiosqlite persistence for conversations, messages and pins."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import aiosqlite

from swiftbot.config import settings
from swiftbot.memory.models import (
    DEFAULT_MODEL_KEY,
    DEFAULT_TEMPERATURE,
    Conversation,
    ConversationSnapshot,
    MemoryPin,
    Message,
    Role,
    Verbosity,
)

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS conversations (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        channel_key TEXT NOT NULL UNIQUE,
        model_key TEXT NOT NULL DEFAULT 'auto',
        temperature REAL NOT NULL DEFAULT 0.4,
        verbosity TEXT NOT NULL DEFAULT 'normal',
        style_prompt TEXT,
        summary_text TEXT,
        summary_watermark INTEGER NOT NULL DEFAULT 0,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        conversation_id INTEGER NOT NULL REFERENCES conversations(id),
        role TEXT NOT NULL,
        content TEXT NOT NULL,
        name TEXT,
        tool_call_id TEXT,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_messages_conversation
        ON messages (conversation_id, id)
    """,
    """
    CREATE TABLE IF NOT EXISTS memory_pins (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        conversation_id INTEGER NOT NULL REFERENCES conversations(id),
        key TEXT NOT NULL,
        value TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        UNIQUE (conversation_id, key)
    )
    """,
)

_CONVERSATION_COLUMNS = (
    "id, channel_key, model_key, temperature, verbosity, style_prompt, "
    "summary_text, summary_watermark, created_at, updated_at"
)
_MESSAGE_COLUMNS = "id, conversation_id, role, content, name, tool_call_id, created_at"
_PIN_COLUMNS = "id, conversation_id, key, value, created_at, updated_at"

DEFAULT_MEMORY_LIMIT = 24

_UNSET: Any = object()


def _now() -> str:
    return datetime.now(UTC).isoformat()


class ConversationStore:
    """Persists conversations in SQLite.

    Pass an explicit *db_path* for test isolation (e.g. ``tmp_path / "test.db"``).
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path or settings.database_path
        self._initialised = False

    # -- Internal helpers ------------------------------------------------------

    async def _connect(self) -> aiosqlite.Connection:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        db = await aiosqlite.connect(str(self._db_path))
        if not self._initialised:
            for statement in _SCHEMA:
                await db.execute(statement)
            await db.commit()
            self._initialised = True
        return db

    @staticmethod
    async def _fetch_conversation(
        db: aiosqlite.Connection, conversation_id: int
    ) -> Conversation | None:
        cursor = await db.execute(
            f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE id = ?",
            (conversation_id,),
        )
        row = await cursor.fetchone()
        return Conversation.from_row(row) if row else None

    # -- Conversations ---------------------------------------------------------

    async def get_or_create(self, channel_key: str) -> Conversation:
        """Fetch the conversation for *channel_key*, creating it with defaults."""
        db = await self._connect()
        try:
            now = _now()
            cursor = await db.execute(
                """
                INSERT INTO conversations
                    (channel_key, model_key, temperature, verbosity, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (channel_key) DO NOTHING
                """,
                (channel_key, DEFAULT_MODEL_KEY, DEFAULT_TEMPERATURE, Verbosity.NORMAL.value, now, now),
            )
            await db.commit()
            if cursor.rowcount > 0:
                logger.info("Created conversation for %s", channel_key)
            cursor = await db.execute(
                f"SELECT {_CONVERSATION_COLUMNS} FROM conversations WHERE channel_key = ?",
                (channel_key,),
            )
            row = await cursor.fetchone()
            return Conversation.from_row(row)
        finally:
            await db.close()

    async def refresh(self, conversation_id: int) -> Conversation | None:
        """Re-read a conversation by id, or None if it does not exist."""
        db = await self._connect()
        try:
            return await self._fetch_conversation(db, conversation_id)
        finally:
            await db.close()

    async def update_settings(
        self,
        conversation_id: int,
        *,
        model_key: str | None = None,
        temperature: float | None = None,
        verbosity: Verbosity | None = None,
        style_prompt: str | None = _UNSET,
    ) -> Conversation | None:
        """Change any subset of the conversation settings.

        Pass ``style_prompt=None`` to clear the custom style.
        """
        updates: dict[str, Any] = {}
        if model_key is not None:
            updates["model_key"] = model_key
        if temperature is not None:
            updates["temperature"] = temperature
        if verbosity is not None:
            updates["verbosity"] = Verbosity(verbosity).value
        if style_prompt is not _UNSET:
            updates["style_prompt"] = style_prompt

        db = await self._connect()
        try:
            if updates:
                updates["updated_at"] = _now()
                assignments = ", ".join(f"{column} = ?" for column in updates)
                await db.execute(
                    f"UPDATE conversations SET {assignments} WHERE id = ?",
                    (*updates.values(), conversation_id),
                )
                await db.commit()
                logger.info("Updated settings for conversation %s: %s", conversation_id, sorted(updates))
            return await self._fetch_conversation(db, conversation_id)
        finally:
            await db.close()

    async def update_summary(
        self,
        conversation_id: int,
        summary: str,
        watermark: int,
        *,
        expected_watermark: int | None = None,
        through_message_id: int | None = None,
    ) -> bool:
        """Replace the running summary and advance the watermark.

        The update is refused (returns False) when it would move the
        watermark backwards or past the current message count. Callers that
        read the conversation earlier pass ``expected_watermark`` and
        ``through_message_id`` (the last summarized message) so that a
        summary computed before a reset or a concurrent update is dropped.
        """
        conditions = [
            "id = ?",
            "summary_watermark <= ?",
            "? <= (SELECT COUNT(*) FROM messages WHERE conversation_id = ?)",
        ]
        params: list[object] = [conversation_id, watermark, watermark, conversation_id]
        if expected_watermark is not None:
            conditions.append("summary_watermark = ?")
            params.append(expected_watermark)
        if through_message_id is not None:
            conditions.append(
                "(SELECT COUNT(*) FROM messages WHERE conversation_id = ? AND id <= ?) = ?"
            )
            conditions.append("EXISTS (SELECT 1 FROM messages WHERE id = ? AND conversation_id = ?)")
            params.extend(
                [conversation_id, through_message_id, watermark, through_message_id, conversation_id]
            )

        db = await self._connect()
        try:
            cursor = await db.execute(
                "UPDATE conversations SET summary_text = ?, summary_watermark = ?, updated_at = ? "
                f"WHERE {' AND '.join(conditions)}",
                (summary, watermark, _now(), *params),
            )
            await db.commit()
            updated = cursor.rowcount > 0
            if not updated:
                logger.warning(
                    "Refused summary update for conversation %s (watermark=%d)",
                    conversation_id,
                    watermark,
                )
            return updated
        finally:
            await db.close()

    async def clear_conversation(self, conversation_id: int) -> int:
        """Delete messages and pins and reset the summary. Returns messages deleted."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                "DELETE FROM messages WHERE conversation_id = ?", (conversation_id,)
            )
            deleted = cursor.rowcount
            await db.execute("DELETE FROM memory_pins WHERE conversation_id = ?", (conversation_id,))
            await db.execute(
                """
                UPDATE conversations
                SET summary_text = NULL, summary_watermark = 0, updated_at = ?
                WHERE id = ?
                """,
                (_now(), conversation_id),
            )
            await db.commit()
            logger.info("Cleared conversation %s (%d messages)", conversation_id, deleted)
            return deleted
        finally:
            await db.close()

    # -- Messages --------------------------------------------------------------

    async def append_message(
        self,
        conversation_id: int,
        role: Role | str,
        content: str,
        *,
        name: str | None = None,
        tool_call_id: str | None = None,
    ) -> Message:
        db = await self._connect()
        try:
            now = _now()
            cursor = await db.execute(
                """
                INSERT INTO messages (conversation_id, role, content, name, tool_call_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (conversation_id, Role(role).value, content, name, tool_call_id, now),
            )
            await db.execute(
                "UPDATE conversations SET updated_at = ? WHERE id = ?", (now, conversation_id)
            )
            await db.commit()
            return Message(
                id=cursor.lastrowid,
                conversation_id=conversation_id,
                role=Role(role),
                content=content,
                name=name,
                tool_call_id=tool_call_id,
                created_at=now,
            )
        finally:
            await db.close()

    async def get_recent_messages(self, conversation_id: int, limit: int) -> list[Message]:
        """The newest *limit* messages, returned oldest first."""
        if limit <= 0:
            return []
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT {_MESSAGE_COLUMNS} FROM messages
                WHERE conversation_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (conversation_id, limit),
            )
            rows = await cursor.fetchall()
            return [Message.from_row(row) for row in reversed(rows)]
        finally:
            await db.close()

    async def get_all_messages(self, conversation_id: int) -> list[Message]:
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE conversation_id = ? ORDER BY id",
                (conversation_id,),
            )
            rows = await cursor.fetchall()
            return [Message.from_row(row) for row in rows]
        finally:
            await db.close()

    async def count_messages(self, conversation_id: int) -> int:
        db = await self._connect()
        try:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM messages WHERE conversation_id = ?", (conversation_id,)
            )
            row = await cursor.fetchone()
            return int(row[0])
        finally:
            await db.close()

    # -- Memory pins -----------------------------------------------------------

    async def upsert_memory(self, conversation_id: int, key: str, value: str) -> None:
        db = await self._connect()
        try:
            now = _now()
            await db.execute(
                """
                INSERT INTO memory_pins (conversation_id, key, value, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT (conversation_id, key)
                DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (conversation_id, key, value, now, now),
            )
            await db.commit()
            logger.info("Saved memory %s for conversation %s", key, conversation_id)
        finally:
            await db.close()

    async def get_memories(
        self, conversation_id: int, limit: int = DEFAULT_MEMORY_LIMIT
    ) -> list[MemoryPin]:
        """Pins for a conversation, most recently updated first."""
        db = await self._connect()
        try:
            cursor = await db.execute(
                f"""
                SELECT {_PIN_COLUMNS} FROM memory_pins
                WHERE conversation_id = ?
                ORDER BY updated_at DESC, id DESC
                LIMIT ?
                """,
                (conversation_id, limit),
            )
            rows = await cursor.fetchall()
            return [MemoryPin.from_row(row) for row in rows]
        finally:
            await db.close()

    # -- Export ----------------------------------------------------------------

    async def export_conversation(self, conversation_id: int) -> ConversationSnapshot | None:
        """Settings, pins and messages in ascending order."""
        db = await self._connect()
        try:
            conversation = await self._fetch_conversation(db, conversation_id)
            if conversation is None:
                return None
            cursor = await db.execute(
                f"SELECT {_PIN_COLUMNS} FROM memory_pins WHERE conversation_id = ? ORDER BY id",
                (conversation_id,),
            )
            pins = [MemoryPin.from_row(row) for row in await cursor.fetchall()]
            cursor = await db.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE conversation_id = ? ORDER BY id",
                (conversation_id,),
            )
            messages = [Message.from_row(row) for row in await cursor.fetchall()]
            return ConversationSnapshot(
                conversation=conversation,
                memories=pins,
                messages=messages,
                exported_at=_now(),
            )
        finally:
            await db.close()

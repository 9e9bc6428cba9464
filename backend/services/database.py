"""Durable conversation store backed by SQLite."""
import logging
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

import aiosqlite

from models.conversation import ChatTurn, turn_to_lines
from services.storage_base import ConversationBackend, StorageInitError, StorageIOError

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS chat_messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL,
    user_message TEXT NOT NULL,
    bot_reply TEXT NOT NULL,
    timestamp TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chat_messages_session
    ON chat_messages (session_id, timestamp);
"""

def resolve_location(database_url: str) -> Tuple[str, bool]:
    """
    Turn a configured location into an argument for sqlite connect.

    "sqlite:" strings and "file:" URIs are treated as connection strings and
    opened as URIs with mode=rwc unless a mode is given. Anything else is a
    bare filesystem path.

    Args:
        database_url: Connection string or bare path

    Returns:
        Tuple of (database argument, whether it is a URI)
    """
    if database_url.startswith("file:"):
        uri = database_url
    elif database_url.startswith("sqlite:"):
        rest = database_url[len("sqlite:"):]
        if rest.startswith("//"):
            rest = rest[2:]
        uri = f"file:{rest}"
    else:
        return database_url, False

    if "mode=" not in uri:
        uri += "&mode=rwc" if "?" in uri else "?mode=rwc"
    return uri, True

def _format_timestamp(timestamp: datetime) -> str:
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).isoformat(timespec="microseconds")

class DatabaseManager(ConversationBackend):
    """Stores chat turns in a single append-only SQLite table."""

    def __init__(self, database_url: str):
        """
        Args:
            database_url: "sqlite:..." / "file:..." connection string or a bare path
        """
        self.database_url = database_url
        self._conn: Optional[aiosqlite.Connection] = None

    async def initialize(self) -> None:
        """
        Open the database and ensure the schema exists.

        Safe to call against an existing database.

        Raises:
            StorageInitError: If the database cannot be opened or created
        """
        if self._conn is not None:
            return

        database, is_uri = resolve_location(self.database_url)
        try:
            if not is_uri:
                Path(database).parent.mkdir(parents=True, exist_ok=True)
            conn = await aiosqlite.connect(database, uri=is_uri)
        except (aiosqlite.Error, OSError) as e:
            logger.error(f"Failed to open chat database {self.database_url}: {e}")
            raise StorageInitError(f"Cannot open chat database {self.database_url}: {e}") from e

        try:
            conn.row_factory = aiosqlite.Row
            await conn.executescript(SCHEMA)
            await conn.commit()
        except aiosqlite.Error as e:
            await conn.close()
            logger.error(f"Failed to create chat schema in {self.database_url}: {e}")
            raise StorageInitError(f"Cannot create chat schema in {self.database_url}: {e}") from e

        self._conn = conn
        logger.info(f"Chat database ready at {self.database_url}")

    def _conn_or_raise(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise StorageIOError("Chat database is not initialized")
        return self._conn

    async def _rollback(self, conn: aiosqlite.Connection) -> None:
        try:
            await conn.rollback()
        except aiosqlite.Error as e:
            logger.warning(f"Rollback failed on {self.database_url}: {e}")

    async def append(self, turn: ChatTurn) -> ChatTurn:
        """
        Insert one turn, stamping it with the current time if it has none.

        A failed insert is rolled back, so nothing of it is committed later.

        Returns:
            The stored turn including its surrogate id

        Raises:
            StorageIOError: If the insert fails
        """
        conn = self._conn_or_raise()
        if turn.timestamp is None:
            turn = replace(turn, timestamp=datetime.now(timezone.utc))

        try:
            async with conn.execute(
                """
                INSERT INTO chat_messages (session_id, user_message, bot_reply, timestamp)
                VALUES (?, ?, ?, ?)
                """,
                (turn.session_id, turn.user_message, turn.bot_reply, _format_timestamp(turn.timestamp)),
            ) as cursor:
                turn_id = cursor.lastrowid
            await conn.commit()
        except aiosqlite.Error as e:
            await self._rollback(conn)
            logger.error(f"Error saving turn for session {turn.session_id}: {e}")
            raise StorageIOError(f"Failed to save turn: {e}") from e

        return replace(turn, id=turn_id)

    async def history(self, session_id: str) -> List[ChatTurn]:
        """
        Retrieve all turns of a session, oldest first.

        Turns with equal timestamps keep insertion order.

        Raises:
            StorageIOError: If the query fails or a stored timestamp is unreadable
        """
        conn = self._conn_or_raise()
        try:
            async with conn.execute(
                """
                SELECT id, session_id, user_message, bot_reply, timestamp
                FROM chat_messages
                WHERE session_id = ?
                ORDER BY timestamp ASC, id ASC
                """,
                (session_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            logger.error(f"Error retrieving history for session {session_id}: {e}")
            raise StorageIOError(f"Failed to load history: {e}") from e

        turns = []
        for row in rows:
            try:
                timestamp = datetime.fromisoformat(row["timestamp"])
            except (TypeError, ValueError) as e:
                logger.error(f"Unreadable timestamp in row {row['id']} of session {session_id}: {e}")
                raise StorageIOError(f"Unreadable timestamp in row {row['id']}: {e}") from e
            turns.append(ChatTurn(
                id=row["id"],
                session_id=row["session_id"],
                user_message=row["user_message"],
                bot_reply=row["bot_reply"],
                timestamp=timestamp,
            ))
        return turns

    async def _exchanges(self, session_id: str) -> List[Tuple[str, str]]:
        """Ordered (user, bot) text of a session without decoding timestamps."""
        conn = self._conn_or_raise()
        try:
            async with conn.execute(
                """
                SELECT user_message, bot_reply
                FROM chat_messages
                WHERE session_id = ?
                ORDER BY timestamp ASC, id ASC
                """,
                (session_id,),
            ) as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            logger.error(f"Error retrieving history for session {session_id}: {e}")
            raise StorageIOError(f"Failed to load history: {e}") from e
        return [(row["user_message"], row["bot_reply"]) for row in rows]

    async def history_lines(self, session_id: str) -> List[str]:
        lines: List[str] = []
        for user, bot in await self._exchanges(session_id):
            lines.extend(turn_to_lines(user, bot))
        return lines

    async def history_pairs(self, session_id: str) -> List[Tuple[str, str]]:
        return await self._exchanges(session_id)

    async def delete(self, session_id: str) -> None:
        conn = self._conn_or_raise()
        try:
            await conn.execute("DELETE FROM chat_messages WHERE session_id = ?", (session_id,))
            await conn.commit()
        except aiosqlite.Error as e:
            await self._rollback(conn)
            logger.error(f"Error deleting session {session_id}: {e}")
            raise StorageIOError(f"Failed to delete session: {e}") from e

    async def list_sessions(self) -> List[str]:
        conn = self._conn_or_raise()
        try:
            async with conn.execute("SELECT DISTINCT session_id FROM chat_messages") as cursor:
                rows = await cursor.fetchall()
        except aiosqlite.Error as e:
            logger.error(f"Error listing sessions: {e}")
            raise StorageIOError(f"Failed to list sessions: {e}") from e
        return [row["session_id"] for row in rows]

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

"""Conversation storage facade over the durable and volatile backends."""
import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from models.conversation import ChatTurn
from services.database import DatabaseManager
from services.memory_store import MemoryStore
from services.storage_base import ConversationBackend

logger = logging.getLogger(__name__)


class ChatStorage:
    """
    Single entry point for conversation history.

    The backend is chosen once at construction and never changes. Callers only
    receive copies of stored data.
    """

    def __init__(self, backend: ConversationBackend):
        self.backend = backend

    @classmethod
    def memory_only(cls) -> "ChatStorage":
        """Create a storage that keeps history in process memory."""
        logger.info("ChatStorage using in-memory history")
        return cls(MemoryStore())

    @classmethod
    async def with_database(cls, database_url: str) -> "ChatStorage":
        """
        Create a storage backed by the database at database_url.

        Raises:
            StorageInitError: If the database cannot be opened or created
        """
        database = DatabaseManager(database_url)
        await database.initialize()
        logger.info(f"ChatStorage using database {database_url}")
        return cls(database)

    @classmethod
    async def from_config(cls, database_url: Optional[str]) -> "ChatStorage":
        """Durable storage when a location is configured, in-memory otherwise."""
        if database_url:
            return await cls.with_database(database_url)
        return cls.memory_only()

    @property
    def is_durable(self) -> bool:
        return isinstance(self.backend, DatabaseManager)

    async def record_turn(self, session_id: str, user_message: str, bot_reply: str) -> ChatTurn:
        """
        Persist one exchange stamped with the current time.

        Raises:
            StorageIOError: If the durable backend fails
        """
        turn = ChatTurn(
            session_id=session_id,
            user_message=user_message,
            bot_reply=bot_reply,
            timestamp=datetime.now(timezone.utc),
        )
        stored = await self.backend.append(turn)
        logger.debug(f"Recorded turn for session {session_id}")
        return stored

    async def history_lines(self, session_id: str) -> List[str]:
        return await self.backend.history_lines(session_id)

    async def history_pairs(self, session_id: str) -> List[Tuple[str, str]]:
        pairs = await self.backend.history_pairs(session_id)
        logger.debug(f"Loaded {len(pairs)} turns for session {session_id}")
        return pairs

    async def delete_session(self, session_id: str) -> None:
        await self.backend.delete(session_id)
        logger.info(f"Deleted session {session_id}")

    async def all_sessions(self) -> List[str]:
        return await self.backend.list_sessions()

    async def close(self) -> None:
        await self.backend.close()

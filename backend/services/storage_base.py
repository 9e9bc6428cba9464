"""Storage backend interface and errors for conversation history."""
from abc import ABC, abstractmethod
from typing import List, Tuple

from models.conversation import ChatTurn


class StorageError(Exception):
    """Base class for conversation storage errors."""


class StorageInitError(StorageError):
    """Raised when a storage backend cannot be opened or created."""


class StorageIOError(StorageError):
    """Raised when a single storage operation fails."""


class ConversationBackend(ABC):
    """Operations every conversation storage backend provides."""

    @abstractmethod
    async def append(self, turn: ChatTurn) -> ChatTurn:
        """Store one turn and return the stored copy."""

    @abstractmethod
    async def history_lines(self, session_id: str) -> List[str]:
        """Return the alternating "User: ..." / "Bot: ..." view of a session."""

    @abstractmethod
    async def history_pairs(self, session_id: str) -> List[Tuple[str, str]]:
        """Return the ordered (user, bot) pairs of a session."""

    @abstractmethod
    async def delete(self, session_id: str) -> None:
        """Remove every turn of a session."""

    @abstractmethod
    async def list_sessions(self) -> List[str]:
        """Return the ids of sessions with at least one turn."""

    async def close(self) -> None:
        """Release backend resources."""

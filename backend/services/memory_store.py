"""In-process conversation store used when no database is configured."""
import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from models.conversation import ChatTurn, pair_lines, turn_to_lines
from services.storage_base import ConversationBackend

logger = logging.getLogger(__name__)


class MemoryStore(ConversationBackend):
    """
    Volatile conversation store keyed by session id.

    History is kept as flattened display lines and is lost on restart. A single
    lock guards the whole map, so operations on different sessions are
    serialized too. Every operation is memory-only and none of them raise.
    """

    def __init__(self, history: Optional[Dict[str, List[str]]] = None):
        """
        Initialize the store.

        Args:
            history: Optional shared session -> lines map to operate on
        """
        self._history: Dict[str, List[str]] = history if history is not None else {}
        self._lock = asyncio.Lock()
        logger.info("MemoryStore initialized")

    async def append(self, turn: ChatTurn) -> ChatTurn:
        async with self._lock:
            lines = self._history.setdefault(turn.session_id, [])
            lines.extend(turn_to_lines(turn.user_message, turn.bot_reply))
        return turn

    async def history_lines(self, session_id: str) -> List[str]:
        async with self._lock:
            return list(self._history.get(session_id, []))

    async def history_pairs(self, session_id: str) -> List[Tuple[str, str]]:
        async with self._lock:
            lines = self._history.get(session_id)
            if not lines:
                return []
            return pair_lines(lines)

    async def delete(self, session_id: str) -> None:
        async with self._lock:
            self._history.pop(session_id, None)

    async def list_sessions(self) -> List[str]:
        async with self._lock:
            return list(self._history.keys())

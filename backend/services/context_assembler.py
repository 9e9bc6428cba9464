"""Builds the message list sent to the downstream chat backend."""
import logging
from typing import Dict, List, Sequence, Tuple

from services.chat_storage import ChatStorage
from services.storage_base import StorageError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are an AI assistant. Answer as helpfully and concisely as possible."


class ContextAssembler:
    """Replays stored session history in front of a new user message."""

    def __init__(self, storage: ChatStorage, system_prompt: str = SYSTEM_PROMPT):
        self.storage = storage
        self.system_prompt = system_prompt

    @staticmethod
    def build_messages(
        pairs: Sequence[Tuple[str, str]],
        user_message: str,
        system_prompt: str = SYSTEM_PROMPT
    ) -> List[Dict[str, str]]:
        """
        Build chat-completion messages from history and a new input.

        The system directive always comes first, each stored pair becomes a
        user message followed by an assistant message, and the new user
        message always comes last.

        Args:
            pairs: Ordered (user, bot) history
            user_message: New user input
            system_prompt: System directive text

        Returns:
            List of {"role", "content"} messages
        """
        messages = [{"role": "system", "content": system_prompt}]
        for user, bot in pairs:
            messages.append({"role": "user", "content": user})
            messages.append({"role": "assistant", "content": bot})
        messages.append({"role": "user", "content": user_message})
        return messages

    async def assemble(self, session_id: str, user_message: str) -> List[Dict[str, str]]:
        """
        Build the downstream message list for a session.

        A failed history read is logged and treated as an empty history.
        """
        try:
            pairs = await self.storage.history_pairs(session_id)
        except StorageError as e:
            logger.warning(f"History unavailable for session {session_id}, continuing without it: {e}")
            pairs = []

        return self.build_messages(pairs, user_message, self.system_prompt)

"""Conversation data models."""
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

USER_PREFIX = "User: "
BOT_PREFIX = "Bot: "


@dataclass(frozen=True)
class ChatTurn:
    """Represents a single user/bot exchange in a session."""
    session_id: str
    user_message: str
    bot_reply: str
    timestamp: Optional[datetime] = None
    id: Optional[int] = None


def turn_to_lines(user_message: str, bot_reply: str) -> List[str]:
    """Render one exchange as its two display lines."""
    return [f"{USER_PREFIX}{user_message}", f"{BOT_PREFIX}{bot_reply}"]


def flatten_turns(turns: Iterable[ChatTurn]) -> List[str]:
    """
    Flatten turns into alternating "User: ..." / "Bot: ..." lines.

    Args:
        turns: Turns in stored order

    Returns:
        Two lines per turn, in the same order
    """
    lines: List[str] = []
    for turn in turns:
        lines.extend(turn_to_lines(turn.user_message, turn.bot_reply))
    return lines


def _strip_prefix(line: str, prefix: str) -> str:
    if line.startswith(prefix):
        return line[len(prefix):]
    return line


def pair_lines(lines: List[str]) -> List[Tuple[str, str]]:
    """
    Rebuild (user, bot) pairs from flattened display lines.

    Lines are consumed two at a time. A line without the expected prefix is
    kept verbatim, and a trailing unpaired line is dropped.

    Args:
        lines: Alternating user/bot lines

    Returns:
        Ordered list of (user_message, bot_reply) tuples
    """
    pairs: List[Tuple[str, str]] = []
    for i in range(0, len(lines) - 1, 2):
        user = _strip_prefix(lines[i], USER_PREFIX)
        bot = _strip_prefix(lines[i + 1], BOT_PREFIX)
        pairs.append((user, bot))
    return pairs

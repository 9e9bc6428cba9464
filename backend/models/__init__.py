"""Data models for the conversation gateway."""
from .conversation import ChatTurn, flatten_turns, pair_lines, turn_to_lines
from .api import (
    ChatRequest,
    ChatResponse,
    ChatHistoryResponse,
    SessionsResponse,
    DeleteSessionResponse,
)
from .registry import ServerKind, ModelInfo, ChatServer

__all__ = [
    "ChatTurn",
    "flatten_turns",
    "pair_lines",
    "turn_to_lines",
    "ChatRequest",
    "ChatResponse",
    "ChatHistoryResponse",
    "SessionsResponse",
    "DeleteSessionResponse",
    "ServerKind",
    "ModelInfo",
    "ChatServer",
]

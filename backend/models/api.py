"""API request and response models."""
from typing import List, Optional
from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Inbound chat turn."""
    session_id: str = Field(..., description="Caller-chosen conversation identifier")
    user_message: str = Field(..., description="New user input")
    model: Optional[str] = Field(
        default=None,
        description="Model to use; defaults to the first registered chat model"
    )


class ChatResponse(BaseModel):
    """Reply produced by the downstream backend."""
    reply: str


class ChatHistoryResponse(BaseModel):
    """Flattened display history of one session."""
    session_id: str
    messages: List[str]


class SessionsResponse(BaseModel):
    """All sessions with at least one stored turn."""
    sessions: List[str]


class DeleteSessionResponse(BaseModel):
    """Acknowledgement of a session delete."""
    status: str = "deleted"
    session_id: str

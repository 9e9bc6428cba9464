"""Backend registry data models."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ServerKind(str, Enum):
    """Capability a downstream server provides."""
    CHAT = "chat"


@dataclass(frozen=True)
class ModelInfo:
    """A model that can be requested downstream."""
    id: str
    owned_by: str = "gateway"


@dataclass(frozen=True)
class ChatServer:
    """
    A concrete downstream endpoint.

    Attributes:
        url: Base URL; "/chat/completions" is appended on send
        api_key: Full Authorization header value for this endpoint, if any
    """
    url: str
    api_key: Optional[str] = None

"""Model registry and downstream server groups."""
import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from models.registry import ChatServer, ModelInfo, ServerKind

logger = logging.getLogger(__name__)


class NoServerError(Exception):
    """Raised when a server group has no server to hand out."""


class ModelRegistry:
    """Models known to the gateway, grouped by capability."""

    def __init__(self):
        self._models: Dict[ServerKind, List[ModelInfo]] = {}
        self._lock = asyncio.Lock()

    async def register(self, kind: ServerKind, model: ModelInfo) -> None:
        async with self._lock:
            models = self._models.setdefault(kind, [])
            if all(existing.id != model.id for existing in models):
                models.append(model)
                logger.info(f"Registered {kind.value} model {model.id}")

    async def list_models_by_capability(self, kind: ServerKind) -> List[ModelInfo]:
        """Return a snapshot of the models registered for kind, in registration order."""
        async with self._lock:
            return list(self._models.get(kind, []))


class ServerGroup:
    """
    Pool of downstream servers for one capability.

    Servers are handed out round-robin.
    """

    def __init__(self, kind: ServerKind, servers: Optional[Iterable[ChatServer]] = None):
        self.kind = kind
        self._servers: List[ChatServer] = list(servers or [])
        self._next = 0
        self._lock = asyncio.Lock()

    async def add(self, server: ChatServer) -> None:
        async with self._lock:
            self._servers.append(server)
            logger.info(f"Added {self.kind.value} server {server.url}")

    async def acquire(self) -> ChatServer:
        """
        Pick the next server.

        Raises:
            NoServerError: If the group is empty
        """
        async with self._lock:
            if not self._servers:
                raise NoServerError(f"No {self.kind.value} server registered")
            server = self._servers[self._next % len(self._servers)]
            self._next = (self._next + 1) % len(self._servers)
            return server


def parse_servers(spec: str) -> List[ChatServer]:
    """
    Parse a server list such as "http://a:8080/v1|secret,http://b:8080/v1".

    Entries are comma separated; an optional API key follows a "|".
    """
    servers = []
    for entry in spec.split(","):
        entry = entry.strip()
        if not entry:
            continue
        url, _, api_key = entry.partition("|")
        servers.append(ChatServer(url=url.strip(), api_key=api_key.strip() or None))
    return servers


def parse_models(spec: str) -> List[ModelInfo]:
    """Parse a comma separated list of model ids."""
    return [ModelInfo(id=name.strip()) for name in spec.split(",") if name.strip()]

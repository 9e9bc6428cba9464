"""Relay that forwards assembled chat requests to a downstream backend."""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import httpx

from models.registry import ChatServer, ServerKind
from services.chat_storage import ChatStorage
from services.context_assembler import ContextAssembler
from services.registry import ModelRegistry, ServerGroup
from services.storage_base import StorageError

logger = logging.getLogger(__name__)

NO_CONTENT_REPLY = "(no content)"


@dataclass
class RelayError:
    """Structured error information from relay operations."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)


class RelayClientError(Exception):
    """Base exception for relay failures with structured error information."""

    def __init__(self, error: RelayError):
        self.error = error
        super().__init__(error.message)


class NoModelAvailableError(RelayClientError):
    """No model was requested and none is registered for chat."""

    def __init__(self, message: str = "No chat model registered"):
        super().__init__(RelayError(code="NO_MODEL_AVAILABLE", message=message))


class NoBackendAvailableError(RelayClientError):
    """No chat backend could be acquired."""

    def __init__(self, message: str = "No chat server available", details: Optional[Dict[str, Any]] = None):
        super().__init__(RelayError(code="NO_BACKEND_AVAILABLE", message=message, details=details or {}))


class DownstreamError(RelayClientError):
    """The downstream backend failed or answered with a non-success status."""

    def __init__(self, status_code: Optional[int], body: str, message: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        if message is None:
            message = f"Downstream chat error {status_code}: {body}"
        super().__init__(RelayError(
            code="DOWNSTREAM_ERROR",
            message=message,
            details={"status": status_code, "body": body}
        ))


class ChatRelay:
    """Sends one chat turn downstream and records the exchange."""

    def __init__(
        self,
        storage: ChatStorage,
        model_registry: ModelRegistry,
        server_groups: Mapping[ServerKind, ServerGroup],
        assembler: Optional[ContextAssembler] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[float] = None
    ):
        """
        Initialize the relay.

        Args:
            storage: Conversation storage used for history and persistence
            model_registry: Registry consulted when no model is requested
            server_groups: Downstream server groups by capability
            assembler: Context assembler (defaults to one over storage)
            http_client: Client for downstream calls (created if omitted)
            timeout: Downstream timeout in seconds; None waits indefinitely
        """
        self.storage = storage
        self.model_registry = model_registry
        self.server_groups = server_groups
        self.assembler = assembler or ContextAssembler(storage)
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    async def resolve_model(self, requested: Optional[str]) -> str:
        """
        Pick the model for a request.

        Raises:
            NoModelAvailableError: If none was requested and none is registered
        """
        if requested is not None:
            return requested

        models = await self.model_registry.list_models_by_capability(ServerKind.CHAT)
        if not models:
            raise NoModelAvailableError()
        return models[0].id

    async def acquire_server(self) -> ChatServer:
        """
        Acquire one chat backend from its server group.

        Raises:
            NoBackendAvailableError: If no group exists or acquisition fails
        """
        group = self.server_groups.get(ServerKind.CHAT)
        if group is None:
            raise NoBackendAvailableError()
        try:
            return await group.acquire()
        except Exception as e:
            raise NoBackendAvailableError(
                f"Failed to acquire chat server: {e}",
                details={"original_error": str(e)}
            ) from e

    @staticmethod
    def build_headers(server: ChatServer, authorization: Optional[str]) -> Dict[str, str]:
        """Endpoint API key first, then the caller's Authorization header."""
        headers = {"Content-Type": "application/json"}
        if server.api_key:
            headers["Authorization"] = server.api_key
        elif authorization:
            headers["Authorization"] = authorization
        return headers

    @staticmethod
    def extract_reply(payload: Any) -> str:
        """Return choices[0].message.content, or a placeholder if it is missing."""
        try:
            content = payload["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return NO_CONTENT_REPLY
        return content if isinstance(content, str) else NO_CONTENT_REPLY

    async def send(
        self,
        session_id: str,
        user_message: str,
        model: Optional[str] = None,
        authorization: Optional[str] = None
    ) -> str:
        """
        Relay one user message and return the backend's reply.

        Args:
            session_id: Conversation the turn belongs to
            user_message: New user input
            model: Explicit model, or None for the first registered chat model
            authorization: Inbound Authorization header, if any

        Returns:
            Reply text

        Raises:
            NoModelAvailableError: No model requested or registered
            NoBackendAvailableError: No chat backend could be acquired
            DownstreamError: Transport failure, non-success status or unreadable body
        """
        start_time = time.time()

        model_name = await self.resolve_model(model)
        messages = await self.assembler.assemble(session_id, user_message)
        server = await self.acquire_server()

        url = f"{server.url.rstrip('/')}/chat/completions"
        request_body = {"model": model_name, "messages": messages, "stream": False}

        logger.debug(f"Sending {len(messages)} messages to {url} with model {model_name}")
        try:
            response = await self.http_client.post(
                url,
                json=request_body,
                headers=self.build_headers(server, authorization)
            )
        except httpx.RequestError as e:
            logger.error(f"Downstream request to {url} failed: {e}")
            raise DownstreamError(None, str(e), message=f"Downstream request failed: {e}") from e

        if not response.is_success:
            logger.error(
                f"Downstream chat error: url={url}, status={response.status_code}",
                extra={"session_id": session_id, "downstream_status": response.status_code}
            )
            raise DownstreamError(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as e:
            raise DownstreamError(
                response.status_code,
                response.text,
                message=f"Failed to parse downstream response JSON: {e}"
            ) from e

        bot_reply = self.extract_reply(payload)
        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Relayed turn: session={session_id}, model={model_name}, latency={latency_ms}ms",
            extra={"session_id": session_id, "model": model_name, "latency_ms": latency_ms}
        )

        # The reply already exists, so a failed save must not fail the request.
        try:
            await self.storage.record_turn(session_id, user_message, bot_reply)
        except StorageError as e:
            logger.error(f"Failed to save conversation for session {session_id}: {e}")

        return bot_reply

    async def aclose(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()

"""Main entry point for the conversation gateway API."""
import logging
from typing import Dict, Optional
from fastapi import FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from config import (
    PORT,
    LOG_LEVEL,
    LOG_FORMAT,
    CORS_ORIGINS,
    CHAT_DATABASE_URL,
    CHAT_SERVERS,
    CHAT_MODELS,
    SYSTEM_PROMPT,
    RELAY_TIMEOUT,
)
from logger import setup_logging
from models.api import (
    ChatRequest,
    ChatResponse,
    ChatHistoryResponse,
    SessionsResponse,
    DeleteSessionResponse,
)
from models.registry import ServerKind
from services.chat_storage import ChatStorage
from services.context_assembler import ContextAssembler
from services.registry import ModelRegistry, ServerGroup, parse_models, parse_servers
from services.relay import (
    ChatRelay,
    DownstreamError,
    NoBackendAvailableError,
    NoModelAvailableError,
    RelayClientError,
)
from services.storage_base import StorageError

# Initialize logging
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Conversation Gateway",
    description="Chat-completion gateway with persistent session history",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Initialize services (will be done on startup)
chat_storage: ChatStorage = None
model_registry: ModelRegistry = None
server_groups: Dict[ServerKind, ServerGroup] = {}
chat_relay: ChatRelay = None


@app.on_event("startup")
async def startup_event():
    """Initialize services on startup."""
    global chat_storage, model_registry, server_groups, chat_relay

    if LOG_FORMAT == "json":
        setup_logging(LOG_LEVEL)

    logger.info("Initializing conversation gateway services...")

    try:
        # A configured database that cannot be opened aborts startup
        chat_storage = await ChatStorage.from_config(CHAT_DATABASE_URL)
        logger.info(f"Initialized ChatStorage (durable={chat_storage.is_durable})")

        model_registry = ModelRegistry()
        for model in parse_models(CHAT_MODELS):
            await model_registry.register(ServerKind.CHAT, model)

        servers = parse_servers(CHAT_SERVERS)
        server_groups = {ServerKind.CHAT: ServerGroup(ServerKind.CHAT, servers)} if servers else {}
        logger.info(f"Initialized {len(servers)} chat servers")

        chat_relay = ChatRelay(
            storage=chat_storage,
            model_registry=model_registry,
            server_groups=server_groups,
            assembler=ContextAssembler(chat_storage, SYSTEM_PROMPT),
            timeout=RELAY_TIMEOUT
        )
        logger.info("All services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise


@app.on_event("shutdown")
async def shutdown_event():
    """Release downstream and storage resources."""
    if chat_relay is not None:
        await chat_relay.aclose()
    if chat_storage is not None:
        await chat_storage.close()


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Conversation Gateway API"}


@app.get("/health")
async def health():
    """Detailed health check."""
    return {
        "status": "healthy",
        "service": "conversation-gateway",
        "version": "1.0.0",
        "storage": "durable" if chat_storage is not None and chat_storage.is_durable else "memory"
    }


def _relay_http_error(status_code: int, e: RelayClientError) -> HTTPException:
    return HTTPException(
        status_code=status_code,
        detail={
            "error": {
                "code": e.error.code,
                "message": e.error.message,
                "details": e.error.details
            }
        }
    )


@app.post("/chat", response_model=ChatResponse)
async def chat_endpoint(
    request: ChatRequest,
    authorization: Optional[str] = Header(default=None)
) -> ChatResponse:
    """
    Send one user message with its session history downstream.

    Args:
        request: ChatRequest with session_id, user_message and optional model
        authorization: Forwarded downstream when the backend has no API key

    Returns:
        ChatResponse with the backend's reply

    Raises:
        HTTPException: 503 when no model or backend is available, 502 when the
            backend fails
    """
    logger.info(f"Processing chat turn for session {request.session_id}")

    try:
        reply = await chat_relay.send(
            session_id=request.session_id,
            user_message=request.user_message,
            model=request.model,
            authorization=authorization
        )
    except (NoModelAvailableError, NoBackendAvailableError) as e:
        logger.error(f"Relay unavailable: {e.error.message}")
        raise _relay_http_error(503, e)
    except DownstreamError as e:
        logger.error(f"Downstream error: {e.error.message}")
        raise _relay_http_error(502, e)
    except Exception as e:
        logger.error(f"Unexpected error processing chat turn: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error")

    return ChatResponse(reply=reply)


@app.get("/chat/history/{session_id}", response_model=ChatHistoryResponse)
async def get_chat_history(session_id: str) -> ChatHistoryResponse:
    """Return the flattened display history of a session."""
    try:
        messages = await chat_storage.history_lines(session_id)
    except StorageError as e:
        logger.error(f"Error loading history for session {session_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
    return ChatHistoryResponse(session_id=session_id, messages=messages)


@app.get("/chat/sessions", response_model=SessionsResponse)
async def get_all_sessions() -> SessionsResponse:
    """List every session with stored turns."""
    try:
        sessions = await chat_storage.all_sessions()
    except StorageError as e:
        logger.error(f"Error listing sessions: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
    return SessionsResponse(sessions=sessions)


@app.delete("/chat/sessions/{session_id}", response_model=DeleteSessionResponse)
async def delete_session(session_id: str) -> DeleteSessionResponse:
    """Delete a session's history. Deleting an unknown session succeeds."""
    try:
        await chat_storage.delete_session(session_id)
    except StorageError as e:
        logger.error(f"Error deleting session {session_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
    return DeleteSessionResponse(session_id=session_id)


if __name__ == "__main__":
    import uvicorn
    logger.info(f"Starting conversation gateway on port {PORT}")
    uvicorn.run(app, host="0.0.0.0", port=PORT)

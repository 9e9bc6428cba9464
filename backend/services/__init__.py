"""Services for the conversation gateway."""
from .storage_base import ConversationBackend, StorageError, StorageInitError, StorageIOError
from .database import DatabaseManager
from .memory_store import MemoryStore
from .chat_storage import ChatStorage
from .registry import ModelRegistry, ServerGroup, NoServerError
from .context_assembler import ContextAssembler, SYSTEM_PROMPT
from .relay import (
    ChatRelay,
    RelayError,
    RelayClientError,
    NoModelAvailableError,
    NoBackendAvailableError,
    DownstreamError,
)

__all__ = ['ConversationBackend', 'StorageError', 'StorageInitError', 'StorageIOError', 'DatabaseManager', 'MemoryStore', 'ChatStorage', 'ModelRegistry', 'ServerGroup', 'NoServerError', 'ContextAssembler', 'SYSTEM_PROMPT', 'ChatRelay', 'RelayError', 'RelayClientError', 'NoModelAvailableError', 'NoBackendAvailableError', 'DownstreamError']

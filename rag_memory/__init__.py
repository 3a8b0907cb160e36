"""
rag_memory: retrieval-augmented long-term memory for chat agents.
"""

from .config import MemorySettings, load_settings
from .errors import ConfigError, FormatError, RagMemoryError, StorageError, UpstreamError
from .memory import (
    EntityContext,
    ChatTurn,
    MemoryHost,
    MemoryRecord,
    MemorySession,
    MemoryStore,
    RetrievalEngine,
)

__version__ = "0.1.0"

__all__ = [
    "MemorySettings",
    "load_settings",
    "RagMemoryError",
    "ConfigError",
    "UpstreamError",
    "FormatError",
    "StorageError",
    "EntityContext",
    "ChatTurn",
    "MemoryHost",
    "MemoryRecord",
    "MemorySession",
    "MemoryStore",
    "RetrievalEngine",
]

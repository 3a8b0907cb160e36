"""
Persistence layer for memory stores.

Provides:
- SQLite-backed KV store
- Pluggable backends (JSON files, SQLite, in-memory)
"""

from .sqlite_store import KVStore
from .backends import (
    InMemoryBackend,
    JsonFileBackend,
    PersistenceBackend,
    SqliteBackend,
    safe_key,
)

__all__ = [
    "KVStore",
    "PersistenceBackend",
    "JsonFileBackend",
    "SqliteBackend",
    "InMemoryBackend",
    "safe_key",
]

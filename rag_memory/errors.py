"""
Error taxonomy for the memory layer.

- ConfigError: missing credential or endpoint (fix settings, then retry)
- UpstreamError: summarizer/embedder returned non-2xx or an unusable body
- FormatError: malformed import payload
- StorageError: persistence read/write failure
"""

from typing import Optional


class RagMemoryError(Exception):
    """Base class for all memory layer errors."""


class ConfigError(RagMemoryError):
    """Required configuration (API key, URL) is missing or invalid."""


class UpstreamError(RagMemoryError):
    """
    Remote summarization or embedding service failed.

    Attributes:
        status: HTTP status code when the service answered, else None
        message: Human-readable reason reported by the service
    """

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        self.message = message
        if status is not None:
            super().__init__(f"{status} - {message}")
        else:
            super().__init__(message)


class FormatError(RagMemoryError):
    """Imported memory payload does not have the expected shape."""


class StorageError(RagMemoryError):
    """Persisting or reading a memory store failed."""

"""
Memory subsystem for long-term conversation recall.

Provides:
- Turn summarization (chat completions API)
- Summary embedding (Voyage embeddings API)
- Per-entity memory storage with import/export
- Top-K cosine recall and prompt injection
"""

from .schemas import (
    BatchReport,
    ChatTurn,
    EntityContext,
    MemoryDraft,
    MemoryMetadata,
    MemoryRecord,
    MemoryStats,
    RawTurn,
    ScoredMemory,
    StoreData,
    SummaryContext,
    create_memory,
)
from .vector_math import average, cosine_similarity, normalize
from .composer import SummaryComposer, truncate_summary
from .summarizer import SummarizerClient
from .embeddings import EmbeddingGateway, EmbeddingResult
from .store import MemoryStore
from .recall import RetrievalEngine, find_top_k_similar
from .pipeline import MemorySession
from .host import InjectionPrompt, MemoryHost

__all__ = [
    "BatchReport",
    "ChatTurn",
    "EntityContext",
    "MemoryDraft",
    "MemoryMetadata",
    "MemoryRecord",
    "MemoryStats",
    "RawTurn",
    "ScoredMemory",
    "StoreData",
    "SummaryContext",
    "create_memory",
    "average",
    "cosine_similarity",
    "normalize",
    "SummaryComposer",
    "truncate_summary",
    "SummarizerClient",
    "EmbeddingGateway",
    "EmbeddingResult",
    "MemoryStore",
    "RetrievalEngine",
    "find_top_k_similar",
    "MemorySession",
    "InjectionPrompt",
    "MemoryHost",
]

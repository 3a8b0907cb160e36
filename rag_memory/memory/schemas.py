"""
Memory system data models.

Persisted shapes (MemoryRecord, StoreData) are pydantic models so the JSON
document on disk and the export format are validated the same way.
Host-facing and transient shapes are plain dataclasses.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


MemoryRole = Literal["user", "assistant", "unknown"]


def utc_now_iso() -> str:
    """Current UTC instant as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MemoryMetadata(BaseModel):
    """Per-record metadata. Unknown keys are preserved verbatim."""

    model_config = ConfigDict(extra="allow")

    role: MemoryRole = "unknown"
    chat_id: Optional[str] = None
    importance: float = 0.5

    @field_validator("chat_id", mode="before")
    @classmethod
    def _chat_id_to_str(cls, value: Any) -> Optional[str]:
        if value is None or isinstance(value, str):
            return value
        return str(value)


class MemoryDraft(BaseModel):
    """A memory before the store assigns its id and timestamp."""

    model_config = ConfigDict(extra="allow")

    original_message: str = ""
    summary: str = ""
    embedding: List[float] = Field(default_factory=list)
    metadata: MemoryMetadata = Field(default_factory=MemoryMetadata)


class MemoryRecord(MemoryDraft):
    """
    A single stored memory: one chat turn condensed into a summary + vector.

    Immutable once created. ``summary`` is the only field that is embedded
    and displayed; ``timestamp`` is for ordering/display only.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    timestamp: str

    @property
    def role(self) -> str:
        return self.metadata.role

    def has_embedding(self) -> bool:
        return bool(self.embedding)

    def snippet(self, max_chars: int = 100) -> str:
        """Truncated summary for display."""
        if len(self.summary) <= max_chars:
            return self.summary
        return self.summary[:max_chars - 3] + "..."


class StoreData(BaseModel):
    """All memories of one entity, as persisted and exported."""

    entity_id: str
    entity_name: str = ""
    created_at: str = Field(default_factory=utc_now_iso)
    updated_at: str = Field(default_factory=utc_now_iso)
    memories: List[MemoryRecord] = Field(default_factory=list)

    def ids(self) -> set:
        return {m.id for m in self.memories}


def create_memory(
    original_message: str,
    summary: str,
    embedding: List[float],
    role: MemoryRole = "unknown",
    chat_id: Optional[str] = None,
    importance: float = 0.5,
    **extra: Any,
) -> MemoryDraft:
    """
    Build a draft memory ready for ``MemoryStore.add``.

    Args:
        original_message: Full source text of the turn
        summary: Condensed text produced by the summarizer
        embedding: Vector of the summary
        role: Speaker role
        chat_id: Host chat identifier
        importance: Advisory weight (not used by retrieval)
        **extra: Additional metadata keys

    Returns:
        MemoryDraft
    """
    return MemoryDraft(
        original_message=original_message,
        summary=summary,
        embedding=list(embedding),
        metadata=MemoryMetadata(role=role, chat_id=chat_id, importance=importance, **extra),
    )


@dataclass
class ScoredMemory:
    """A retrieval hit."""

    memory: MemoryRecord
    score: float


@dataclass
class MemoryStats:
    """Summary statistics of one entity's store."""

    count: int
    entity_name: str
    created_at: str
    updated_at: str
    oldest_ts: Optional[str]
    newest_ts: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ChatTurn:
    """One message of the host chat log."""

    content: str
    is_user: bool = False
    is_system: bool = False
    name: Optional[str] = None


@dataclass
class RawTurn:
    """A prior chat turn passed to the summarizer as context."""

    role: str
    name: str
    content: str


@dataclass
class EntityContext:
    """What the host knows about the active conversation."""

    entity_id: Optional[str]
    entity_name: str = ""
    user_name: str = "User"
    chat_id: Optional[str] = None
    chat: List[ChatTurn] = field(default_factory=list)


@dataclass
class SummaryContext:
    """Inputs for composing one summarization request."""

    role: Optional[str] = None
    user_name: Optional[str] = None
    character_name: Optional[str] = None
    word_limit: Optional[int] = None
    summary_history: List[str] = field(default_factory=list)
    raw_history: List[RawTurn] = field(default_factory=list)


@dataclass
class BatchReport:
    """Outcome of a bulk store run."""

    total: int = 0
    processed: int = 0
    failed: int = 0

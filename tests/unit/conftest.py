"""
Shared fixtures for memory layer unit tests.
"""
import re

import pytest

from rag_memory.config.settings import MemorySettings
from rag_memory.errors import UpstreamError
from rag_memory.memory.pipeline import MemorySession
from rag_memory.memory.schemas import ChatTurn, EntityContext, create_memory
from rag_memory.memory.store import MemoryStore
from rag_memory.persist.backends import InMemoryBackend
from rag_memory.persist.sqlite_store import KVStore


# Topic vocabulary for the keyword embedder; the trailing bias dimension
# keeps vectors without any keyword from being zero.
VOCABULARY = ["chocolate", "cake", "paris", "weather", "dragon", "sword"]


def keyword_vector(text: str) -> list:
    words = re.findall(r"[a-z]+", text.lower())
    return [float(words.count(term)) for term in VOCABULARY] + [0.05]


class StubSummarizer:
    """Echo summarizer; optionally fails on given 1-based call numbers."""

    def __init__(self, fail_on=(), empty=False):
        self.calls = []
        self.fail_on = set(fail_on)
        self.empty = empty

    async def summarize(self, message, context=None):
        self.calls.append((message, context))
        if len(self.calls) in self.fail_on:
            raise UpstreamError("summarizer down", status=503)
        if self.empty:
            return ""
        return f"Summary of: {message}"

    async def test_connection(self):
        return True


class StubEmbedder:
    """Keyword-count embedder recording the embedding mode of each call."""

    def __init__(self, fail=False, empty=False):
        self.calls = []
        self.fail = fail
        self.empty = empty

    async def _embed(self, text, mode):
        self.calls.append((text, mode))
        if self.fail:
            raise UpstreamError("embedder down", status=500)
        if self.empty:
            return []
        return keyword_vector(text)

    async def embed_document(self, text):
        return await self._embed(text, "document")

    async def embed_query(self, text):
        return await self._embed(text, "query")

    async def test_connection(self):
        return not self.fail


@pytest.fixture
def settings():
    """Enabled settings with credentials and no history context."""
    return MemorySettings(
        enabled=True,
        summarization_url="https://llm.test",
        summarization_key="sk-test",
        embedding_api_key="voyage-test",
        include_history=False,
        include_raw_history=False,
    )


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def store(backend):
    """MemoryStore over an in-memory backend."""
    return MemoryStore(backend=backend)


@pytest.fixture
def summarizer():
    return StubSummarizer()


@pytest.fixture
def embedder():
    return StubEmbedder()


@pytest.fixture
def session(settings, store, summarizer, embedder):
    """MemorySession wired to stubs, with no batch delay."""
    return MemorySession(
        settings,
        store=store,
        summarizer=summarizer,
        embedder=embedder,
        batch_delay=0,
    )


@pytest.fixture
def context():
    """Entity context with a short chat log."""
    return EntityContext(
        entity_id="char-1",
        entity_name="Aria",
        user_name="Sam",
        chat_id="chat-1",
        chat=[
            ChatTurn("Welcome, traveler. The weather in Paris is grim.", is_user=False, name="Aria"),
            ChatTurn("I brought you a chocolate cake from the bakery.", is_user=True, name="Sam"),
        ],
    )


@pytest.fixture
def draft():
    """Factory for memory drafts."""
    def _make(summary="A summary", embedding=(1.0, 0.0), role="user", **kwargs):
        return create_memory(f"Original: {summary}", summary, list(embedding), role=role, **kwargs)
    return _make


@pytest.fixture
def kv(tmp_path):
    """Create a temporary KVStore instance."""
    db_path = tmp_path / "memories.db"
    store = KVStore(db_path)
    yield store
    store.close()


@pytest.fixture
def stub_summarizer():
    """Summarizer stub class, for tests that need a custom failure mode."""
    return StubSummarizer


@pytest.fixture
def stub_embedder():
    """Embedder stub class, for tests that need a custom failure mode."""
    return StubEmbedder

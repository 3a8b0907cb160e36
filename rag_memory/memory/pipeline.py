"""
Memory pipeline: the write path (turn -> summary -> vector -> store) and the
read path (query -> vector -> top-K -> injection text).

All shared state (clients, store cache, single-flight flag) lives on a
MemorySession instead of module globals, so independent sessions can run
side by side.
"""

import asyncio
import logging
from typing import Callable, List, Optional, Protocol, Sequence, Union

import httpx

from rag_memory.config.settings import MemorySettings
from rag_memory.errors import UpstreamError
from .embeddings import EmbeddingGateway
from .recall import RetrievalEngine
from .schemas import (
    BatchReport,
    EntityContext,
    MemoryRecord,
    RawTurn,
    ScoredMemory,
    SummaryContext,
    create_memory,
)
from .store import MemoryStore
from .summarizer import SummarizerClient


logger = logging.getLogger(__name__)

MIN_MESSAGE_LENGTH = 20
MIN_RAW_TURN_LENGTH = 5
BATCH_DELAY_SECONDS = 0.2
DEFAULT_MEMORY_TEMPLATE = "[Relevant memories:\n{{memories}}]"

SettingsProvider = Callable[[], MemorySettings]


class Summarizer(Protocol):
    async def summarize(self, message: str, context: Optional[SummaryContext] = None) -> str:
        ...

    async def test_connection(self) -> bool:
        ...


class Embedder(Protocol):
    async def embed_document(self, text: str) -> List[float]:
        ...

    async def embed_query(self, text: str) -> List[float]:
        ...

    async def test_connection(self) -> bool:
        ...


class Retriever(Protocol):
    def top_k(self, query_vector, memories, k: int = 5, threshold: float = 0.7) -> List[ScoredMemory]:
        ...


class MemorySession:
    """
    Orchestrates summarization, embedding, storage and retrieval.

    Settings are pulled from the provider at every call. Summarizer and
    embedder are built from those settings per call unless injected.
    """

    def __init__(
        self,
        settings: Union[MemorySettings, SettingsProvider, None] = None,
        store: Optional[MemoryStore] = None,
        summarizer: Optional[Summarizer] = None,
        embedder: Optional[Embedder] = None,
        retriever: Optional[Retriever] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        batch_delay: float = BATCH_DELAY_SECONDS,
    ):
        """
        Initialize a memory session.

        Args:
            settings: Settings instance or zero-arg provider (default settings if None)
            store: Memory store (default: JSON files under settings.storage_dir)
            summarizer: Summarizer override
            embedder: Embedder override
            retriever: Top-K engine override
            http_client: HTTP client for the built-in API clients (owned one created on demand)
            batch_delay: Pause between units of a bulk store, in seconds
        """
        if settings is None:
            self._settings_provider: SettingsProvider = MemorySettings
        elif isinstance(settings, MemorySettings):
            self._settings_provider = lambda: settings
        else:
            self._settings_provider = settings

        self.store = store or MemoryStore(storage_dir=self.settings.storage_dir)
        self._summarizer = summarizer
        self._embedder = embedder
        self.retriever = retriever or RetrievalEngine()
        self.http_client = http_client
        self._owns_client = http_client is None
        self.batch_delay = batch_delay
        self.is_processing = False

    @property
    def settings(self) -> MemorySettings:
        return self._settings_provider()

    def _shared_client(self) -> httpx.AsyncClient:
        if self.http_client is None:
            self.http_client = httpx.AsyncClient()
        return self.http_client

    async def aclose(self) -> None:
        """Close the HTTP client if this session created it."""
        if self._owns_client and self.http_client is not None:
            await self.http_client.aclose()
            self.http_client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def summarizer_for(self, settings: MemorySettings) -> Summarizer:
        if self._summarizer is not None:
            return self._summarizer
        return SummarizerClient(
            settings.summarization_url,
            settings.summarization_key,
            model=settings.summarization_model,
            system_prompt=settings.system_prompt(),
            word_limit=settings.word_limit,
            timeout=settings.request_timeout,
            http_client=self._shared_client(),
        )

    def embedder_for(self, settings: MemorySettings) -> Embedder:
        if self._embedder is not None:
            return self._embedder
        return EmbeddingGateway(
            settings.embedding_api_key,
            model=settings.embedding_model,
            api_url=settings.embedding_url,
            timeout=settings.request_timeout,
            http_client=self._shared_client(),
        )

    def _debug(self, settings: MemorySettings, msg: str, *args) -> None:
        logger.log(logging.INFO if settings.debug_mode else logging.DEBUG, msg, *args)

    # ------------------------------------------------------------------
    # Context gathering
    # ------------------------------------------------------------------

    async def recent_summaries(self, entity_id: str, count: int = 3) -> List[str]:
        """
        Summaries of the newest memories, oldest first.

        Args:
            entity_id: Entity identifier
            count: How many of the newest memories to use

        Returns:
            Summary strings in chronological order
        """
        if count <= 0:
            return []

        memories = await self.store.get_all(entity_id)
        # Ties on timestamp fall back to insertion order
        ordered = [m for _, m in sorted(enumerate(memories), key=lambda item: (item[1].timestamp, item[0]))]
        return [m.summary for m in ordered[-count:]]

    @staticmethod
    def recent_raw_turns(
        context: EntityContext,
        count: int = 5,
        include_bot: bool = True,
        include_user: bool = True,
        exclude_index: Optional[int] = None,
    ) -> List[RawTurn]:
        """
        Recent chat turns for summarizer context, oldest first.

        Skips system turns, the excluded index, filtered roles, and turns
        shorter than 5 characters.
        """
        turns: List[RawTurn] = []
        if count <= 0:
            return turns

        for i in range(len(context.chat) - 1, -1, -1):
            if len(turns) >= count:
                break

            turn = context.chat[i]
            if turn.is_system:
                continue
            if exclude_index is not None and i == exclude_index:
                continue
            if turn.is_user and not include_user:
                continue
            if not turn.is_user and not include_bot:
                continue
            if not turn.content or len(turn.content.strip()) < MIN_RAW_TURN_LENGTH:
                continue

            if turn.is_user:
                turns.append(RawTurn("user", turn.name or context.user_name or "User", turn.content))
            else:
                turns.append(RawTurn("assistant", turn.name or context.entity_name or "Character", turn.content))

        turns.reverse()
        return turns

    @staticmethod
    def _find_turn_index(chat: Sequence, text: str) -> Optional[int]:
        for i in range(len(chat) - 1, -1, -1):
            if chat[i].content == text:
                return i
        return None

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def process_and_store(
        self,
        text: str,
        role: str,
        context: EntityContext,
        message_index: Optional[int] = None,
    ) -> Optional[MemoryRecord]:
        """
        Summarize, embed and store one chat turn.

        Dropped (returns None) while another write is in flight or when the
        text is shorter than MIN_MESSAGE_LENGTH. Stages run strictly in
        order; any failure aborts the rest and nothing is stored.

        Args:
            text: Turn text
            role: 'user' or 'assistant'
            context: Active entity and chat log
            message_index: Position of this turn in ``context.chat``

        Returns:
            The stored MemoryRecord, or None if skipped

        Raises:
            ConfigError, UpstreamError, StorageError: From the failing stage
        """
        settings = self.settings

        if self.is_processing:
            self._debug(settings, "Already processing, skipping message")
            return None

        if not text or len(text.strip()) < MIN_MESSAGE_LENGTH:
            self._debug(settings, "Message too short, skipping")
            return None

        if not context.entity_id:
            self._debug(settings, "No active entity, skipping message")
            return None

        self.is_processing = True
        try:
            summary_history: List[str] = []
            if settings.include_history:
                summary_history = await self.recent_summaries(context.entity_id, settings.history_count)

            raw_history: List[RawTurn] = []
            if settings.include_raw_history:
                if message_index is None:
                    message_index = self._find_turn_index(context.chat, text)
                raw_history = self.recent_raw_turns(
                    context,
                    settings.raw_history_count,
                    include_bot=settings.raw_include_bot,
                    include_user=settings.raw_include_user,
                    exclude_index=message_index,
                )

            self._debug(settings, "Summarizing %s message", role)
            summary = await self.summarizer_for(settings).summarize(
                text,
                SummaryContext(
                    role=role,
                    user_name=context.user_name or "User",
                    character_name=context.entity_name,
                    word_limit=settings.word_limit,
                    summary_history=summary_history,
                    raw_history=raw_history,
                ),
            )
            if not summary:
                raise UpstreamError("Failed to generate summary")

            self._debug(settings, "Generating embedding")
            embedding = await self.embedder_for(settings).embed_document(summary)
            if not embedding:
                raise UpstreamError("Failed to generate embedding")

            record = await self.store.add(
                context.entity_id,
                create_memory(text, summary, embedding, role=role, chat_id=context.chat_id),
                entity_name=context.entity_name,
            )
            self._debug(settings, "Stored memory for %s: %s", role, summary[:50])
            return record

        except Exception as e:
            logger.error("Processing error: %s", e)
            raise
        finally:
            self.is_processing = False

    async def store_chat(self, context: EntityContext, delay: Optional[float] = None) -> BatchReport:
        """
        Store every eligible turn of a chat log.

        Each turn is summarized, embedded and stored on its own; a failure
        is counted and the loop moves on. No retries.

        Args:
            context: Active entity and chat log
            delay: Pause after each stored turn (default: session batch delay)

        Returns:
            BatchReport with total/processed/failed counts
        """
        settings = self.settings
        delay = self.batch_delay if delay is None else delay
        report = BatchReport()

        if not context.entity_id:
            return report

        turns = [
            t for t in context.chat
            if not t.is_system and t.content and len(t.content) >= MIN_MESSAGE_LENGTH
        ]
        report.total = len(turns)

        summarizer = self.summarizer_for(settings)
        embedder = self.embedder_for(settings)

        for i, turn in enumerate(turns, start=1):
            role = "user" if turn.is_user else "assistant"
            self._debug(settings, "Processing %d/%d", i, report.total)
            try:
                summary = await summarizer.summarize(
                    turn.content,
                    SummaryContext(
                        role=role,
                        user_name=context.user_name or "User",
                        character_name=context.entity_name,
                        word_limit=settings.word_limit,
                    ),
                )
                if not summary:
                    raise UpstreamError("Failed to generate summary")

                embedding = await embedder.embed_document(summary)
                if not embedding:
                    raise UpstreamError("Failed to generate embedding")

                await self.store.add(
                    context.entity_id,
                    create_memory(turn.content, summary, embedding, role=role, chat_id=context.chat_id),
                    entity_name=context.entity_name,
                )
                report.processed += 1

                if delay > 0:
                    await asyncio.sleep(delay)
            except Exception as e:
                logger.error("Error processing message %d/%d: %s", i, report.total, e)
                report.failed += 1

        return report

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def retrieve_relevant(
        self,
        query_text: str,
        entity_id: Optional[str],
        k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> List[ScoredMemory]:
        """
        Find stored memories relevant to a query.

        Returns an empty list, without calling the embedder, when there is
        no entity, no query text, or no stored memory.

        Args:
            query_text: Text to search with (usually the last user turn)
            entity_id: Entity whose memories are searched
            k: Max results (default: settings.top_k)
            threshold: Min similarity (default: settings.similarity_threshold)

        Returns:
            Ranked ScoredMemory list

        Raises:
            ConfigError, UpstreamError: If the query could not be embedded
        """
        settings = self.settings

        if not entity_id or not query_text or not query_text.strip():
            return []

        memories = await self.store.get_all(entity_id)
        if not memories:
            return []

        query_vector = await self.embedder_for(settings).embed_query(query_text)
        if not query_vector:
            return []

        results = self.retriever.top_k(
            query_vector,
            memories,
            k=settings.top_k if k is None else k,
            threshold=settings.similarity_threshold if threshold is None else threshold,
        )
        self._debug(settings, "Found %d relevant memories", len(results))
        return results

    def format_memories(self, results: Sequence[ScoredMemory], template: Optional[str] = None) -> str:
        """
        Render retrieval results for prompt injection.

        Each line: ``"{n}. [{role}] {summary} (relevance: {pct}%)"``; the
        joined lines replace the first ``{{memories}}`` in the template.
        """
        lines = []
        for i, item in enumerate(results, start=1):
            pct = f"{item.score * 100:.0f}"
            lines.append(f"{i}. [{item.memory.metadata.role}] {item.memory.summary} (relevance: {pct}%)")

        template = template or self.settings.memory_template or DEFAULT_MEMORY_TEMPLATE
        return template.replace("{{memories}}", "\n".join(lines), 1)

"""
Host adapter: the narrow interface a chat application calls into.

Hooks fire on chat events (turn received/sent, entity changed, before
generation). Actions are user-triggered and report their outcome through a
single notification each; neither hooks nor actions let exceptions escape.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Literal, Optional

from .pipeline import MemorySession
from .schemas import BatchReport, EntityContext, MemoryRecord, MemoryStats


logger = logging.getLogger(__name__)

MEMORY_PROMPT_ID = "rag_memories"

NotifyLevel = Literal["success", "info", "warning", "error"]
Notifier = Callable[[NotifyLevel, str], None]

_LEVELS = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class InjectionPrompt:
    """Extension prompt handed back to the host for context injection."""

    identifier: str
    content: str
    position: str
    depth: int = 0


def log_notification(level: str, message: str) -> None:
    """Default notifier: route notifications to the module logger."""
    logger.log(_LEVELS.get(level, logging.INFO), message)


def format_time_ago(timestamp: Optional[str], now: Optional[datetime] = None) -> str:
    """
    Human-readable age of an ISO timestamp.

    Args:
        timestamp: ISO-8601 string (``Z`` suffix accepted)
        now: Reference time (default: current UTC time)

    Returns:
        "Just now", "N min ago", "N hours ago", "N days ago", a date, or "Never"
    """
    if not timestamp:
        return "Never"

    try:
        then = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        return timestamp

    if then.tzinfo is None:
        then = then.replace(tzinfo=timezone.utc)

    seconds = int(((now or datetime.now(timezone.utc)) - then).total_seconds())

    if seconds < 60:
        return "Just now"
    if seconds < 3600:
        return f"{seconds // 60} min ago"
    if seconds < 86400:
        return f"{seconds // 3600} hours ago"
    if seconds < 604800:
        return f"{seconds // 86400} days ago"

    return then.date().isoformat()


class MemoryHost:
    """
    Binds a MemorySession to host chat events and user actions.

    Usage:
        >>> host = MemoryHost(MemorySession(load_settings))
        >>> await host.on_turn_sent(context, len(context.chat) - 1)
        >>> await host.on_before_generation(context, extension_prompts)
    """

    def __init__(self, session: MemorySession, notify: Optional[Notifier] = None):
        """
        Initialize host adapter.

        Args:
            session: Memory session to drive
            notify: ``notify(level, message)`` callable (default: logging)
        """
        self.session = session
        self.notify = notify if notify is not None else log_notification
        self.active_entity_id: Optional[str] = None

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    async def on_turn_received(self, context: EntityContext, message_index: int) -> Optional[MemoryRecord]:
        """Assistant turn arrived."""
        settings = self.session.settings
        if not settings.enabled or not settings.auto_store:
            return None
        if not settings.summarize_bot:
            logger.debug("Bot message summarization disabled, skipping")
            return None
        return await self._store_turn(context, message_index, "assistant")

    async def on_turn_sent(self, context: EntityContext, message_index: int) -> Optional[MemoryRecord]:
        """User turn sent."""
        settings = self.session.settings
        if not settings.enabled or not settings.auto_store:
            return None
        if not settings.summarize_user:
            logger.debug("User message summarization disabled, skipping")
            return None
        return await self._store_turn(context, message_index, "user")

    async def _store_turn(self, context: EntityContext, message_index: int, role: str) -> Optional[MemoryRecord]:
        if not 0 <= message_index < len(context.chat):
            return None

        turn = context.chat[message_index]
        if turn.is_system:
            return None

        try:
            record = await self.session.process_and_store(turn.content, role, context, message_index)
        except Exception as e:
            self.notify("error", f"Failed to process message: {e}")
            return None

        if record is not None:
            self.notify("success", "Memory stored successfully")
        return record

    def on_entity_changed(self, context: EntityContext) -> None:
        """Active character/persona switched; drop its cached store."""
        if not context.entity_id:
            return
        self.active_entity_id = context.entity_id
        self.session.store.invalidate(context.entity_id)
        logger.info("Switched to entity: %s", context.entity_name or context.entity_id)

    async def on_before_generation(
        self,
        context: EntityContext,
        extension_prompts: List[InjectionPrompt],
    ) -> Optional[InjectionPrompt]:
        """
        Inject relevant memories ahead of a generation.

        The last non-system user turn is the query. When memories are found
        an InjectionPrompt is appended to ``extension_prompts``.

        Returns:
            The appended prompt, or None
        """
        settings = self.session.settings
        if not settings.enabled or not settings.auto_retrieve:
            return None
        if not context.entity_id:
            return None

        query = next((t for t in reversed(context.chat) if t.is_user and not t.is_system), None)
        if query is None:
            return None

        try:
            results = await self.session.retrieve_relevant(query.content, context.entity_id)
            if not results:
                return None

            prompt = InjectionPrompt(
                identifier=MEMORY_PROMPT_ID,
                content=self.session.format_memories(results),
                position=settings.injection_position,
            )
            if settings.injection_depth > 0:
                prompt.depth = settings.injection_depth
                prompt.position = "atDepth"

            extension_prompts.append(prompt)
            logger.info(
                "Injected %d memories (position: %s, depth: %d)",
                len(results), prompt.position, prompt.depth,
            )
            return prompt
        except Exception as e:
            logger.error("Error injecting memories: %s", e)
            return None

    # ------------------------------------------------------------------
    # User-triggered actions
    # ------------------------------------------------------------------

    async def test_summarization_connection(self) -> bool:
        try:
            ok = await self.session.summarizer_for(self.session.settings).test_connection()
        except Exception as e:
            self.notify("error", f"Summarization API test failed: {e}")
            return False

        if ok:
            self.notify("success", "Summarization API connected")
        else:
            self.notify("error", "Summarization API test failed: Connection failed")
        return ok

    async def test_embedding_connection(self) -> bool:
        try:
            ok = await self.session.embedder_for(self.session.settings).test_connection()
        except Exception as e:
            self.notify("error", f"Embedding API test failed: {e}")
            return False

        if ok:
            self.notify("success", "Embedding API connected")
        else:
            self.notify("error", "Embedding API test failed: Connection failed")
        return ok

    async def store_current_chat(self, context: EntityContext) -> Optional[BatchReport]:
        """Bulk-store every eligible turn of the current chat."""
        if not context.entity_id or not context.chat:
            self.notify("warning", "No active chat to process")
            return None

        try:
            report = await self.session.store_chat(context)
        except Exception as e:
            self.notify("error", f"Storing chat failed: {e}")
            return None

        if report.total == 0:
            self.notify("info", "No messages to store")
        else:
            self.notify("success", f"Processed {report.processed} messages ({report.failed} failed)")
        return report

    async def clear_memories(self, context: EntityContext) -> bool:
        if not context.entity_id:
            self.notify("warning", "No active character")
            return False

        try:
            await self.session.store.clear(context.entity_id)
        except Exception as e:
            self.notify("error", f"Clear failed: {e}")
            return False

        self.notify("success", "Memories cleared")
        return True

    async def export_memories(self, context: EntityContext) -> Optional[str]:
        """Exported JSON document, or None on failure."""
        if not context.entity_id:
            self.notify("warning", "No active character")
            return None

        try:
            payload = await self.session.store.export(context.entity_id)
        except Exception as e:
            self.notify("error", f"Export failed: {e}")
            return None

        self.notify("success", "Memories exported")
        return payload

    async def import_memories(self, context: EntityContext, payload, merge: bool = False) -> Optional[int]:
        """
        Import an exported document into the active entity.

        Args:
            context: Active entity
            payload: JSON text/bytes or parsed mapping
            merge: Keep existing memories and add unseen ids only

        Returns:
            Number of memories imported, or None on failure
        """
        if not context.entity_id:
            self.notify("warning", "No active character")
            return None

        try:
            count = await self.session.store.import_memories(context.entity_id, payload, merge=merge)
        except Exception as e:
            self.notify("error", f"Import failed: {e}")
            return None

        self.notify("success", f"Imported {count} memories")
        return count

    async def memory_stats(self, context: EntityContext) -> Optional[MemoryStats]:
        if not context.entity_id:
            self.notify("warning", "No active character")
            return None

        try:
            stats = await self.session.store.stats(context.entity_id)
        except Exception as e:
            self.notify("error", f"Stats failed: {e}")
            return None

        name = stats.entity_name or context.entity_name or context.entity_id
        self.notify(
            "info",
            f"{stats.count} memories for {name} (last updated: {format_time_ago(stats.updated_at)})",
        )
        return stats

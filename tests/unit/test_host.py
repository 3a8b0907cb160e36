"""
Unit tests for the host adapter (hooks, actions, notifications).
"""

from datetime import datetime, timedelta, timezone

import pytest

from rag_memory.memory.host import InjectionPrompt, MemoryHost, format_time_ago, log_notification
from rag_memory.memory.pipeline import MemorySession
from rag_memory.memory.schemas import ChatTurn, EntityContext


class Notifications(list):
    def __call__(self, level, message):
        self.append((level, message))


@pytest.fixture
def notes():
    return Notifications()


@pytest.fixture
def host(session, notes):
    return MemoryHost(session, notify=notes)


# ============================================================================
# Hooks
# ============================================================================

@pytest.mark.asyncio
async def test_turn_sent_stores_and_notifies_once(host, context, notes, store):
    record = await host.on_turn_sent(context, 1)

    assert record is not None
    assert record.role == "user"
    assert notes == [("success", "Memory stored successfully")]
    assert len(await store.get_all("char-1")) == 1


@pytest.mark.asyncio
async def test_empty_collector_is_kept_as_notifier(host, context, notes):
    # An empty list-backed collector is falsy but still the host's notifier
    assert not notes
    assert host.notify is notes

    await host.on_turn_sent(context, 1)

    assert len(notes) == 1


def test_default_notifier_is_logging(session):
    assert MemoryHost(session).notify is log_notification


@pytest.mark.asyncio
async def test_turn_received_stores_assistant_turn(host, context, notes):
    record = await host.on_turn_received(context, 0)

    assert record.role == "assistant"
    assert len(notes) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "flags",
    [
        {"enabled": False},
        {"auto_store": False},
        {"summarize_user": False},
    ],
)
async def test_turn_sent_respects_flags(host, context, notes, settings, summarizer, flags):
    for name, value in flags.items():
        setattr(settings, name, value)

    assert await host.on_turn_sent(context, 1) is None
    assert summarizer.calls == []
    assert notes == []


@pytest.mark.asyncio
async def test_turn_received_respects_summarize_bot(host, context, settings, summarizer):
    settings.summarize_bot = False

    assert await host.on_turn_received(context, 0) is None
    assert summarizer.calls == []


@pytest.mark.asyncio
async def test_system_and_out_of_range_turns_ignored(host, context, notes, summarizer):
    context.chat.append(ChatTurn("A long system message for the log.", is_system=True))

    assert await host.on_turn_sent(context, 2) is None
    assert await host.on_turn_sent(context, 99) is None
    assert summarizer.calls == []
    assert notes == []


@pytest.mark.asyncio
async def test_turn_failure_produces_one_error_notification(settings, store, embedder, context, notes, stub_summarizer):
    session = MemorySession(settings, store=store, summarizer=stub_summarizer(fail_on={1}), embedder=embedder)
    host = MemoryHost(session, notify=notes)

    assert await host.on_turn_sent(context, 1) is None

    assert len(notes) == 1
    level, message = notes[0]
    assert level == "error"
    assert message.startswith("Failed to process message:")
    assert "summarizer down" in message


def test_entity_changed_invalidates_cache(host, store, context):
    store._cache["char-1"] = object()

    host.on_entity_changed(context)

    assert host.active_entity_id == "char-1"
    assert not store.is_cached("char-1")


@pytest.mark.asyncio
async def test_before_generation_injects_memories(host, session, context, settings):
    settings.similarity_threshold = 0.5
    await session.process_and_store("I brought you a chocolate cake from the bakery.", "user", context)
    prompts = []

    prompt = await host.on_before_generation(context, prompts)

    assert prompts == [prompt]
    assert isinstance(prompt, InjectionPrompt)
    assert prompt.identifier == "rag_memories"
    assert prompt.position == "afterScenario"
    assert prompt.depth == 0
    assert "chocolate cake" in prompt.content
    assert prompt.content.startswith("[과거 대화에서 관련된 기억들:\n1. [user]")


@pytest.mark.asyncio
async def test_before_generation_depth_switches_position(host, session, context, settings):
    settings.similarity_threshold = 0.5
    settings.injection_depth = 4
    await session.process_and_store("I brought you a chocolate cake from the bakery.", "user", context)
    prompts = []

    prompt = await host.on_before_generation(context, prompts)

    assert prompt.position == "atDepth"
    assert prompt.depth == 4


@pytest.mark.asyncio
async def test_before_generation_nothing_relevant(host, context):
    prompts = []

    assert await host.on_before_generation(context, prompts) is None
    assert prompts == []


@pytest.mark.asyncio
async def test_before_generation_swallows_errors(settings, store, summarizer, context, draft, notes, stub_embedder):
    await store.add("char-1", draft())
    session = MemorySession(settings, store=store, summarizer=summarizer, embedder=stub_embedder(fail=True))
    host = MemoryHost(session, notify=notes)
    prompts = []

    assert await host.on_before_generation(context, prompts) is None
    assert prompts == []


@pytest.mark.asyncio
async def test_before_generation_needs_user_turn(host, settings, summarizer):
    context = EntityContext(entity_id="char-1", chat=[ChatTurn("Only the bot has spoken so far.")])

    assert await host.on_before_generation(context, []) is None


@pytest.mark.asyncio
async def test_before_generation_disabled(host, context, settings, embedder):
    settings.auto_retrieve = False

    assert await host.on_before_generation(context, []) is None
    assert embedder.calls == []


# ============================================================================
# Actions
# ============================================================================

@pytest.mark.asyncio
async def test_connection_actions(host, notes):
    assert await host.test_summarization_connection() is True
    assert await host.test_embedding_connection() is True
    assert [level for level, _ in notes] == ["success", "success"]


@pytest.mark.asyncio
async def test_embedding_connection_failure(settings, store, summarizer, notes, stub_embedder):
    host = MemoryHost(MemorySession(settings, store=store, summarizer=summarizer, embedder=stub_embedder(fail=True)), notify=notes)

    assert await host.test_embedding_connection() is False
    assert len(notes) == 1
    assert notes[0][0] == "error"


@pytest.mark.asyncio
async def test_store_current_chat(host, context, notes):
    report = await host.store_current_chat(context)

    assert (report.processed, report.failed) == (2, 0)
    assert notes == [("success", "Processed 2 messages (0 failed)")]


@pytest.mark.asyncio
async def test_store_current_chat_nothing_eligible(host, notes):
    context = EntityContext(entity_id="char-1", chat=[ChatTurn("hi", is_user=True)])

    await host.store_current_chat(context)

    assert notes == [("info", "No messages to store")]


@pytest.mark.asyncio
async def test_actions_without_entity_warn(host, notes):
    empty = EntityContext(entity_id=None)

    assert await host.store_current_chat(empty) is None
    assert await host.clear_memories(empty) is False
    assert await host.export_memories(empty) is None
    assert await host.import_memories(empty, "{}") is None
    assert await host.memory_stats(empty) is None

    assert [level for level, _ in notes] == ["warning"] * 5


@pytest.mark.asyncio
async def test_export_import_clear_actions(host, store, context, notes, draft):
    await store.add("char-1", draft("remember me"))

    exported = await host.export_memories(context)
    assert await host.clear_memories(context) is True
    assert await store.get_all("char-1") == []

    assert await host.import_memories(context, exported, merge=True) == 1
    assert [m.summary for m in await store.get_all("char-1")] == ["remember me"]

    assert notes == [
        ("success", "Memories exported"),
        ("success", "Memories cleared"),
        ("success", "Imported 1 memories"),
    ]


@pytest.mark.asyncio
async def test_import_bad_payload_notifies_error(host, context, notes):
    assert await host.import_memories(context, "not json") is None

    assert len(notes) == 1
    assert notes[0][0] == "error"
    assert notes[0][1].startswith("Import failed:")


@pytest.mark.asyncio
async def test_memory_stats_action(host, store, context, notes, draft):
    await store.add("char-1", draft(), entity_name="Aria")

    stats = await host.memory_stats(context)

    assert stats.count == 1
    assert len(notes) == 1
    assert notes[0][0] == "info"
    assert notes[0][1].startswith("1 memories for Aria")


# ============================================================================
# Helpers
# ============================================================================

def test_format_time_ago():
    now = datetime(2025, 6, 10, 12, 0, 0, tzinfo=timezone.utc)

    def ago(**delta):
        return (now - timedelta(**delta)).isoformat().replace("+00:00", "Z")

    assert format_time_ago(ago(seconds=5), now) == "Just now"
    assert format_time_ago(ago(minutes=5), now) == "5 min ago"
    assert format_time_ago(ago(hours=3), now) == "3 hours ago"
    assert format_time_ago(ago(days=2), now) == "2 days ago"
    assert format_time_ago(ago(days=30), now) == "2025-05-11"
    assert format_time_ago(None, now) == "Never"

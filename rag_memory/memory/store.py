"""
Per-entity memory persistence with an in-memory cache.

Each entity (character/persona) owns one StoreData document, persisted
through a pluggable backend under the entity id. The cache maps
entity_id -> StoreData and is only an optimization: it must be
invalidated when the persisted document may have changed elsewhere.
"""

import asyncio
import json
import logging
import sqlite3
import uuid
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from rag_memory.errors import FormatError, StorageError
from rag_memory.persist.backends import JsonFileBackend, PersistenceBackend
from .schemas import MemoryDraft, MemoryRecord, MemoryStats, StoreData, utc_now_iso


logger = logging.getLogger(__name__)

DEFAULT_STORAGE_DIR = Path("data/memories")

_IO_ERRORS = (OSError, sqlite3.Error)


class MemoryStore:
    """
    Persistent storage for per-entity memories.

    Features:
    - Lazy creation of empty stores on first access
    - Write-through cache; a failed write leaves the cache untouched
    - CRUD, stats, export and (merge) import
    - Per-entity locks so a load -> save span never interleaves with
      another mutation of the same entity
    """

    def __init__(
        self,
        backend: Optional[PersistenceBackend] = None,
        storage_dir: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize memory store.

        Args:
            backend: Persistence backend (default: JSON files)
            storage_dir: Directory for the default JSON backend
        """
        if backend is None:
            backend = JsonFileBackend(storage_dir or DEFAULT_STORAGE_DIR)

        self.backend = backend
        self._cache: Dict[str, StoreData] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock(self, entity_id: str) -> asyncio.Lock:
        lock = self._locks.get(entity_id)
        if lock is None:
            lock = self._locks[entity_id] = asyncio.Lock()
        return lock

    def is_cached(self, entity_id: str) -> bool:
        return entity_id in self._cache

    async def load(self, entity_id: str, entity_name: str = "") -> StoreData:
        """
        Load an entity's store.

        Never fails for a missing or unreadable document: a fresh empty store
        is created and cached instead.

        Args:
            entity_id: Entity identifier
            entity_name: Display name used when creating a new store

        Returns:
            StoreData (the cached instance)
        """
        cached = self._cache.get(entity_id)
        if cached is not None:
            return cached

        data = None
        try:
            raw = await asyncio.to_thread(self.backend.read, entity_id)
            if raw is not None:
                data = StoreData.model_validate_json(raw)
        except _IO_ERRORS as e:
            logger.warning("Could not read memories for %s, starting empty: %s", entity_id, e)
        except ValueError as e:
            logger.warning("Malformed memory document for %s, starting empty: %s", entity_id, e)

        if data is None:
            logger.info("Creating new memory store for %s", entity_id)
            data = StoreData(entity_id=entity_id, entity_name=entity_name)

        # Another coroutine may have filled the cache while we were reading
        return self._cache.setdefault(entity_id, data)

    async def save(self, entity_id: str, data: StoreData) -> bool:
        """
        Persist a store and swap it into the cache.

        Args:
            entity_id: Entity identifier
            data: Store document to persist

        Returns:
            True on success, False if the backend write failed
        """
        stamped = data.model_copy(update={"updated_at": utc_now_iso()})
        payload = stamped.model_dump_json(indent=2).encode("utf-8")

        try:
            await asyncio.to_thread(self.backend.write, entity_id, payload)
        except _IO_ERRORS as e:
            logger.error("Save failed for %s: %s", entity_id, e)
            return False

        self._cache[entity_id] = stamped
        logger.debug("Saved %d memories for %s", len(stamped.memories), entity_id)
        return True

    async def _commit(self, entity_id: str, data: StoreData) -> None:
        if not await self.save(entity_id, data):
            raise StorageError(f"Could not persist memories for {entity_id}")

    async def add(
        self,
        entity_id: str,
        memory: Union[MemoryDraft, Mapping[str, Any]],
        entity_name: str = "",
    ) -> MemoryRecord:
        """
        Append a memory, assigning a fresh id and timestamp.

        Args:
            entity_id: Entity identifier
            memory: Draft (or mapping of draft fields)
            entity_name: Display name if the store has to be created

        Returns:
            The stored MemoryRecord

        Raises:
            StorageError: If the store could not be persisted
        """
        if isinstance(memory, MemoryDraft):
            fields = memory.model_dump()
        else:
            fields = MemoryDraft.model_validate(dict(memory)).model_dump()
        fields.pop("id", None)
        fields.pop("timestamp", None)

        async with self._lock(entity_id):
            data = await self.load(entity_id, entity_name)

            existing = data.ids()
            memory_id = str(uuid.uuid4())
            while memory_id in existing:
                memory_id = str(uuid.uuid4())

            record = MemoryRecord.model_validate({**fields, "id": memory_id, "timestamp": utc_now_iso()})
            await self._commit(entity_id, data.model_copy(update={"memories": [*data.memories, record]}))

        return record

    async def get_all(self, entity_id: str) -> List[MemoryRecord]:
        """All memories of an entity, in insertion order."""
        data = await self.load(entity_id)
        return list(data.memories)

    async def delete(self, entity_id: str, memory_id: str) -> bool:
        """
        Delete one memory.

        Returns:
            True if deleted, False if the id was not present
        """
        async with self._lock(entity_id):
            data = await self.load(entity_id)
            remaining = [m for m in data.memories if m.id != memory_id]

            if len(remaining) == len(data.memories):
                return False

            await self._commit(entity_id, data.model_copy(update={"memories": remaining}))

        return True

    async def clear(self, entity_id: str) -> None:
        """Remove all memories, keeping the store itself."""
        async with self._lock(entity_id):
            data = await self.load(entity_id)
            await self._commit(entity_id, data.model_copy(update={"memories": []}))

        logger.info("Cleared all memories for %s", entity_id)

    async def stats(self, entity_id: str) -> MemoryStats:
        """
        Store statistics.

        Oldest/newest are the first/last memories by insertion position, not
        by timestamp; they only match chronology while insertion order does.
        """
        data = await self.load(entity_id)
        memories = data.memories

        return MemoryStats(
            count=len(memories),
            entity_name=data.entity_name,
            created_at=data.created_at,
            updated_at=data.updated_at,
            oldest_ts=memories[0].timestamp if memories else None,
            newest_ts=memories[-1].timestamp if memories else None,
        )

    async def export(self, entity_id: str) -> str:
        """Pretty-printed JSON of the whole store, embeddings included."""
        data = await self.load(entity_id)
        return data.model_dump_json(indent=2)

    async def import_memories(
        self,
        entity_id: str,
        payload: Union[str, bytes, Mapping[str, Any]],
        merge: bool = False,
    ) -> int:
        """
        Import memories from an exported document.

        With ``merge`` the current memories are kept and only records with
        unseen ids are appended; otherwise the memory list is replaced.
        Nothing is cached unless the result was persisted.

        Args:
            entity_id: Entity identifier
            payload: JSON text/bytes or already-parsed mapping
            merge: Merge instead of replace

        Returns:
            Number of memories taken into the store

        Raises:
            FormatError: If the payload has no valid ``memories`` list
            StorageError: If the result could not be persisted
        """
        incoming = parse_import_payload(payload)

        async with self._lock(entity_id):
            current = await self.load(entity_id)

            if merge:
                seen = current.ids()
                added = []
                for record in incoming:
                    if record.id in seen:
                        continue
                    seen.add(record.id)
                    added.append(record)
                memories = [*current.memories, *added]
                count = len(added)
            else:
                memories = incoming
                count = len(incoming)

            await self._commit(entity_id, current.model_copy(update={"memories": memories}))

        logger.info("Imported %d memories for %s (merge=%s)", count, entity_id, merge)
        return count

    def invalidate(self, entity_id: str) -> None:
        """Drop one entity from the cache."""
        self._cache.pop(entity_id, None)

    def invalidate_all(self) -> None:
        """Drop every cached entity."""
        self._cache.clear()

    def list_entities(self) -> List[str]:
        """Keys of all persisted stores."""
        return self.backend.keys()


def parse_import_payload(payload: Union[str, bytes, Mapping[str, Any]]) -> List[MemoryRecord]:
    """
    Validate an import document and return its memories.

    Raises:
        FormatError: On invalid JSON, a missing/non-list ``memories`` field,
            an invalid memory record, or duplicate ids
    """
    if isinstance(payload, (str, bytes, bytearray)):
        try:
            document = json.loads(payload)
        except ValueError as e:
            raise FormatError(f"Invalid memory file format: {e}") from e
    else:
        document = payload

    if not isinstance(document, Mapping) or not isinstance(document.get("memories"), list):
        raise FormatError("Invalid memory file format: expected a 'memories' list")

    records = []
    seen = set()
    for index, item in enumerate(document["memories"]):
        try:
            record = MemoryRecord.model_validate(item)
        except ValidationError as e:
            raise FormatError(f"Invalid memory at index {index}: {e}") from e

        if record.id in seen:
            raise FormatError(f"Duplicate memory id {record.id!r} at index {index}")
        seen.add(record.id)
        records.append(record)

    return records

"""
Pluggable persistence backends for per-entity memory stores.

A backend maps an entity key to one serialized store document:
- read(key) -> bytes or None when nothing is stored
- write(key, data) -> None, raising on failure
- keys() -> stored keys

Backends are synchronous; MemoryStore runs them off the event loop.
"""

import hashlib
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union, runtime_checkable

from .sqlite_store import KVStore


_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9_-]")


def safe_key(key: str) -> str:
    """
    Sanitize an entity identifier for use as a file name.

    Identifiers that needed rewriting get a short blake2b suffix of the
    original so that e.g. ``a/b`` and ``a_b`` land in different files.
    """
    cleaned = _UNSAFE_CHARS.sub("_", key)
    if cleaned == key:
        return key
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=4).hexdigest()
    return f"{cleaned}-{digest}"


@runtime_checkable
class PersistenceBackend(Protocol):
    """Capability required by MemoryStore."""

    def read(self, key: str) -> Optional[bytes]:
        ...

    def write(self, key: str, data: bytes) -> None:
        ...

    def keys(self) -> List[str]:
        ...


class JsonFileBackend:
    """
    One pretty-printed JSON file per entity under a root directory.

    Layout: ``<root>/<safe_key>.json``. Writes go to a temp file in the same
    directory and are moved into place with ``os.replace`` so readers never
    observe a half-written document.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def path_for(self, key: str) -> Path:
        return self.root / f"{safe_key(key)}.json"

    def read(self, key: str) -> Optional[bytes]:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def write(self, key: str, data: bytes) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)

        fd, tmp_name = tempfile.mkstemp(dir=str(self.root), prefix=f".{path.stem}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def keys(self) -> List[str]:
        if not self.root.exists():
            return []
        return sorted(p.stem for p in self.root.glob("*.json"))


class SqliteBackend:
    """Stores each entity document as one row of a KVStore table."""

    TABLE = "memories"

    def __init__(self, db_path: Union[str, Path]):
        self.kv = KVStore(db_path, tables=(self.TABLE,))

    def read(self, key: str) -> Optional[bytes]:
        return self.kv.get(self.TABLE, key)

    def write(self, key: str, data: bytes) -> None:
        self.kv.set(self.TABLE, key, data)

    def keys(self) -> List[str]:
        return self.kv.keys(self.TABLE)

    def close(self) -> None:
        self.kv.close()


class InMemoryBackend:
    """Dict-backed backend for tests and throwaway sessions."""

    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self._data: Dict[str, bytes] = dict(initial or {})
        self._lock = threading.Lock()

    def read(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._data.get(key)

    def write(self, key: str, data: bytes) -> None:
        with self._lock:
            self._data[key] = bytes(data)

    def keys(self) -> List[str]:
        with self._lock:
            return sorted(self._data)

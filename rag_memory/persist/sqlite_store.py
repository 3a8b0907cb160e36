"""
SQLite-backed key-value store for memory persistence.

One table per namespace (default: ``memories``), each row holding:
- key: entity identifier
- value: serialized store document (BLOB)
- ts: last write time
"""

import sqlite3
import threading
import time
from pathlib import Path
from typing import Iterable, List, Optional, Union


DEFAULT_TABLES = ("memories",)


class KVStore:
    """
    File-backed SQLite key-value store.

    Thread-safe with WAL mode; the single connection is shared by worker
    threads (``asyncio.to_thread``) behind a lock.
    """

    def __init__(self, db_path: Union[str, Path], tables: Iterable[str] = DEFAULT_TABLES):
        """
        Initialize KV store at given path.

        Args:
            db_path: Path to SQLite database file
            tables: Table names to create if missing
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.tables = tuple(tables)
        self._lock = threading.Lock()

        self._conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
            timeout=10.0,
        )

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")

        self._init_tables()

    def _init_tables(self) -> None:
        """Create tables if they don't exist."""
        for table in self.tables:
            self._conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL,
                    ts INTEGER NOT NULL
                )
            """)
            self._conn.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_ts
                ON {table}(ts)
            """)

        self._conn.commit()

    def _check_table(self, table: str) -> None:
        if table not in self.tables:
            raise ValueError(f"Unknown table: {table}")

    def set(self, table: str, key: str, value: bytes) -> None:
        """
        Set a key-value pair in the specified table.

        Args:
            table: Table name
            key: String key
            value: Binary value
        """
        self._check_table(table)
        with self._lock:
            self._conn.execute(
                f"INSERT OR REPLACE INTO {table} (key, value, ts) VALUES (?, ?, ?)",
                (key, value, int(time.time()))
            )
            self._conn.commit()

    def get(self, table: str, key: str) -> Optional[bytes]:
        """
        Get value for a key from the specified table.

        Args:
            table: Table name
            key: String key

        Returns:
            Binary value if found, None otherwise
        """
        self._check_table(table)
        with self._lock:
            cursor = self._conn.execute(
                f"SELECT value FROM {table} WHERE key = ?",
                (key,)
            )
            row = cursor.fetchone()
        return bytes(row[0]) if row else None

    def keys(self, table: str) -> List[str]:
        """
        List keys in a table.

        Returns:
            Sorted list of keys
        """
        self._check_table(table)
        with self._lock:
            cursor = self._conn.execute(f"SELECT key FROM {table} ORDER BY key")
            return [row[0] for row in cursor.fetchall()]

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

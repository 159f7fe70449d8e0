"""
Local storage backend.

Keeps every owner's public tree in a single SQLite database. Useful for
tests, offline use, and as a reference for what a homeserver must provide.
"""

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from .backend import NotFound, StorageReadFailure, StorageWriteFailure


class LocalStorage:
    """
    SQLite-backed implementation of the StorageBackend interface.

    Write authorization is not checked here: callers only ever write to and
    delete from their own tree.

    The async methods call sqlite3 directly and block the event loop for the
    duration of each query. Fine for tests and small local stores; use
    HomeserverStorage where the loop must stay responsive.
    """

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        """
        Initialize local storage.

        Args:
            db_path: SQLite database file, or ":memory:"
        """
        if str(db_path) != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.db_path = str(db_path)
        self.db: Optional[sqlite3.Connection] = None
        self._init_database()

    def _init_database(self):
        """Initialize SQLite database"""
        self.db = sqlite3.connect(self.db_path)
        cursor = self.db.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS entries (
                owner TEXT NOT NULL,
                path TEXT NOT NULL,
                body BLOB NOT NULL,
                updated_at TEXT NOT NULL,
                PRIMARY KEY (owner, path)
            )
        """)

        self.db.commit()

    def _cursor(self) -> sqlite3.Cursor:
        if not self.db:
            raise StorageReadFailure("Storage is closed")
        return self.db.cursor()

    async def put(self, owner: str, path: str, body: bytes) -> None:
        """Write an entry, replacing any existing one"""
        timestamp = datetime.now(timezone.utc).isoformat()
        try:
            cursor = self._cursor()
            cursor.execute(
                "INSERT OR REPLACE INTO entries (owner, path, body, updated_at) VALUES (?, ?, ?, ?)",
                (owner, path, bytes(body), timestamp)
            )
            self.db.commit()
        except (sqlite3.Error, StorageReadFailure) as e:
            raise StorageWriteFailure(f"Failed to store {owner}{path}: {e}", path=path) from e

    async def get(self, owner: str, path: str) -> bytes:
        try:
            cursor = self._cursor()
            cursor.execute("SELECT body FROM entries WHERE owner = ? AND path = ?", (owner, path))
            result = cursor.fetchone()
        except sqlite3.Error as e:
            raise StorageReadFailure(f"Failed to read {owner}{path}: {e}", path=path) from e

        if result is None:
            raise NotFound(f"No entry at {owner}{path}", path=path)
        return bytes(result[0])

    async def list(self, owner: str, prefix: str) -> List[str]:
        """Paths under prefix in the owner's tree, sorted"""
        try:
            cursor = self._cursor()
            cursor.execute(
                "SELECT path FROM entries WHERE owner = ? AND substr(path, 1, ?) = ? ORDER BY path",
                (owner, len(prefix), prefix)
            )
            return [row[0] for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StorageReadFailure(f"Failed to list {owner}{prefix}: {e}", path=prefix) from e

    async def delete(self, owner: str, path: str) -> None:
        try:
            cursor = self._cursor()
            cursor.execute("DELETE FROM entries WHERE owner = ? AND path = ?", (owner, path))
            self.db.commit()
        except (sqlite3.Error, StorageReadFailure) as e:
            raise StorageWriteFailure(f"Failed to delete {owner}{path}: {e}", path=path) from e

        if cursor.rowcount == 0:
            raise NotFound(f"No entry at {owner}{path}", path=path)

    def close(self):
        """Close database connection"""
        if self.db:
            self.db.close()
            self.db = None

"""
Collection store using SQLite.

Stores image bytes and captions in a single database file. This is the
local Collection Store: the source of truth for
- Item identity (opaque id, unique per store)
- Caption text
- Image bytes and content type
- Timestamps

Items keep the order in which they were added.
"""

import logging
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Optional

from .errors import StoreError
from .types import Item, utc_now, validate_id

logger = logging.getLogger(__name__)

DATABASE_FILENAME = "images.db"


class SQLiteCollectionStore:
    """
    SQLite-backed store for image items.

    Safe to share between threads: every statement runs under one lock.
    """

    is_local = True

    def __init__(self, db_path: Path):
        """
        Args:
            db_path: Path to SQLite database file
        """
        self._db_path = Path(db_path)
        self._conn: Optional[sqlite3.Connection] = None
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize the SQLite database."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS images (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                filename TEXT NOT NULL,
                content_type TEXT,
                caption TEXT NOT NULL DEFAULT '',
                data BLOB NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        """Run a SELECT under the store lock and fetch all rows."""
        if self._conn is None:
            raise StoreError("Store is closed")
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise StoreError(f"SQLite error: {e}") from e

    def _write(self, sql: str, params: tuple = ()) -> int:
        """Run and commit a write under the store lock. Returns rowcount."""
        if self._conn is None:
            raise StoreError("Store is closed")
        try:
            with self._lock:
                cursor = self._conn.execute(sql, params)
                self._conn.commit()
                return cursor.rowcount
        except sqlite3.Error as e:
            raise StoreError(f"SQLite error: {e}") from e

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> Item:
        return Item(
            id=row["id"],
            filename=row["filename"],
            caption=row["caption"],
            content_type=row["content_type"],
            created=row["created_at"],
            updated=row["updated_at"],
        )

    # -------------------------------------------------------------------------
    # Write Operations
    # -------------------------------------------------------------------------

    def add(
        self,
        filename: str,
        data: bytes,
        *,
        caption: str = "",
        content_type: Optional[str] = None,
        id: Optional[str] = None,
    ) -> Item:
        """
        Insert a new item.

        Args:
            filename: Original image file name
            data: Image bytes
            caption: Initial caption (stored trimmed)
            content_type: MIME type, if known
            id: Explicit identifier; generated when omitted

        Returns:
            The stored Item

        Raises:
            ValueError: if the id is invalid or already in use
        """
        item_id = id or uuid.uuid4().hex
        validate_id(item_id)
        if self.exists(item_id):
            raise ValueError(f"Item already exists: {item_id}")
        now = utc_now()
        caption = (caption or "").strip()
        self._write("""
            INSERT INTO images (id, filename, content_type, caption, data, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (item_id, filename, content_type, caption, sqlite3.Binary(data), now, now))
        logger.debug("Added %s (%s)", item_id, filename)
        return Item(
            id=item_id,
            filename=filename,
            caption=caption,
            content_type=content_type,
            created=now,
            updated=now,
        )

    def set_caption(self, id: str, caption: str) -> bool:
        """
        Replace the caption of an existing item.

        Returns:
            True if the item was found and updated, False otherwise
        """
        return self._write("""
            UPDATE images
            SET caption = ?, updated_at = ?
            WHERE id = ?
        """, (caption, utc_now(), id)) > 0

    def delete(self, id: str) -> bool:
        """
        Delete an item.

        Returns:
            True if the item existed and was deleted
        """
        return self._write("DELETE FROM images WHERE id = ?", (id,)) > 0

    def clear(self) -> int:
        """Delete all items. Returns the number deleted."""
        return self._write("DELETE FROM images")

    # -------------------------------------------------------------------------
    # Read Operations
    # -------------------------------------------------------------------------

    def get_all(self) -> list[Item]:
        """All items in insertion order (no image bytes)."""
        rows = self._query("""
            SELECT id, filename, content_type, caption, created_at, updated_at
            FROM images
            ORDER BY seq
        """)
        return [self._row_to_item(row) for row in rows]

    def get(self, id: str) -> Optional[Item]:
        rows = self._query("""
            SELECT id, filename, content_type, caption, created_at, updated_at
            FROM images
            WHERE id = ?
        """, (id,))
        return self._row_to_item(rows[0]) if rows else None

    def get_caption(self, id: str) -> Optional[str]:
        rows = self._query("SELECT caption FROM images WHERE id = ?", (id,))
        return rows[0]["caption"] if rows else None

    def read_bytes(self, id: str) -> bytes:
        """Image bytes for an item.

        Raises:
            KeyError: if the item does not exist
        """
        rows = self._query("SELECT data FROM images WHERE id = ?", (id,))
        if not rows:
            raise KeyError(id)
        return bytes(rows[0]["data"])

    def exists(self, id: str) -> bool:
        return bool(self._query("SELECT 1 FROM images WHERE id = ?", (id,)))

    def count(self) -> int:
        return self._query("SELECT COUNT(*) FROM images")[0][0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __del__(self):
        self.close()

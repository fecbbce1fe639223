"""Async SQLite store for saved stories (WAL mode)."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional, Protocol

import aiosqlite

from favorites.storage.cursor import ResultSet
from favorites.storage.migrations import apply_migrations
from favorites.storage.models import SavedStory

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "data/saved.db"

_SELECT = "SELECT item_id, url, title, time FROM saved_stories"
_ORDER = "ORDER BY CAST(time AS INTEGER) DESC, _id DESC"


class SavedStoriesStore(Protocol):
    """Query / mutate contract the cache manager and exporter rely on."""

    async def query_all(self) -> ResultSet:
        ...

    async def query_by_title(self, title: str) -> ResultSet:
        ...

    async def insert(self, story: SavedStory) -> None:
        ...

    async def delete_by_id(self, item_id: str) -> int:
        ...

    async def delete_by_title(self, title: str) -> int:
        ...

    async def delete_all(self) -> int:
        ...


class SavedStoriesDB:
    """aiosqlite-backed implementation of SavedStoriesStore.

    Usage:
        db = SavedStoriesDB("data/saved.db")
        await db.initialize()
        # ... use db ...
        await db.close()
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Create database, apply migrations, and configure pragmas."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        apply_migrations(self.db_path)

        self._conn = await aiosqlite.connect(self.db_path)
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA synchronous=NORMAL")
        await self._conn.execute("PRAGMA temp_store=MEMORY")

        logger.info("Saved stories database initialized: %s", self.db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    # --- Queries ---

    async def query_all(self) -> ResultSet:
        """All saved stories, most recently saved first."""
        return await self._query(f"{_SELECT} {_ORDER}", ())

    async def query_by_title(self, title: str) -> ResultSet:
        """Saved stories whose title contains ``title`` (case-insensitive)."""
        return await self._query(
            f"{_SELECT} WHERE title LIKE ? ESCAPE '\\' {_ORDER}",
            (_like_pattern(title),),
        )

    async def _query(self, sql: str, params: tuple) -> ResultSet:
        assert self._conn is not None, "Database not initialized"
        async with self._conn.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
            columns = [d[0] for d in cursor.description]
        return ResultSet(columns, rows)

    # --- Mutations ---

    async def insert(self, story: SavedStory) -> None:
        """Insert or refresh a saved story."""
        assert self._conn is not None, "Database not initialized"
        async with self._write_lock:
            await self._conn.execute(
                """INSERT INTO saved_stories (item_id, url, title, time)
                   VALUES (?, ?, ?, ?)
                   ON CONFLICT(item_id) DO UPDATE SET
                       url=excluded.url,
                       title=excluded.title,
                       time=excluded.time""",
                story.to_row(),
            )
            await self._conn.commit()

    async def delete_by_id(self, item_id: str) -> int:
        return await self._delete("DELETE FROM saved_stories WHERE item_id = ?", (item_id,))

    async def delete_by_title(self, title: str) -> int:
        return await self._delete(
            "DELETE FROM saved_stories WHERE title LIKE ? ESCAPE '\\'",
            (_like_pattern(title),),
        )

    async def delete_all(self) -> int:
        return await self._delete("DELETE FROM saved_stories", ())

    async def _delete(self, sql: str, params: tuple) -> int:
        assert self._conn is not None, "Database not initialized"
        async with self._write_lock:
            cursor = await self._conn.execute(sql, params)
            await self._conn.commit()
            deleted = cursor.rowcount
            await cursor.close()
        logger.debug("Deleted %d saved stories", deleted)
        return deleted

    async def count(self) -> int:
        assert self._conn is not None, "Database not initialized"
        async with self._conn.execute("SELECT COUNT(*) FROM saved_stories") as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0


async def query_store(store: SavedStoriesStore, filter: Optional[str]) -> ResultSet:
    """Run the query matching ``filter``: everything when empty, else by title."""
    if not filter:
        return await store.query_all()
    return await store.query_by_title(filter)


async def delete_matching(store: SavedStoriesStore, filter: Optional[str]) -> int:
    """Delete everything when ``filter`` is empty, else by title."""
    if not filter:
        return await store.delete_all()
    return await store.delete_by_title(filter)


def _like_pattern(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"

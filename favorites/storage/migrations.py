"""Version-controlled schema migrations for the saved stories database."""

from __future__ import annotations

import logging
import sqlite3
from typing import List, Tuple

logger = logging.getLogger(__name__)

# Each migration is (version, description, list_of_sql_statements)
MigrationStep = Tuple[int, str, List[str]]

SCHEMA_V1 = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    description TEXT,
    applied_at TEXT DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS saved_stories (
    _id INTEGER PRIMARY KEY AUTOINCREMENT,
    item_id TEXT NOT NULL UNIQUE,
    url TEXT NOT NULL,
    title TEXT,
    time TEXT
);
"""


def _get_migrations() -> List[MigrationStep]:
    """Return ordered list of migrations."""
    return [
        (1, "Initial schema: saved_stories", [SCHEMA_V1]),
        (
            2,
            "Index saved_stories by title and saved time",
            [
                "CREATE INDEX IF NOT EXISTS idx_saved_title ON saved_stories(title);",
                "CREATE INDEX IF NOT EXISTS idx_saved_time ON saved_stories(time);",
            ],
        ),
    ]


def get_current_version(conn: sqlite3.Connection) -> int:
    """Get the current schema version, or 0 if no schema exists."""
    try:
        row = conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        return row[0] if row and row[0] is not None else 0
    except sqlite3.OperationalError:
        return 0


def apply_migrations(db_path: str) -> int:
    """Apply all pending migrations. Returns the final schema version."""
    conn = sqlite3.connect(db_path)
    conn.execute("PRAGMA journal_mode=WAL")

    current = get_current_version(conn)
    applied = 0

    for version, description, statements in _get_migrations():
        if version <= current:
            continue

        logger.info("Applying migration v%d: %s", version, description)
        try:
            for sql in statements:
                conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                (version, description),
            )
            conn.commit()
            applied += 1
        except Exception:
            conn.rollback()
            logger.exception("Migration v%d failed", version)
            raise

    final = get_current_version(conn)
    conn.close()

    if applied:
        logger.info("Applied %d migration(s). Schema at v%d", applied, final)
    else:
        logger.debug("Schema up to date at v%d", final)

    return final

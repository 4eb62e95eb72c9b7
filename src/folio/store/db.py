"""SQLite storage for pages, blocks and trash.

One database file under the data directory holds every owner's pages.
Connections are thread-local; the async editor reaches the store through
worker threads, so each thread gets its own connection.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator
from uuid import uuid4

from ..settings import resolve_data_dir, settings

logger = logging.getLogger(__name__)

# Thread-local storage for connections
_local = threading.local()

# Schema version for migrations
# v1: pages, blocks, trash
# v2: archived_at on pages, image_caption on blocks
SCHEMA_VERSION = 2


def db_path() -> Path:
    """Get the path to the folio database."""
    return resolve_data_dir() / "folio.db"


def _get_connection() -> sqlite3.Connection:
    """Get a thread-local database connection.

    The connection is reopened when the data directory has moved since it
    was opened (worker threads outlive a test's temp directory).
    """
    path = db_path()
    if getattr(_local, "conn", None) is not None and _local.path != path:
        close_connection()
    if getattr(_local, "conn", None) is None:
        path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        if settings.db_wal:
            conn.execute("PRAGMA journal_mode = WAL")
        _local.conn = conn
        _local.path = path
        _local.initialized = False
    return _local.conn


def close_connection() -> None:
    """Close the thread-local database connection.

    This is primarily used for testing to ensure clean state between tests.
    """
    conn = getattr(_local, "conn", None)
    if conn is not None:
        try:
            conn.close()
        except sqlite3.Error as e:
            logger.debug("Error closing folio db connection (non-critical): %s", e)
        _local.conn = None
        _local.initialized = False


@contextmanager
def _transaction() -> Iterator[sqlite3.Connection]:
    """Context manager for database transactions."""
    conn = _get_connection()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise


def _now_iso() -> str:
    """Get current UTC timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    """Generate a new canonical id."""
    return str(uuid4())


def _init_schema(conn: sqlite3.Connection) -> None:
    """Create the schema, or migrate an older one forward."""
    cursor = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name='schema_version'"
    )
    if cursor.fetchone() is not None:
        row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
        if row is not None:
            if row[0] < SCHEMA_VERSION:
                _run_schema_migrations(conn, row[0])
            return

    conn.executescript("""
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY
        );

        CREATE TABLE IF NOT EXISTS pages (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            title TEXT NOT NULL DEFAULT 'Untitled',
            icon TEXT,
            banner_url TEXT,
            parent_page_id TEXT REFERENCES pages(id) ON DELETE SET NULL,
            is_archived INTEGER NOT NULL DEFAULT 0,
            archived_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_pages_owner ON pages(owner_id, is_archived);

        CREATE TABLE IF NOT EXISTS blocks (
            id TEXT PRIMARY KEY,
            page_id TEXT NOT NULL REFERENCES pages(id) ON DELETE CASCADE,
            parent_block_id TEXT REFERENCES blocks(id) ON DELETE CASCADE,
            type TEXT NOT NULL DEFAULT 'paragraph',
            content TEXT NOT NULL DEFAULT '',
            is_completed INTEGER NOT NULL DEFAULT 0,
            order_index INTEGER NOT NULL DEFAULT 0,
            code_language TEXT,
            image_url TEXT,
            image_caption TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_blocks_page ON blocks(page_id, order_index);

        -- A trashed page keeps its row (archived) plus a snapshot here
        CREATE TABLE IF NOT EXISTS trash (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            page_id TEXT NOT NULL REFERENCES pages(id) ON DELETE CASCADE,
            page_data TEXT NOT NULL,
            deleted_at TEXT NOT NULL,
            expires_at TEXT NOT NULL
        );

        CREATE INDEX IF NOT EXISTS idx_trash_owner ON trash(owner_id);
    """)
    conn.execute("DELETE FROM schema_version")
    conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))


def _run_schema_migrations(conn: sqlite3.Connection, current_version: int) -> None:
    if current_version < 2:
        _migrate_v1_to_v2(conn)
    conn.execute("UPDATE schema_version SET version = ?", (SCHEMA_VERSION,))
    logger.info("Migrated folio schema from v%s to v%s", current_version, SCHEMA_VERSION)


def _migrate_v1_to_v2(conn: sqlite3.Connection) -> None:
    page_cols = {row["name"] for row in conn.execute("PRAGMA table_info(pages)")}
    if "archived_at" not in page_cols:
        conn.execute("ALTER TABLE pages ADD COLUMN archived_at TEXT")
    block_cols = {row["name"] for row in conn.execute("PRAGMA table_info(blocks)")}
    if "image_caption" not in block_cols:
        conn.execute("ALTER TABLE blocks ADD COLUMN image_caption TEXT")


def init_db() -> None:
    """Initialize the database and run migrations (once per connection)."""
    _get_connection()
    if getattr(_local, "initialized", False):
        return
    with _transaction() as conn:
        _init_schema(conn)
    _local.initialized = True

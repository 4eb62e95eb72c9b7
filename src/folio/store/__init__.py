"""SQLite-backed persistence for pages, blocks and trash."""

from .db import close_connection, init_db

__all__ = ["close_connection", "init_db"]

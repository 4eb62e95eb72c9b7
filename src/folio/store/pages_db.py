"""Database operations for pages, trash and search.

Every operation is scoped to an owner id; a page that exists but belongs
to someone else is reported exactly like a missing one.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any

from ..editor.models import Block, Page, TrashRecord
from ..errors import NotFoundError, ValidationError
from ..settings import settings
from .db import _get_connection, _new_id, _now_iso, _transaction, init_db

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Untitled"

# Page fields a caller may change through update_page
PAGE_UPDATABLE_FIELDS = frozenset({"title", "icon", "banner_url", "parent_page_id"})

_PAGE_COLUMNS = (
    "id, owner_id, title, icon, banner_url, parent_page_id, "
    "is_archived, archived_at, created_at, updated_at"
)


def _row_to_page(row: sqlite3.Row) -> Page:
    return Page(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        icon=row["icon"],
        banner_url=row["banner_url"],
        parent_page_id=row["parent_page_id"],
        is_archived=bool(row["is_archived"]),
        archived_at=row["archived_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_trash(row: sqlite3.Row) -> TrashRecord:
    return TrashRecord(
        id=row["id"],
        owner_id=row["owner_id"],
        page_id=row["page_id"],
        page_data=json.loads(row["page_data"]),
        deleted_at=row["deleted_at"],
        expires_at=row["expires_at"],
    )


def require_page(conn: sqlite3.Connection, page_id: str, owner_id: str) -> Page:
    """Load an owned page inside a transaction or raise NotFoundError."""
    row = conn.execute(
        f"SELECT {_PAGE_COLUMNS} FROM pages WHERE id = ? AND owner_id = ?",
        (page_id, owner_id),
    ).fetchone()
    if row is None:
        raise NotFoundError(f"Page not found: {page_id}", resource_type="page", resource_id=page_id)
    return _row_to_page(row)


def touch_page(conn: sqlite3.Connection, page_id: str, now: str | None = None) -> None:
    """Bump a page's updated_at after one of its blocks changed."""
    conn.execute(
        "UPDATE pages SET updated_at = ? WHERE id = ?",
        (now or _now_iso(), page_id),
    )


def _validate_icon(icon: str | None) -> None:
    if icon is not None and len(icon) > 2:
        raise ValidationError("Icon must be a single glyph", field="icon", value=icon)


# =============================================================================
# Page Operations
# =============================================================================


def create_page(
    *,
    owner_id: str,
    title: str | None = None,
    parent_page_id: str | None = None,
    icon: str | None = None,
) -> Page:
    """Create an empty page.

    Args:
        owner_id: Owner of the new page.
        title: Page title; blank titles become "Untitled".
        parent_page_id: Optional parent page (must be owned by the same owner).
        icon: Optional single-glyph icon.

    Returns:
        The created Page.
    """
    init_db()
    _validate_icon(icon)

    page_id = _new_id()
    now = _now_iso()
    title = (title or "").strip() or DEFAULT_TITLE

    with _transaction() as conn:
        if parent_page_id is not None:
            require_page(conn, parent_page_id, owner_id)
        conn.execute(
            """
            INSERT INTO pages
            (id, owner_id, title, icon, parent_page_id, is_archived, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, 0, ?, ?)
        """,
            (page_id, owner_id, title, icon, parent_page_id, now, now),
        )

    logger.debug("Created page %s for owner %s", page_id, owner_id)
    return Page(
        id=page_id,
        title=title,
        owner_id=owner_id,
        icon=icon,
        parent_page_id=parent_page_id,
        created_at=now,
        updated_at=now,
    )


def get_page(page_id: str, *, owner_id: str) -> Page | None:
    """Get a page by ID, archived or not."""
    init_db()
    conn = _get_connection()
    row = conn.execute(
        f"SELECT {_PAGE_COLUMNS} FROM pages WHERE id = ? AND owner_id = ?",
        (page_id, owner_id),
    ).fetchone()
    return _row_to_page(row) if row else None


def list_pages(*, owner_id: str) -> list[Page]:
    """List the owner's non-archived pages, most recently updated first."""
    init_db()
    conn = _get_connection()
    cursor = conn.execute(
        f"""
        SELECT {_PAGE_COLUMNS} FROM pages
        WHERE owner_id = ? AND is_archived = 0
        ORDER BY updated_at DESC, created_at DESC
    """,
        (owner_id,),
    )
    return [_row_to_page(row) for row in cursor.fetchall()]


def update_page(page_id: str, *, owner_id: str, **fields: Any) -> Page:
    """Update page metadata.

    Raises:
        ValidationError: If a field is not updatable or the icon is too long.
        NotFoundError: If the page does not exist for this owner.
    """
    init_db()
    unknown = set(fields) - PAGE_UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            f"Cannot update page fields: {', '.join(sorted(unknown))}",
            field=sorted(unknown)[0],
        )
    if "icon" in fields:
        _validate_icon(fields["icon"])
    if "title" in fields:
        fields["title"] = (fields["title"] or "").strip() or DEFAULT_TITLE

    with _transaction() as conn:
        require_page(conn, page_id, owner_id)
        if fields.get("parent_page_id") is not None:
            if fields["parent_page_id"] == page_id:
                raise ValidationError("A page cannot be its own parent", field="parent_page_id")
            require_page(conn, fields["parent_page_id"], owner_id)

        updates = ["updated_at = ?"]
        params: list[Any] = [_now_iso()]
        for name in sorted(fields):
            updates.append(f"{name} = ?")
            params.append(fields[name])
        params.append(page_id)

        conn.execute(f"UPDATE pages SET {', '.join(updates)} WHERE id = ?", params)
        return require_page(conn, page_id, owner_id)


# =============================================================================
# Trash Operations
# =============================================================================


def move_to_trash(page_id: str, *, owner_id: str) -> TrashRecord:
    """Archive a page and record a snapshot of it in the trash.

    Blocks are left in place so the page can be restored intact.
    """
    init_db()
    now = datetime.now(timezone.utc)
    deleted_at = now.isoformat()
    expires_at = (now + timedelta(days=settings.trash_retention_days)).isoformat()
    trash_id = _new_id()

    with _transaction() as conn:
        page = require_page(conn, page_id, owner_id)
        if page.is_archived:
            raise ValidationError("Page is already in the trash", field="id", value=page_id)

        conn.execute(
            """
            INSERT INTO trash (id, owner_id, page_id, page_data, deleted_at, expires_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """,
            (trash_id, owner_id, page_id, json.dumps(page.to_dict()), deleted_at, expires_at),
        )
        conn.execute(
            "UPDATE pages SET is_archived = 1, archived_at = ? WHERE id = ?",
            (deleted_at, page_id),
        )

    logger.info("Moved page %s to trash (%s)", page_id, trash_id)
    return TrashRecord(
        id=trash_id,
        owner_id=owner_id,
        page_id=page_id,
        page_data=page.to_dict(),
        deleted_at=deleted_at,
        expires_at=expires_at,
    )


def list_trash(*, owner_id: str) -> list[TrashRecord]:
    """List trash records, most recently deleted first."""
    init_db()
    conn = _get_connection()
    cursor = conn.execute(
        """
        SELECT id, owner_id, page_id, page_data, deleted_at, expires_at
        FROM trash WHERE owner_id = ?
        ORDER BY deleted_at DESC
    """,
        (owner_id,),
    )
    return [_row_to_trash(row) for row in cursor.fetchall()]


def _require_trash(conn: sqlite3.Connection, trash_id: str, owner_id: str) -> TrashRecord:
    row = conn.execute(
        """
        SELECT id, owner_id, page_id, page_data, deleted_at, expires_at
        FROM trash WHERE id = ? AND owner_id = ?
    """,
        (trash_id, owner_id),
    ).fetchone()
    if row is None:
        raise NotFoundError(
            f"Trash record not found: {trash_id}", resource_type="trash", resource_id=trash_id
        )
    return _row_to_trash(row)


def restore_from_trash(trash_id: str, *, owner_id: str) -> Page:
    """Un-archive a trashed page and drop its trash record."""
    init_db()
    with _transaction() as conn:
        record = _require_trash(conn, trash_id, owner_id)
        conn.execute(
            "UPDATE pages SET is_archived = 0, archived_at = NULL, updated_at = ? WHERE id = ?",
            (_now_iso(), record.page_id),
        )
        conn.execute("DELETE FROM trash WHERE id = ?", (trash_id,))
        page = require_page(conn, record.page_id, owner_id)

    logger.info("Restored page %s from trash", record.page_id)
    return page


def delete_permanently(trash_id: str, *, owner_id: str) -> None:
    """Delete a trashed page and all of its blocks."""
    init_db()
    with _transaction() as conn:
        record = _require_trash(conn, trash_id, owner_id)
        conn.execute("DELETE FROM trash WHERE id = ?", (trash_id,))
        conn.execute("DELETE FROM blocks WHERE page_id = ?", (record.page_id,))
        conn.execute("DELETE FROM pages WHERE id = ?", (record.page_id,))

    logger.info("Permanently deleted page %s", record.page_id)


# =============================================================================
# Search
# =============================================================================


def _like_pattern(query: str) -> str:
    escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def search(query: str, *, owner_id: str, limit: int = 50) -> dict[str, list[Any]]:
    """Case-insensitive substring search over the owner's live pages.

    Pages match on title; blocks match on content across every
    non-archived page of the owner.

    Returns:
        ``{"pages": [Page, ...], "blocks": [Block, ...]}``
    """
    init_db()
    query = query.strip()
    if not query:
        return {"pages": [], "blocks": []}

    pattern = _like_pattern(query)
    conn = _get_connection()

    page_rows = conn.execute(
        f"""
        SELECT {_PAGE_COLUMNS} FROM pages
        WHERE owner_id = ? AND is_archived = 0 AND title LIKE ? ESCAPE '\\'
        ORDER BY updated_at DESC
        LIMIT ?
    """,
        (owner_id, pattern, limit),
    ).fetchall()

    block_rows = conn.execute(
        """
        SELECT b.id, b.page_id, b.parent_block_id, b.type, b.content, b.is_completed,
               b.order_index, b.code_language, b.image_url, b.image_caption
        FROM blocks b
        JOIN pages p ON p.id = b.page_id
        WHERE p.owner_id = ? AND p.is_archived = 0 AND b.content LIKE ? ESCAPE '\\'
        ORDER BY p.updated_at DESC, b.order_index
        LIMIT ?
    """,
        (owner_id, pattern, limit),
    ).fetchall()

    return {
        "pages": [_row_to_page(row) for row in page_rows],
        "blocks": [Block.from_dict(dict(row)) for row in block_rows],
    }

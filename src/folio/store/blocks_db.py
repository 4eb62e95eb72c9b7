"""Database operations for blocks.

Blocks are ordered among their siblings (same page, same parent block) by
``order_index``. Every mutation bumps the owning page's ``updated_at``.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Sequence
from typing import Any

from ..editor.models import UPDATABLE_FIELDS, Block, BlockType, coerce_block_type
from ..editor.order_index import apply_order, assign_order, is_dense, renumber
from ..errors import NotFoundError, ValidationError
from .db import _get_connection, _new_id, _now_iso, _transaction, init_db
from .pages_db import require_page, touch_page

logger = logging.getLogger(__name__)

_BLOCK_COLUMNS = (
    "id, page_id, parent_block_id, type, content, is_completed, "
    "order_index, code_language, image_url, image_caption"
)


def _row_to_block(row: sqlite3.Row) -> Block:
    return Block(
        id=row["id"],
        page_id=row["page_id"],
        parent_block_id=row["parent_block_id"],
        type=row["type"],
        content=row["content"],
        is_completed=bool(row["is_completed"]),
        order_index=row["order_index"],
        code_language=row["code_language"],
        image_url=row["image_url"],
        image_caption=row["image_caption"],
    )


def _validate_type(value: BlockType | str) -> BlockType:
    try:
        return coerce_block_type(value)
    except ValueError:
        raise ValidationError(f"Unknown block type: {value}", field="type", value=value) from None


def _require_block(conn: sqlite3.Connection, block_id: str, page_id: str) -> Block:
    row = conn.execute(
        f"SELECT {_BLOCK_COLUMNS} FROM blocks WHERE id = ? AND page_id = ?",
        (block_id, page_id),
    ).fetchone()
    if row is None:
        raise NotFoundError(
            f"Block not found: {block_id}", resource_type="block", resource_id=block_id
        )
    return _row_to_block(row)


def _next_index(conn: sqlite3.Connection, page_id: str, parent_block_id: str | None) -> int:
    cursor = conn.execute(
        "SELECT COALESCE(MAX(order_index), -1) + 1 FROM blocks "
        "WHERE page_id = ? AND parent_block_id IS ?",
        (page_id, parent_block_id),
    )
    return cursor.fetchone()[0]


def _siblings(conn: sqlite3.Connection, page_id: str, parent_block_id: str | None) -> list[Block]:
    cursor = conn.execute(
        f"""
        SELECT {_BLOCK_COLUMNS} FROM blocks
        WHERE page_id = ? AND parent_block_id IS ?
        ORDER BY order_index ASC, created_at ASC
    """,
        (page_id, parent_block_id),
    )
    return [_row_to_block(row) for row in cursor.fetchall()]


def _compact_siblings(conn: sqlite3.Connection, page_id: str, parent_block_id: str | None) -> None:
    """Rewrite a sibling run to 0..n-1 so positions match display order."""
    siblings = _siblings(conn, page_id, parent_block_id)
    if is_dense(siblings):
        return
    renumber(siblings)
    conn.executemany(
        "UPDATE blocks SET order_index = ? WHERE id = ?",
        [(block.order_index, block.id) for block in siblings],
    )


# =============================================================================
# Block CRUD Operations
# =============================================================================


def list_blocks(page_id: str, *, owner_id: str) -> list[Block]:
    """List a page's blocks in display order."""
    init_db()
    conn = _get_connection()
    require_page(conn, page_id, owner_id)
    cursor = conn.execute(
        f"""
        SELECT {_BLOCK_COLUMNS} FROM blocks
        WHERE page_id = ?
        ORDER BY order_index ASC, created_at ASC
    """,
        (page_id,),
    )
    return [_row_to_block(row) for row in cursor.fetchall()]


def get_block(block_id: str, *, owner_id: str) -> Block | None:
    """Get a block by ID if its page belongs to the owner."""
    init_db()
    conn = _get_connection()
    row = conn.execute(
        """
        SELECT b.id, b.page_id, b.parent_block_id, b.type, b.content, b.is_completed,
               b.order_index, b.code_language, b.image_url, b.image_caption
        FROM blocks b JOIN pages p ON p.id = b.page_id
        WHERE b.id = ? AND p.owner_id = ?
    """,
        (block_id, owner_id),
    ).fetchone()
    return _row_to_block(row) if row else None


def _insert_block(
    conn: sqlite3.Connection,
    *,
    page_id: str,
    type: BlockType,
    content: str,
    order_index: int | None,
    parent_block_id: str | None,
    is_completed: bool,
    code_language: str | None,
    image_url: str | None,
    image_caption: str | None,
    now: str,
) -> Block:
    if parent_block_id is not None:
        _require_block(conn, parent_block_id, page_id)

    if order_index is None:
        order_index = _next_index(conn, page_id, parent_block_id)
    else:
        # order_index is a display position: it only means that on a dense run
        _compact_siblings(conn, page_id, parent_block_id)
        order_index = min(order_index, _next_index(conn, page_id, parent_block_id))
        conn.execute(
            "UPDATE blocks SET order_index = order_index + 1 "
            "WHERE page_id = ? AND parent_block_id IS ? AND order_index >= ?",
            (page_id, parent_block_id, order_index),
        )

    block = Block(
        id=_new_id(),
        page_id=page_id,
        type=type,
        content=content,
        order_index=order_index,
        parent_block_id=parent_block_id,
        is_completed=is_completed,
        code_language=code_language,
        image_url=image_url,
        image_caption=image_caption,
    )
    conn.execute(
        """
        INSERT INTO blocks
        (id, page_id, parent_block_id, type, content, is_completed, order_index,
         code_language, image_url, image_caption, created_at, updated_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
    """,
        (
            block.id,
            page_id,
            parent_block_id,
            block.type.value,
            block.content,
            int(block.is_completed),
            order_index,
            code_language,
            image_url,
            image_caption,
            now,
            now,
        ),
    )
    return block


def create_block(
    *,
    page_id: str,
    owner_id: str,
    type: BlockType | str = BlockType.PARAGRAPH,
    content: str = "",
    order_index: int | None = None,
    parent_block_id: str | None = None,
    is_completed: bool = False,
    code_language: str | None = None,
    image_url: str | None = None,
    image_caption: str | None = None,
) -> Block:
    """Create a block.

    Args:
        page_id: Page the block belongs to.
        owner_id: Owner of the page.
        type: Block type.
        content: Initial text.
        order_index: Display position among siblings; later siblings shift
            down by one. Appends when None or past the end.
        parent_block_id: Parent block for nesting, in the same page.

    Returns:
        The created Block with its canonical id.
    """
    init_db()
    block_type = _validate_type(type)
    if order_index is not None and order_index < 0:
        raise ValidationError("order_index must be non-negative", field="order_index", value=order_index)

    now = _now_iso()
    with _transaction() as conn:
        require_page(conn, page_id, owner_id)
        block = _insert_block(
            conn,
            page_id=page_id,
            type=block_type,
            content=content or "",
            order_index=order_index,
            parent_block_id=parent_block_id,
            is_completed=is_completed,
            code_language=code_language,
            image_url=image_url,
            image_caption=image_caption,
            now=now,
        )
        touch_page(conn, page_id, now)

    logger.debug("Created %s block %s on page %s", block.type.value, block.id, page_id)
    return block


def create_blocks(page_id: str, specs: Sequence[dict[str, Any]], *, owner_id: str) -> list[Block]:
    """Append several blocks to the end of a page in one transaction."""
    init_db()
    types = [_validate_type(spec.get("type", BlockType.PARAGRAPH)) for spec in specs]
    now = _now_iso()
    created: list[Block] = []
    with _transaction() as conn:
        require_page(conn, page_id, owner_id)
        for spec, block_type in zip(specs, types):
            created.append(
                _insert_block(
                    conn,
                    page_id=page_id,
                    type=block_type,
                    content=spec.get("content") or "",
                    order_index=None,
                    parent_block_id=None,
                    is_completed=bool(spec.get("is_completed", False)),
                    code_language=spec.get("code_language"),
                    image_url=spec.get("image_url"),
                    image_caption=spec.get("image_caption"),
                    now=now,
                )
            )
        touch_page(conn, page_id, now)
    return created


def update_block(block_id: str, *, page_id: str, owner_id: str, updates: dict[str, Any]) -> Block:
    """Apply a partial update to a block.

    Raises:
        ValidationError: On unknown fields or an unknown block type.
        NotFoundError: If the page or block does not exist for this owner.
    """
    init_db()
    unknown = set(updates) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(
            f"Cannot update block fields: {', '.join(sorted(unknown))}",
            field=sorted(unknown)[0],
        )
    values = dict(updates)
    if "type" in values:
        values["type"] = _validate_type(values["type"]).value
    if "content" in values and values["content"] is None:
        values["content"] = ""
    if "is_completed" in values:
        values["is_completed"] = int(bool(values["is_completed"]))

    now = _now_iso()
    with _transaction() as conn:
        require_page(conn, page_id, owner_id)
        _require_block(conn, block_id, page_id)
        if values:
            sets = ["updated_at = ?"] + [f"{name} = ?" for name in sorted(values)]
            params: list[Any] = [now] + [values[name] for name in sorted(values)]
            params.append(block_id)
            conn.execute(f"UPDATE blocks SET {', '.join(sets)} WHERE id = ?", params)
            touch_page(conn, page_id, now)
        return _require_block(conn, block_id, page_id)


def delete_block(block_id: str, *, page_id: str, owner_id: str) -> None:
    """Delete a block and, through the foreign key, its children.

    The remaining siblings are renumbered so no gap is left behind.
    """
    init_db()
    with _transaction() as conn:
        require_page(conn, page_id, owner_id)
        block = _require_block(conn, block_id, page_id)
        conn.execute("DELETE FROM blocks WHERE id = ?", (block_id,))
        _compact_siblings(conn, page_id, block.parent_block_id)
        touch_page(conn, page_id)
    logger.debug("Deleted block %s from page %s", block_id, page_id)


def reorder_blocks(page_id: str, block_ids: Sequence[str], *, owner_id: str) -> None:
    """Rewrite sibling indices to the submitted order.

    ``block_ids`` is the complete sibling order; each block gets its
    0-based position. Blocks left out keep their old index.

    Raises:
        ValidationError: On duplicates, ids from another page, or ids with
            different parents.
    """
    init_db()
    try:
        order = assign_order(block_ids)
    except ValueError as e:
        raise ValidationError(str(e), field="block_ids") from None
    if not order:
        return

    with _transaction() as conn:
        require_page(conn, page_id, owner_id)
        placeholders = ", ".join("?" for _ in order)
        rows = conn.execute(
            f"SELECT id, parent_block_id FROM blocks WHERE page_id = ? AND id IN ({placeholders})",
            (page_id, *order),
        ).fetchall()

        found = {row["id"] for row in rows}
        foreign = [bid for bid in order if bid not in found]
        if foreign:
            raise ValidationError(
                f"Blocks do not belong to page {page_id}: {', '.join(foreign)}",
                field="block_ids",
                value=foreign[0],
            )
        parents = {row["parent_block_id"] for row in rows}
        if len(parents) > 1:
            raise ValidationError("Reordered blocks must be siblings", field="block_ids")

        siblings = apply_order(_siblings(conn, page_id, parents.pop()), list(order))
        now = _now_iso()
        conn.executemany(
            "UPDATE blocks SET order_index = ?, updated_at = ? WHERE id = ?",
            [(block.order_index, now, block.id) for block in siblings if block.id in order],
        )
        touch_page(conn, page_id, now)

    logger.debug("Reordered %d blocks on page %s", len(order), page_id)

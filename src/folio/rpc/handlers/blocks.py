"""Blocks RPC handlers - block editor operations.

These handlers manage the ordered, typed blocks of a page.
"""

from __future__ import annotations

import logging
from typing import Any

from ...markdown import parse_markdown
from ...store import blocks_db
from ..types import RequestContext
from ._base import require_params, rpc_handler

logger = logging.getLogger(__name__)


# =============================================================================
# Block CRUD Handlers
# =============================================================================


@require_params("page_id")
@rpc_handler("blocks/list")
def handle_blocks_list(ctx: RequestContext, *, page_id: str) -> dict[str, Any]:
    """List a page's blocks ordered by order_index."""
    blocks = blocks_db.list_blocks(page_id, owner_id=ctx.owner_id)
    return {"blocks": [b.to_dict() for b in blocks]}


@require_params("page_id")
@rpc_handler("blocks/create")
def handle_blocks_create(
    ctx: RequestContext,
    *,
    page_id: str,
    type: str = "paragraph",
    content: str = "",
    order_index: int | None = None,
    parent_block_id: str | None = None,
    is_completed: bool = False,
    code_language: str | None = None,
    image_url: str | None = None,
    image_caption: str | None = None,
) -> dict[str, Any]:
    """Create a block.

    Args:
        page_id: Page the block belongs to
        type: Block type (paragraph, heading1, bulletList, ...)
        content: Initial text
        order_index: Position among siblings (appended if None)
        parent_block_id: Parent block ID for nesting

    Returns:
        The canonical id and the created block
    """
    block = blocks_db.create_block(
        page_id=page_id,
        owner_id=ctx.owner_id,
        type=type,
        content=content,
        order_index=order_index,
        parent_block_id=parent_block_id,
        is_completed=is_completed,
        code_language=code_language,
        image_url=image_url,
        image_caption=image_caption,
    )
    return {"id": block.id, "block": block.to_dict()}


@require_params("id", "page_id")
@rpc_handler("blocks/update")
def handle_blocks_update(
    ctx: RequestContext,
    *,
    id: str,
    page_id: str,
    **updates: Any,
) -> dict[str, Any]:
    """Apply a partial update (type, content, is_completed, ...)."""
    block = blocks_db.update_block(id, page_id=page_id, owner_id=ctx.owner_id, updates=updates)
    return {"success": True, "block": block.to_dict()}


@require_params("id", "page_id")
@rpc_handler("blocks/delete")
def handle_blocks_delete(ctx: RequestContext, *, id: str, page_id: str) -> dict[str, Any]:
    blocks_db.delete_block(id, page_id=page_id, owner_id=ctx.owner_id)
    return {"success": True}


@require_params("page_id", "block_ids")
@rpc_handler("blocks/reorder")
def handle_blocks_reorder(
    ctx: RequestContext,
    *,
    page_id: str,
    block_ids: list[str],
) -> dict[str, Any]:
    """Reassign sibling indices from the complete submitted order."""
    if not isinstance(block_ids, list):
        raise ValueError("block_ids must be a list")
    blocks_db.reorder_blocks(page_id, block_ids, owner_id=ctx.owner_id)
    return {"success": True}


# =============================================================================
# Markdown Import
# =============================================================================


@require_params("page_id", "markdown")
@rpc_handler("blocks/import_markdown")
def handle_blocks_import_markdown(
    ctx: RequestContext,
    *,
    page_id: str,
    markdown: str,
) -> dict[str, Any]:
    """Append blocks parsed from Markdown to the end of a page."""
    specs = parse_markdown(markdown)
    created = blocks_db.create_blocks(page_id, specs, owner_id=ctx.owner_id)
    logger.info("Imported %d blocks into page %s", len(created), page_id)
    return {"ids": [b.id for b in created], "count": len(created)}

"""Pages RPC handlers."""

from __future__ import annotations

import logging
from typing import Any

from ...errors import NotFoundError
from ...markdown import render_markdown
from ...store import blocks_db, pages_db
from ..types import RequestContext
from ._base import require_params, rpc_handler

logger = logging.getLogger(__name__)


@rpc_handler("pages/create")
def handle_pages_create(
    ctx: RequestContext,
    *,
    title: str | None = None,
    parent_page_id: str | None = None,
    icon: str | None = None,
) -> dict[str, Any]:
    """Create an empty page; a missing title becomes "Untitled"."""
    page = pages_db.create_page(
        owner_id=ctx.owner_id,
        title=title,
        parent_page_id=parent_page_id,
        icon=icon,
    )
    return {"id": page.id, "page": page.to_dict()}


@require_params("id")
@rpc_handler("pages/get")
def handle_pages_get(ctx: RequestContext, *, id: str) -> dict[str, Any]:
    page = pages_db.get_page(id, owner_id=ctx.owner_id)
    if page is None:
        raise NotFoundError(f"Page not found: {id}", resource_type="page", resource_id=id)
    return {"page": page.to_dict()}


@rpc_handler("pages/list")
def handle_pages_list(ctx: RequestContext) -> dict[str, Any]:
    pages = pages_db.list_pages(owner_id=ctx.owner_id)
    return {"pages": [p.to_dict() for p in pages]}


@require_params("id")
@rpc_handler("pages/update")
def handle_pages_update(ctx: RequestContext, *, id: str, **fields: Any) -> dict[str, Any]:
    """Partial update of title, icon, banner_url or parent_page_id."""
    page = pages_db.update_page(id, owner_id=ctx.owner_id, **fields)
    return {"success": True, "page": page.to_dict()}


@require_params("id")
@rpc_handler("pages/delete")
def handle_pages_delete(ctx: RequestContext, *, id: str) -> dict[str, Any]:
    """Move a page to the trash."""
    record = pages_db.move_to_trash(id, owner_id=ctx.owner_id)
    return {"success": True, "trash_id": record.id}


@require_params("id")
@rpc_handler("pages/markdown")
def handle_pages_markdown(
    ctx: RequestContext,
    *,
    id: str,
    include_title: bool = False,
) -> dict[str, Any]:
    """Export a page's blocks as Markdown."""
    page = pages_db.get_page(id, owner_id=ctx.owner_id)
    if page is None:
        raise NotFoundError(f"Page not found: {id}", resource_type="page", resource_id=id)
    blocks = blocks_db.list_blocks(id, owner_id=ctx.owner_id)
    markdown = render_markdown(blocks, title=page.title if include_title else None)
    return {"markdown": markdown}

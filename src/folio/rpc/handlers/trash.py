"""Trash RPC handlers."""

from __future__ import annotations

from typing import Any

from ...store import pages_db
from ..types import RequestContext
from ._base import require_params, rpc_handler


@rpc_handler("trash/list")
def handle_trash_list(ctx: RequestContext) -> dict[str, Any]:
    records = pages_db.list_trash(owner_id=ctx.owner_id)
    return {"items": [r.to_dict() for r in records]}


@require_params("id")
@rpc_handler("trash/restore")
def handle_trash_restore(ctx: RequestContext, *, id: str) -> dict[str, Any]:
    page = pages_db.restore_from_trash(id, owner_id=ctx.owner_id)
    return {"success": True, "page": page.to_dict()}


@require_params("id")
@rpc_handler("trash/delete")
def handle_trash_delete(ctx: RequestContext, *, id: str) -> dict[str, Any]:
    """Permanently delete a trashed page and its blocks."""
    pages_db.delete_permanently(id, owner_id=ctx.owner_id)
    return {"success": True}

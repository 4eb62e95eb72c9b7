"""Search RPC handler."""

from __future__ import annotations

from typing import Any

from ...store import pages_db
from ..types import RequestContext
from ._base import rpc_handler


@rpc_handler("search/query")
def handle_search_query(ctx: RequestContext, *, query: str = "", limit: int = 50) -> dict[str, Any]:
    """Search page titles and block content across the owner's live pages."""
    results = pages_db.search(query, owner_id=ctx.owner_id, limit=int(limit))
    return {
        "pages": [p.to_dict() for p in results["pages"]],
        "blocks": [b.to_dict() for b in results["blocks"]],
    }

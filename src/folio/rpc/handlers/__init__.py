"""RPC handler registry.

``METHODS`` maps JSON-RPC method names to handlers. Every handler takes a
``RequestContext`` positionally and its params as keywords, so adding a
method is a one-line change.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from .blocks import (
    handle_blocks_create,
    handle_blocks_delete,
    handle_blocks_import_markdown,
    handle_blocks_list,
    handle_blocks_reorder,
    handle_blocks_update,
)
from .pages import (
    handle_pages_create,
    handle_pages_delete,
    handle_pages_get,
    handle_pages_list,
    handle_pages_markdown,
    handle_pages_update,
)
from .search import handle_search_query
from .trash import handle_trash_delete, handle_trash_list, handle_trash_restore

METHODS: dict[str, Callable[..., Any]] = {
    # pages
    "pages/create": handle_pages_create,
    "pages/get": handle_pages_get,
    "pages/list": handle_pages_list,
    "pages/update": handle_pages_update,
    "pages/delete": handle_pages_delete,
    "pages/markdown": handle_pages_markdown,
    # blocks
    "blocks/list": handle_blocks_list,
    "blocks/create": handle_blocks_create,
    "blocks/update": handle_blocks_update,
    "blocks/delete": handle_blocks_delete,
    "blocks/reorder": handle_blocks_reorder,
    "blocks/import_markdown": handle_blocks_import_markdown,
    # trash
    "trash/list": handle_trash_list,
    "trash/restore": handle_trash_restore,
    "trash/delete": handle_trash_delete,
    # search
    "search/query": handle_search_query,
}

__all__ = ["METHODS"]

"""The editor's view of the persistence collaborator.

``PersistenceClient`` is the async interface the collection and page
session talk to. ``LocalPersistence`` satisfies it in-process by running
the sqlite store in worker threads; ``folio.editor.rpc_client`` satisfies
it over HTTP.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import sqlite3
from collections.abc import Callable, Sequence
from typing import Any, Protocol, TypeVar

from ..errors import NotFoundError, PersistenceUnavailableError
from ..markdown import parse_markdown, render_markdown
from ..settings import settings
from ..store import blocks_db, pages_db
from .models import Block, BlockType, Page, TrashRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PersistenceClient(Protocol):
    """Typed procedures of the page store.

    Failures surface as ``NotFoundError``, ``ValidationError``,
    ``StorageError`` or ``PersistenceUnavailableError``. Implementations
    never retry.
    """

    async def create_page(self, *, title: str | None = None, parent_page_id: str | None = None) -> str: ...

    async def get_page(self, page_id: str) -> Page: ...

    async def list_pages(self) -> list[Page]: ...

    async def update_page(self, page_id: str, **fields: Any) -> None: ...

    async def delete_page(self, page_id: str) -> None: ...

    async def list_blocks(self, page_id: str) -> list[Block]: ...

    async def create_block(
        self,
        *,
        page_id: str,
        type: BlockType,
        content: str,
        order_index: int,
        parent_block_id: str | None = None,
    ) -> str: ...

    async def update_block(self, block_id: str, *, page_id: str, updates: dict[str, Any]) -> None: ...

    async def delete_block(self, block_id: str, *, page_id: str) -> None: ...

    async def reorder_blocks(self, page_id: str, block_ids: Sequence[str]) -> None: ...

    async def list_trash(self) -> list[TrashRecord]: ...

    async def restore_trash(self, trash_id: str) -> Page: ...

    async def delete_trash(self, trash_id: str) -> None: ...

    async def search(self, query: str) -> dict[str, list[Any]]: ...

    async def page_markdown(self, page_id: str) -> str: ...

    async def import_markdown(self, page_id: str, markdown: str) -> list[str]: ...


class LocalPersistence:
    """In-process persistence over the sqlite store.

    Store calls are blocking, so each one runs in a worker thread. sqlite
    failures are reported as an unavailable collaborator.
    """

    def __init__(self, owner_id: str | None = None) -> None:
        self.owner_id = owner_id or settings.default_owner

    async def _call(self, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return await asyncio.to_thread(functools.partial(fn, *args, **kwargs))
        except sqlite3.Error as e:
            logger.warning("Store call %s failed: %s", operation, e)
            raise PersistenceUnavailableError(f"Store unavailable: {e}", operation=operation) from e

    # -------------------------------------------------------------------------
    # Pages
    # -------------------------------------------------------------------------

    async def create_page(self, *, title: str | None = None, parent_page_id: str | None = None) -> str:
        page = await self._call(
            "pages/create",
            pages_db.create_page,
            owner_id=self.owner_id,
            title=title,
            parent_page_id=parent_page_id,
        )
        return page.id

    async def get_page(self, page_id: str) -> Page:
        page = await self._call("pages/get", pages_db.get_page, page_id, owner_id=self.owner_id)
        if page is None:
            raise NotFoundError(f"Page not found: {page_id}", resource_type="page", resource_id=page_id)
        return page

    async def list_pages(self) -> list[Page]:
        return await self._call("pages/list", pages_db.list_pages, owner_id=self.owner_id)

    async def update_page(self, page_id: str, **fields: Any) -> None:
        await self._call("pages/update", pages_db.update_page, page_id, owner_id=self.owner_id, **fields)

    async def delete_page(self, page_id: str) -> None:
        await self._call("pages/delete", pages_db.move_to_trash, page_id, owner_id=self.owner_id)

    async def page_markdown(self, page_id: str) -> str:
        blocks = await self.list_blocks(page_id)
        return render_markdown(blocks)

    # -------------------------------------------------------------------------
    # Blocks
    # -------------------------------------------------------------------------

    async def list_blocks(self, page_id: str) -> list[Block]:
        return await self._call("blocks/list", blocks_db.list_blocks, page_id, owner_id=self.owner_id)

    async def create_block(
        self,
        *,
        page_id: str,
        type: BlockType,
        content: str,
        order_index: int,
        parent_block_id: str | None = None,
    ) -> str:
        block = await self._call(
            "blocks/create",
            blocks_db.create_block,
            page_id=page_id,
            owner_id=self.owner_id,
            type=type,
            content=content,
            order_index=order_index,
            parent_block_id=parent_block_id,
        )
        return block.id

    async def update_block(self, block_id: str, *, page_id: str, updates: dict[str, Any]) -> None:
        await self._call(
            "blocks/update",
            blocks_db.update_block,
            block_id,
            page_id=page_id,
            owner_id=self.owner_id,
            updates=updates,
        )

    async def delete_block(self, block_id: str, *, page_id: str) -> None:
        await self._call(
            "blocks/delete", blocks_db.delete_block, block_id, page_id=page_id, owner_id=self.owner_id
        )

    async def reorder_blocks(self, page_id: str, block_ids: Sequence[str]) -> None:
        await self._call(
            "blocks/reorder", blocks_db.reorder_blocks, page_id, list(block_ids), owner_id=self.owner_id
        )

    async def import_markdown(self, page_id: str, markdown: str) -> list[str]:
        created = await self._call(
            "blocks/import_markdown",
            blocks_db.create_blocks,
            page_id,
            parse_markdown(markdown),
            owner_id=self.owner_id,
        )
        return [b.id for b in created]

    # -------------------------------------------------------------------------
    # Trash and search
    # -------------------------------------------------------------------------

    async def list_trash(self) -> list[TrashRecord]:
        return await self._call("trash/list", pages_db.list_trash, owner_id=self.owner_id)

    async def restore_trash(self, trash_id: str) -> Page:
        return await self._call(
            "trash/restore", pages_db.restore_from_trash, trash_id, owner_id=self.owner_id
        )

    async def delete_trash(self, trash_id: str) -> None:
        await self._call("trash/delete", pages_db.delete_permanently, trash_id, owner_id=self.owner_id)

    async def search(self, query: str) -> dict[str, list[Any]]:
        return await self._call("search/query", pages_db.search, query, owner_id=self.owner_id)

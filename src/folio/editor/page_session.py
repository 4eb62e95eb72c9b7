"""Lifecycle of one open page in the editor.

Opening loads the page and its top-level blocks into a ``BlockCollection``.
A page that cannot be found (never existed, belongs to someone else, or sits
in the trash) leaves the session in the terminal ``NO_PAGE`` state instead
of raising.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from ..errors import FolioError, NotFoundError
from .collection import BlockCollection, ErrorCallback
from .models import Block, Page
from .timers import Scheduler

if TYPE_CHECKING:
    from .persistence import PersistenceClient

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    CLOSED = "closed"
    READY = "ready"
    NO_PAGE = "no_page"


class PageSession:
    """Open page: its metadata, its collection, and the calls around them."""

    def __init__(
        self,
        page_id: str,
        persistence: PersistenceClient,
        *,
        scheduler: Scheduler | None = None,
        on_error: ErrorCallback | None = None,
        quiet_period: float | None = None,
    ) -> None:
        self.page_id = page_id
        self._persistence = persistence
        self._scheduler = scheduler
        self._on_error = on_error
        self._quiet_period = quiet_period
        self.state = SessionState.CLOSED
        self.page: Page | None = None
        self.collection: BlockCollection | None = None

    @property
    def ready(self) -> bool:
        return self.state is SessionState.READY

    async def open(self) -> SessionState:
        """Load the page and its blocks.

        Raises:
            PersistenceUnavailableError: The store could not be reached.
        """
        try:
            page = await self._persistence.get_page(self.page_id)
            if page.is_archived:
                raise NotFoundError(
                    f"Page is in the trash: {self.page_id}",
                    resource_type="page",
                    resource_id=self.page_id,
                )
            blocks = await self._persistence.list_blocks(self.page_id)
        except NotFoundError as exc:
            logger.info("Page %s unavailable: %s", self.page_id, exc.message)
            self._enter_no_page()
            return self.state

        self.page = page
        self.collection = BlockCollection(
            self.page_id,
            _top_level(blocks),
            self._persistence,
            scheduler=self._scheduler,
            on_error=self._on_error,
            quiet_period=self._quiet_period,
        )
        self.state = SessionState.READY
        logger.debug("Opened page %s with %d blocks", self.page_id, len(self.collection))
        return self.state

    async def refresh(self) -> bool:
        """Re-list blocks and reconcile them into the collection.

        Returns:
            True if the collection took the new blocks.
        """
        if not self.ready or self.collection is None:
            return False
        try:
            blocks = await self._persistence.list_blocks(self.page_id)
        except NotFoundError as exc:
            logger.info("Page %s disappeared: %s", self.page_id, exc.message)
            self._enter_no_page()
            return False
        except FolioError as exc:
            self._report("refresh", exc)
            return False
        return self.collection.sync(_top_level(blocks))

    async def rename(self, title: str) -> bool:
        """Set the page title locally, then persist it."""
        if not self.ready or self.page is None:
            return False
        self.page.title = title.strip() or "Untitled"
        try:
            await self._persistence.update_page(self.page_id, title=self.page.title)
        except NotFoundError as exc:
            logger.info("Page %s disappeared: %s", self.page_id, exc.message)
            self._enter_no_page()
            return False
        except FolioError as exc:
            self._report("rename", exc)
            return False
        return True

    async def close(self) -> None:
        """Push buffered edits and wait for in-flight calls."""
        if self.collection is not None:
            self.collection.flush_all()
            await self.collection.drain()
        if self.state is SessionState.READY:
            self.state = SessionState.CLOSED

    def _enter_no_page(self) -> None:
        if self.collection is not None:
            for block_id in self.collection.ids:
                editor = self.collection.editor(block_id)
                if editor is not None:
                    editor.dispose(flush=False)
        self.page = None
        self.collection = None
        self.state = SessionState.NO_PAGE

    def _report(self, operation: str, exc: FolioError) -> None:
        logger.warning("Page %s %s failed: %s", self.page_id, operation, exc.message)
        if self._on_error is not None:
            self._on_error(operation, exc)


def _top_level(blocks: list[Block]) -> list[Block]:
    return [block for block in blocks if block.parent_block_id is None]

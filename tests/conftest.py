from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path
from typing import Any

import pytest

from folio.editor.handles import Caret
from folio.editor.models import Block, BlockType, Page
from folio.editor.order_index import renumber
from folio.errors import NotFoundError

OWNER = "owner-a"


# =============================================================================
# Store isolation
# =============================================================================


@pytest.fixture
def temp_data_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Point the sqlite store at an isolated data directory."""
    data_dir = tmp_path / "folio-data"
    data_dir.mkdir()
    monkeypatch.setenv("FOLIO_DATA_DIR", str(data_dir))

    from folio.store import db

    db.close_connection()

    yield data_dir

    db.close_connection()


@pytest.fixture
def page_id(temp_data_dir: Path) -> str:
    """Create an empty page for OWNER and return its id."""
    from folio.store import pages_db

    return pages_db.create_page(owner_id=OWNER, title="Test Page").id


# =============================================================================
# Deterministic timers
# =============================================================================


class FakeTimer:
    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Manual clock: timers only fire when the test advances time."""

    def __init__(self) -> None:
        self.now = 0.0
        self._timers: list[FakeTimer] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + delay, callback)
        self._timers.append(timer)
        return timer

    @property
    def pending(self) -> int:
        return sum(1 for t in self._timers if not t.cancelled)

    def advance(self, seconds: float) -> None:
        self.now += seconds
        due = sorted(
            (t for t in self._timers if not t.cancelled and t.due <= self.now),
            key=lambda t: t.due,
        )
        for timer in due:
            self._timers.remove(timer)
            timer.callback()
        self._timers = [t for t in self._timers if not t.cancelled]


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


# =============================================================================
# Surfaces
# =============================================================================


class FakeHandle:
    """Focus handle that records every focus request."""

    def __init__(self) -> None:
        self.calls: list[Caret] = []

    def focus(self, caret: Caret) -> None:
        self.calls.append(caret)


# =============================================================================
# In-memory persistence
# =============================================================================


class FakePersistence:
    """In-memory PersistenceClient with call recording and failure injection.

    ``fail(method, exc)`` makes the next call of ``method`` raise ``exc``.
    ``hold_creates()`` makes create_block wait until ``release_creates()``.
    """

    def __init__(self) -> None:
        self.pages: dict[str, Page] = {}
        self.blocks: dict[str, Block] = {}
        self.calls: list[tuple[str, Any]] = []
        self._failures: dict[str, list[Exception]] = {}
        self._gate: asyncio.Event | None = None
        self._next_id = 0

    # -- test controls ---------------------------------------------------------

    def add_page(self, page_id: str = "page-1", title: str = "Page", **kwargs: Any) -> Page:
        page = Page(id=page_id, title=title, owner_id=OWNER, **kwargs)
        self.pages[page_id] = page
        return page

    def add_block(self, block_id: str, page_id: str = "page-1", content: str = "", **kwargs: Any) -> Block:
        order = kwargs.pop("order_index", sum(1 for b in self.blocks.values() if b.page_id == page_id))
        block = Block(id=block_id, page_id=page_id, content=content, order_index=order, **kwargs)
        self.blocks[block_id] = block
        return block

    def fail(self, method: str, exc: Exception) -> None:
        self._failures.setdefault(method, []).append(exc)

    def hold_creates(self) -> None:
        self._gate = asyncio.Event()

    def release_creates(self) -> None:
        assert self._gate is not None
        self._gate.set()

    def calls_to(self, method: str) -> list[Any]:
        return [args for name, args in self.calls if name == method]

    def _record(self, method: str, args: Any) -> None:
        self.calls.append((method, args))
        queued = self._failures.get(method)
        if queued:
            raise queued.pop(0)

    def _siblings(self, page_id: str) -> list[Block]:
        blocks = [b for b in self.blocks.values() if b.page_id == page_id]
        return sorted(blocks, key=lambda b: b.order_index)

    def _new_id(self) -> str:
        self._next_id += 1
        return f"blk-{self._next_id}"

    # -- PersistenceClient -----------------------------------------------------

    async def get_page(self, page_id: str) -> Page:
        self._record("get_page", page_id)
        if page_id not in self.pages:
            raise NotFoundError("Page not found", resource_type="page", resource_id=page_id)
        return self.pages[page_id]

    async def update_page(self, page_id: str, **fields: Any) -> None:
        self._record("update_page", (page_id, fields))
        if page_id not in self.pages:
            raise NotFoundError("Page not found", resource_type="page", resource_id=page_id)
        for name, value in fields.items():
            setattr(self.pages[page_id], name, value)

    async def list_blocks(self, page_id: str) -> list[Block]:
        self._record("list_blocks", page_id)
        if page_id not in self.pages:
            raise NotFoundError("Page not found", resource_type="page", resource_id=page_id)
        return self._siblings(page_id)

    async def create_block(
        self,
        *,
        page_id: str,
        type: BlockType,
        content: str,
        order_index: int,
        parent_block_id: str | None = None,
    ) -> str:
        self._record("create_block", {"page_id": page_id, "type": type, "order_index": order_index})
        if self._gate is not None:
            await self._gate.wait()
        block_id = self._new_id()
        block = Block(id=block_id, page_id=page_id, type=type, content=content)
        # Same contract as the store: order_index is a display position
        siblings = self._siblings(page_id)
        siblings.insert(min(order_index, len(siblings)), block)
        renumber(siblings)
        self.blocks[block_id] = block
        return block_id

    async def update_block(self, block_id: str, *, page_id: str, updates: dict[str, Any]) -> None:
        self._record("update_block", (block_id, dict(updates)))
        if block_id not in self.blocks:
            raise NotFoundError("Block not found", resource_type="block", resource_id=block_id)
        self.blocks[block_id] = self.blocks[block_id].merged(updates)

    async def delete_block(self, block_id: str, *, page_id: str) -> None:
        self._record("delete_block", block_id)
        self.blocks.pop(block_id, None)
        renumber(self._siblings(page_id))

    async def reorder_blocks(self, page_id: str, block_ids: Sequence[str]) -> None:
        self._record("reorder_blocks", list(block_ids))
        for position, block_id in enumerate(block_ids):
            if block_id in self.blocks:
                self.blocks[block_id].order_index = position


@pytest.fixture
def persistence() -> FakePersistence:
    return FakePersistence()

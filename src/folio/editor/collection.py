"""The authoritative ordered block list of one page.

Local state changes first and synchronously; the persistence collaborator
is told afterwards. ``change``, ``delete`` and ``reorder`` fire their calls
as tracked background tasks and never roll back. ``add_after`` awaits the
create call because the placeholder it inserts has to be swapped for the
canonical id, and it is the one operation that rolls back on failure.

Failures from the collaborator stop here: they are logged, stored in
``last_error`` and passed to ``on_error``. Nothing is raised into key or
input handlers.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from ..errors import FolioError, StorageError
from .edit_state import BlockEditState, KeyAction, KeyOutcome
from .handles import Caret, FocusHandle, HandleRegistry
from .models import UPDATABLE_FIELDS, Block, BlockType
from .order_index import move_item, renumber
from .reconcile import ReconcileAction
from .timers import AsyncioScheduler, Scheduler

if TYPE_CHECKING:
    from .persistence import PersistenceClient

logger = logging.getLogger(__name__)

PLACEHOLDER_PREFIX = "tmp-"

ErrorCallback = Callable[[str, FolioError], None]


class EntryState(str, Enum):
    PENDING = "pending"        # placeholder id, create in flight
    COMMITTED = "committed"    # canonical id
    DELETED = "deleted"        # removed locally


@dataclass
class BlockEntry:
    """One slot of the collection."""

    block: Block
    state: EntryState = EntryState.COMMITTED
    # Updates made while the create was in flight, sent once it resolves
    queued_updates: dict[str, Any] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.block.id


def new_placeholder_id() -> str:
    return f"{PLACEHOLDER_PREFIX}{uuid4().hex[:12]}"


def is_placeholder(block_id: str) -> bool:
    return block_id.startswith(PLACEHOLDER_PREFIX)


def _as_folio_error(operation: str, exc: Exception) -> FolioError:
    if isinstance(exc, FolioError):
        return exc
    logger.error("Unexpected failure in block %s", operation, exc_info=exc)
    error = StorageError(f"Unexpected {type(exc).__name__} during {operation}", operation=operation)
    error.__cause__ = exc
    return error


class BlockCollection:
    """Ordered blocks of a page plus their edit states and focus handles."""

    def __init__(
        self,
        page_id: str,
        blocks: Iterable[Block],
        persistence: PersistenceClient,
        *,
        scheduler: Scheduler | None = None,
        on_error: ErrorCallback | None = None,
        quiet_period: float | None = None,
    ) -> None:
        self.page_id = page_id
        self._persistence = persistence
        self._scheduler = scheduler or AsyncioScheduler()
        self._on_error = on_error
        self._quiet_period = quiet_period
        self._entries: list[BlockEntry] = [
            BlockEntry(block) for block in sorted(blocks, key=lambda b: b.order_index)
        ]
        self._editors: dict[str, BlockEditState] = {}
        self._registry = HandleRegistry()
        self._tasks: set[asyncio.Future[Any]] = set()
        self._reorder_deferred = False
        self.last_error: FolioError | None = None

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def blocks(self) -> list[Block]:
        return [entry.block for entry in self._entries]

    @property
    def entries(self) -> list[BlockEntry]:
        return list(self._entries)

    @property
    def ids(self) -> list[str]:
        return [entry.id for entry in self._entries]

    @property
    def registry(self) -> HandleRegistry:
        return self._registry

    def index_of(self, block_id: str) -> int | None:
        for index, entry in enumerate(self._entries):
            if entry.id == block_id:
                return index
        return None

    def get(self, block_id: str) -> Block | None:
        entry = self._find(block_id)
        return entry.block if entry else None

    def editor(self, block_id: str) -> BlockEditState | None:
        return self._editors.get(block_id)

    def has_pending(self) -> bool:
        return any(entry.state is EntryState.PENDING for entry in self._entries)

    def _find(self, block_id: str) -> BlockEntry | None:
        for entry in self._entries:
            if entry.id == block_id:
                return entry
        return None

    def _swap(self, entries: list[BlockEntry]) -> None:
        renumber([entry.block for entry in entries])
        self._entries = entries

    # -------------------------------------------------------------------------
    # Surfaces
    # -------------------------------------------------------------------------

    def mount(self, block_id: str, handle: FocusHandle) -> BlockEditState:
        """Attach a surface to a block: create its edit state, register its handle."""
        entry = self._find(block_id)
        if entry is None:
            raise KeyError(f"Unknown block: {block_id}")
        editor = BlockEditState(
            entry.block,
            commit=self.change,
            scheduler=self._scheduler,
            quiet_period=self._quiet_period,
        )
        self._editors[block_id] = editor
        self._registry.register(block_id, handle)
        return editor

    def unmount(self, block_id: str) -> None:
        """Detach a surface; its pending content is pushed first."""
        editor = self._editors.pop(block_id, None)
        if editor is not None:
            editor.dispose(flush=True)
        self._registry.unregister(block_id)

    def focus(self, block_id: str, caret: Caret = Caret.END) -> bool:
        return self._registry.focus(block_id, caret)

    def flush_all(self) -> None:
        """Push every editor's buffered content now."""
        for editor in list(self._editors.values()):
            editor.flush()

    def handle_key(self, block_id: str, key: str, *, shift: bool = False) -> KeyOutcome:
        """Route a keypress through the block's edit state.

        Enter splits (commit, then add a block after this one) and
        Backspace on an empty block merges back into the previous one.
        """
        editor = self._editors.get(block_id)
        if editor is None:
            return KeyOutcome(KeyAction.INSERT)

        outcome = editor.handle_keydown(key, shift=shift)
        if outcome.action is KeyAction.SPLIT:
            index = self.index_of(editor.block_id)
            if index is not None:
                self._track(asyncio.ensure_future(self.add_after(index)))
        elif outcome.action is KeyAction.MERGE_BACK:
            self.backspace_on_empty(editor.block_id)
        return outcome

    def toggle_completed(self, block_id: str) -> bool | None:
        editor = self._editors.get(block_id)
        if editor is not None:
            return editor.toggle_completed()
        block = self.get(block_id)
        if block is None:
            return None
        self.change(block_id, {"is_completed": not block.is_completed})
        return not block.is_completed

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def add_after(self, index: int, *, type: BlockType = BlockType.PARAGRAPH) -> Block | None:
        """Insert an empty block after ``index`` (-1 inserts at the top).

        Returns:
            The committed block, or None if the create failed or the
            placeholder was deleted before it resolved.
        """
        if not -1 <= index < len(self._entries):
            raise IndexError(f"index {index} out of range for {len(self._entries)} blocks")

        position = index + 1
        temp_id = new_placeholder_id()
        entry = BlockEntry(
            Block(id=temp_id, page_id=self.page_id, type=type, order_index=position),
            state=EntryState.PENDING,
        )
        entries = list(self._entries)
        entries.insert(position, entry)
        self._swap(entries)

        try:
            real_id = await self._persistence.create_block(
                page_id=self.page_id,
                type=type,
                content="",
                order_index=position,
            )
        except Exception as exc:
            if entry.state is not EntryState.DELETED:
                self._remove(temp_id)
            entry.state = EntryState.DELETED
            self._report("create", _as_folio_error("create", exc), temp_id)
            self._maybe_submit_deferred_order()
            return None

        if entry.state is EntryState.DELETED:
            logger.debug("Create for deleted placeholder %s resolved as %s", temp_id, real_id)
            self._spawn("delete", self._persistence.delete_block(real_id, page_id=self.page_id), real_id)
            self._maybe_submit_deferred_order()
            return None

        self._commit_identity(entry, real_id)
        self._maybe_submit_deferred_order()
        return entry.block

    async def append(self, *, type: BlockType = BlockType.PARAGRAPH) -> Block | None:
        return await self.add_after(len(self._entries) - 1, type=type)

    def _commit_identity(self, entry: BlockEntry, real_id: str) -> None:
        temp_id = entry.id
        entry.block = entry.block.with_id(real_id)
        entry.state = EntryState.COMMITTED

        self._registry.rekey(temp_id, real_id)
        editor = self._editors.pop(temp_id, None)
        if editor is not None:
            editor.rekey(real_id)
            self._editors[real_id] = editor

        if entry.queued_updates:
            updates, entry.queued_updates = entry.queued_updates, {}
            self._spawn(
                "update",
                self._persistence.update_block(real_id, page_id=self.page_id, updates=updates),
                real_id,
            )

        self._registry.focus(real_id, Caret.START)

    def change(self, block_id: str, updates: dict[str, Any]) -> bool:
        """Merge updates locally and forward them. Never rolls back."""
        entry = self._find(block_id)
        if entry is None:
            logger.debug("Dropping change for unknown block %s", block_id)
            return False

        accepted = {k: v for k, v in updates.items() if k in UPDATABLE_FIELDS}
        if not accepted:
            return False
        entry.block = entry.block.merged(accepted)

        if entry.state is EntryState.PENDING:
            entry.queued_updates.update(accepted)
            return True

        self._spawn(
            "update",
            self._persistence.update_block(block_id, page_id=self.page_id, updates=accepted),
            block_id,
        )
        return True

    def delete(self, block_id: str) -> bool:
        """Remove a block and move focus to its successor, else its predecessor."""
        index = self.index_of(block_id)
        if index is None:
            return False
        self._remove(block_id)
        if self._entries:
            target = min(index, len(self._entries) - 1)
            self._registry.focus(self._entries[target].id, Caret.END)
        return True

    def backspace_on_empty(self, block_id: str) -> bool:
        """Delete an empty, non-leading block and focus the previous one at its end."""
        index = self.index_of(block_id)
        if not index:
            return False
        editor = self._editors.get(block_id)
        content = editor.buffer if editor is not None else self._entries[index].block.content
        if content != "":
            return False

        previous_id = self._entries[index - 1].id
        self._remove(block_id)
        self._registry.focus(previous_id, Caret.END)
        return True

    def _remove(self, block_id: str) -> None:
        index = self.index_of(block_id)
        if index is None:
            return
        entry = self._entries[index]
        was_pending = entry.state is EntryState.PENDING
        entry.state = EntryState.DELETED
        self._swap(self._entries[:index] + self._entries[index + 1:])

        editor = self._editors.pop(block_id, None)
        if editor is not None:
            editor.dispose(flush=False)
        self._registry.unregister(block_id)

        if was_pending:
            # The delete is sent once the create resolves
            self._maybe_submit_deferred_order()
            return
        self._spawn("delete", self._persistence.delete_block(block_id, page_id=self.page_id), block_id)

    def reorder(self, from_index: int, to_index: int) -> None:
        """Move a block and submit the complete resulting order."""
        self._swap(move_item(self._entries, from_index, to_index))
        if self.has_pending():
            # Placeholder ids mean nothing to the store
            self._reorder_deferred = True
            return
        self._submit_order()

    def _submit_order(self) -> None:
        self._reorder_deferred = False
        self._spawn("reorder", self._persistence.reorder_blocks(self.page_id, self.ids))

    def _maybe_submit_deferred_order(self) -> None:
        if self._reorder_deferred and not self.has_pending():
            self._submit_order()

    # -------------------------------------------------------------------------
    # Reconciliation
    # -------------------------------------------------------------------------

    def sync(self, blocks: Sequence[Block]) -> bool:
        """Replace the list with externally sourced blocks.

        Editors bound to a block that is still present are offered the new
        data and decide for themselves whether to take it. An editor whose
        block vanished is rebound to whatever now occupies its slot, or
        disposed when there is nothing to rebind to.

        Returns:
            False if skipped because a create is still in flight.
        """
        if self.has_pending():
            logger.debug("Skipping sync of page %s while a create is in flight", self.page_id)
            return False

        old_entries = self._entries
        incoming = sorted(blocks, key=lambda b: b.order_index)
        new_entries: list[BlockEntry] = []
        for block in incoming:
            editor = self._editors.get(block.id)
            if editor is not None and editor.receive(block) is ReconcileAction.SUPPRESS:
                # The focused surface keeps its text; so does the list
                local = self.get(block.id)
                new_entries.append(BlockEntry(local or block))
            else:
                new_entries.append(BlockEntry(block))

        incoming_ids = {block.id for block in incoming}
        for old_index, old_entry in enumerate(old_entries):
            old_id = old_entry.id
            if old_id in incoming_ids or old_id not in self._editors:
                continue
            editor = self._editors.pop(old_id)
            slot = new_entries[old_index] if old_index < len(new_entries) else None
            if slot is not None and slot.id not in self._editors:
                editor.receive(slot.block)
                self._editors[slot.id] = editor
                self._registry.rekey(old_id, slot.id)
            else:
                editor.dispose(flush=False)
                self._registry.unregister(old_id)

        self._swap(new_entries)
        return True

    # -------------------------------------------------------------------------
    # Background calls
    # -------------------------------------------------------------------------

    def _spawn(self, operation: str, call: Awaitable[Any], block_id: str | None = None) -> None:
        self._track(asyncio.ensure_future(self._guard(operation, call, block_id)))

    def _track(self, task: asyncio.Future[Any]) -> None:
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guard(self, operation: str, call: Awaitable[Any], block_id: str | None) -> None:
        try:
            await call
        except Exception as exc:
            self._report(operation, _as_folio_error(operation, exc), block_id)

    def _report(self, operation: str, exc: FolioError, block_id: str | None) -> None:
        self.last_error = exc
        logger.warning(
            "Block %s failed on page %s (block %s): %s",
            operation,
            self.page_id,
            block_id,
            exc.message,
        )
        if self._on_error is not None:
            self._on_error(operation, exc)

    async def drain(self) -> None:
        """Wait until every in-flight persistence call has settled."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

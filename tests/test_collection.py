"""Tests for the block collection: optimistic mutations, ids and focus."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from conftest import OWNER, FakeHandle, FakePersistence, FakeScheduler

from folio.editor.collection import BlockCollection, EntryState, is_placeholder
from folio.editor.edit_state import KeyAction
from folio.editor.handles import Caret
from folio.editor.models import Block, BlockType
from folio.editor.persistence import LocalPersistence
from folio.errors import NotFoundError, PersistenceUnavailableError, StorageError
from folio.store import blocks_db

QUIET = 0.3


class Harness:
    """A collection over FakePersistence with recorded error callbacks."""

    def __init__(
        self,
        persistence: FakePersistence,
        scheduler: FakeScheduler,
        contents: dict[str, str] | None = None,
    ) -> None:
        contents = {"a": "A", "b": "B", "c": "C"} if contents is None else contents
        persistence.add_page()
        stored = [persistence.add_block(block_id, content=text) for block_id, text in contents.items()]
        self.persistence = persistence
        self.scheduler = scheduler
        self.errors: list[tuple[str, Any]] = []
        # The collection gets its own copies; the fake keeps the stored ones
        self.collection = BlockCollection(
            "page-1",
            [Block.from_dict(block.to_dict()) for block in stored],
            persistence,
            scheduler=scheduler,
            quiet_period=QUIET,
            on_error=lambda operation, exc: self.errors.append((operation, exc)),
        )

    def mount_all(self) -> dict[str, FakeHandle]:
        handles = {}
        for block_id in self.collection.ids:
            handles[block_id] = FakeHandle()
            self.collection.mount(block_id, handles[block_id])
        return handles


@pytest.fixture
def harness(persistence: FakePersistence, scheduler: FakeScheduler) -> Harness:
    return Harness(persistence, scheduler)


# =============================================================================
# Adding blocks
# =============================================================================


class TestAddAfter:
    """Placeholder insert, canonical id swap, rollback on failure."""

    def test_success_yields_one_block_with_canonical_id(self, harness: Harness) -> None:
        collection = harness.collection

        async def scenario() -> Block | None:
            block = await collection.add_after(0)
            await collection.drain()
            return block

        block = asyncio.run(scenario())

        assert block is not None
        assert block.id == "blk-1"
        assert block.content == ""
        assert collection.ids == ["a", "blk-1", "b", "c"]
        assert [b.order_index for b in collection.blocks] == [0, 1, 2, 3]
        assert not collection.has_pending()
        assert harness.persistence.calls_to("create_block") == [
            {"page_id": "page-1", "type": BlockType.PARAGRAPH, "order_index": 1}
        ]

    def test_new_block_gets_focus_at_start_once_mounted(self, harness: Harness) -> None:
        collection = harness.collection
        asyncio.run(collection.add_after(2))

        handle = FakeHandle()
        collection.mount("blk-1", handle)

        assert handle.calls == [Caret.START]
        assert collection.ids[-1] == "blk-1"

    def test_insert_at_top(self, harness: Harness) -> None:
        collection = harness.collection
        asyncio.run(collection.add_after(-1, type=BlockType.HEADING_1))

        assert collection.ids == ["blk-1", "a", "b", "c"]
        assert collection.get("blk-1").type is BlockType.HEADING_1

    def test_append_to_empty_page(self, persistence: FakePersistence, scheduler: FakeScheduler) -> None:
        harness = Harness(persistence, scheduler, contents={})

        block = asyncio.run(harness.collection.append())

        assert block is not None
        assert harness.collection.ids == ["blk-1"]

    def test_out_of_range(self, harness: Harness) -> None:
        with pytest.raises(IndexError):
            asyncio.run(harness.collection.add_after(3))

    def test_failed_create_rolls_back(self, harness: Harness) -> None:
        collection = harness.collection
        harness.persistence.fail("create_block", PersistenceUnavailableError())

        result = asyncio.run(collection.add_after(1))

        assert result is None
        assert collection.ids == ["a", "b", "c"]
        assert len(collection) == 3
        assert [b.order_index for b in collection.blocks] == [0, 1, 2]
        assert harness.errors[0][0] == "create"
        assert isinstance(collection.last_error, PersistenceUnavailableError)

    def test_unexpected_create_failure_rolls_back(self, harness: Harness) -> None:
        collection = harness.collection
        harness.persistence.fail("create_block", TypeError("'NoneType' object is not subscriptable"))

        result = asyncio.run(collection.add_after(0))

        assert result is None
        assert collection.ids == ["a", "b", "c"]
        assert not collection.has_pending()
        assert isinstance(collection.last_error, StorageError)
        assert isinstance(collection.last_error.__cause__, TypeError)
        assert collection.sync(collection.blocks) is True

    def test_placeholder_visible_while_create_in_flight(self, harness: Harness) -> None:
        collection = harness.collection
        persistence = harness.persistence

        async def scenario() -> list[str]:
            persistence.hold_creates()
            task = asyncio.ensure_future(collection.add_after(0))
            await asyncio.sleep(0)
            during = collection.ids
            persistence.release_creates()
            await task
            return during

        during = asyncio.run(scenario())

        assert len(during) == 4
        assert is_placeholder(during[1])
        assert collection.ids == ["a", "blk-1", "b", "c"]

    def test_edits_during_create_follow_the_canonical_id(self, harness: Harness) -> None:
        collection = harness.collection
        persistence = harness.persistence
        handle = FakeHandle()

        async def scenario() -> str:
            persistence.hold_creates()
            task = asyncio.ensure_future(collection.add_after(0))
            await asyncio.sleep(0)
            temp_id = collection.ids[1]

            editor = collection.mount(temp_id, handle)
            editor.focus()
            editor.handle_input("hi")
            harness.scheduler.advance(QUIET)
            assert collection.entries[1].state is EntryState.PENDING
            assert persistence.calls_to("update_block") == []

            persistence.release_creates()
            await task
            await collection.drain()
            return temp_id

        temp_id = asyncio.run(scenario())

        editor = collection.editor("blk-1")
        assert editor is not None
        assert editor.block_id == "blk-1"
        assert editor.buffer == "hi"
        assert collection.editor(temp_id) is None
        assert "blk-1" in collection.registry
        assert handle.calls == [Caret.START]
        assert persistence.calls_to("update_block") == [("blk-1", {"content": "hi"})]
        assert collection.get("blk-1").content == "hi"

    def test_placeholder_deleted_before_create_resolves(self, harness: Harness) -> None:
        collection = harness.collection
        persistence = harness.persistence

        async def scenario() -> Block | None:
            persistence.hold_creates()
            task = asyncio.ensure_future(collection.add_after(0))
            await asyncio.sleep(0)
            collection.delete(collection.ids[1])
            persistence.release_creates()
            result = await task
            await collection.drain()
            return result

        result = asyncio.run(scenario())

        assert result is None
        assert collection.ids == ["a", "b", "c"]
        assert persistence.calls_to("delete_block") == ["blk-1"]
        assert "blk-1" not in persistence.blocks


# =============================================================================
# Changing and deleting
# =============================================================================


class TestChange:
    """Local merge first, then a background update that never rolls back."""

    def test_change_merges_and_forwards(self, harness: Harness) -> None:
        collection = harness.collection

        async def scenario() -> None:
            collection.change("a", {"content": "x", "order_index": 9})
            await collection.drain()

        asyncio.run(scenario())

        assert collection.get("a").content == "x"
        assert collection.get("a").order_index == 0
        assert harness.persistence.calls_to("update_block") == [("a", {"content": "x"})]

    def test_failed_update_keeps_local_state(self, harness: Harness) -> None:
        collection = harness.collection
        harness.persistence.fail("update_block", NotFoundError("gone", resource_type="block"))

        async def scenario() -> None:
            collection.change("a", {"content": "x"})
            await collection.drain()

        asyncio.run(scenario())

        assert collection.get("a").content == "x"
        assert harness.errors[0][0] == "update"
        assert isinstance(collection.last_error, NotFoundError)

    def test_unexpected_update_failure_is_reported(self, harness: Harness) -> None:
        collection = harness.collection
        harness.persistence.fail("update_block", RuntimeError("boom"))

        async def scenario() -> None:
            collection.change("a", {"content": "x"})
            await collection.drain()

        asyncio.run(scenario())

        assert collection.get("a").content == "x"
        assert harness.errors[0][0] == "update"
        assert isinstance(harness.errors[0][1], StorageError)

    def test_unknown_block_ignored(self, harness: Harness) -> None:
        assert harness.collection.change("missing", {"content": "x"}) is False

    def test_debounced_typing_sends_one_update(self, harness: Harness) -> None:
        collection = harness.collection

        async def scenario() -> None:
            editor = collection.mount("b", FakeHandle())
            editor.focus()
            for text in ["B1", "B12", "B123"]:
                editor.handle_input(text)
                harness.scheduler.advance(0.1)
            harness.scheduler.advance(QUIET)
            await collection.drain()

        asyncio.run(scenario())

        assert harness.persistence.calls_to("update_block") == [("b", {"content": "B123"})]

    def test_unmount_flushes(self, harness: Harness) -> None:
        collection = harness.collection

        async def scenario() -> None:
            editor = collection.mount("a", FakeHandle())
            editor.handle_input("zz")
            collection.unmount("a")
            await collection.drain()

        asyncio.run(scenario())

        assert harness.persistence.calls_to("update_block") == [("a", {"content": "zz"})]
        assert "a" not in collection.registry

    def test_toggle_completed_without_editor(self, harness: Harness) -> None:
        collection = harness.collection

        async def scenario() -> bool | None:
            value = collection.toggle_completed("a")
            await collection.drain()
            return value

        assert asyncio.run(scenario()) is True
        assert collection.get("a").is_completed is True
        assert harness.persistence.calls_to("update_block") == [("a", {"is_completed": True})]


class TestDelete:
    """Removal and where focus goes next."""

    def test_middle_delete_focuses_successor_at_end(self, harness: Harness) -> None:
        collection = harness.collection
        handles = harness.mount_all()

        async def scenario() -> None:
            collection.delete("b")
            await collection.drain()

        asyncio.run(scenario())

        assert collection.ids == ["a", "c"]
        assert handles["c"].calls == [Caret.END]
        assert handles["a"].calls == []
        assert [b.order_index for b in collection.blocks] == [0, 1]
        assert harness.persistence.calls_to("delete_block") == ["b"]

    def test_last_delete_focuses_predecessor(self, harness: Harness) -> None:
        collection = harness.collection
        handles = harness.mount_all()

        async def scenario() -> None:
            collection.delete("c")
            await collection.drain()

        asyncio.run(scenario())

        assert handles["b"].calls == [Caret.END]

    def test_deleting_only_block_focuses_nothing(self, persistence: FakePersistence, scheduler: FakeScheduler) -> None:
        harness = Harness(persistence, scheduler, contents={"only": ""})

        async def scenario() -> bool:
            removed = harness.collection.delete("only")
            await harness.collection.drain()
            return removed

        assert asyncio.run(scenario()) is True
        assert len(harness.collection) == 0
        assert harness.collection.registry.focused is None

    def test_failed_delete_is_not_rolled_back(self, harness: Harness) -> None:
        collection = harness.collection
        harness.persistence.fail("delete_block", PersistenceUnavailableError())

        async def scenario() -> None:
            collection.delete("a")
            await collection.drain()

        asyncio.run(scenario())

        assert collection.ids == ["b", "c"]
        assert harness.errors[0][0] == "delete"


class TestBackspaceOnEmpty:
    """Backspace in an empty block merges back into the previous block."""

    @pytest.fixture
    def harness(self, persistence: FakePersistence, scheduler: FakeScheduler) -> Harness:
        return Harness(persistence, scheduler, contents={"a": "A", "b": "", "c": "C"})

    def test_removes_block_and_focuses_previous_at_end(self, harness: Harness) -> None:
        collection = harness.collection
        handles = harness.mount_all()

        async def scenario() -> Any:
            outcome = collection.handle_key("b", "Backspace")
            await collection.drain()
            return outcome

        outcome = asyncio.run(scenario())

        assert outcome.action is KeyAction.MERGE_BACK
        assert collection.ids == ["a", "c"]
        assert handles["a"].calls == [Caret.END]
        assert harness.persistence.calls_to("delete_block") == ["b"]

    def test_leading_block_is_kept(self, persistence: FakePersistence, scheduler: FakeScheduler) -> None:
        harness = Harness(persistence, scheduler, contents={"a": "", "b": "B"})
        assert harness.collection.backspace_on_empty("a") is False
        assert harness.collection.ids == ["a", "b"]

    def test_non_empty_block_is_kept(self, harness: Harness) -> None:
        assert harness.collection.backspace_on_empty("c") is False
        assert len(harness.collection) == 3


# =============================================================================
# Keys
# =============================================================================


class TestHandleKey:
    """Keypresses routed through the block's edit state."""

    def test_enter_commits_then_adds_block_after(self, harness: Harness) -> None:
        collection = harness.collection

        async def scenario() -> Any:
            editor = collection.mount("a", FakeHandle())
            editor.focus()
            editor.handle_input("Ahoy")
            outcome = collection.handle_key("a", "Enter")
            await collection.drain()
            return outcome

        outcome = asyncio.run(scenario())

        assert outcome.action is KeyAction.SPLIT
        assert collection.ids == ["a", "blk-1", "b", "c"]
        assert [name for name, _ in harness.persistence.calls] == ["update_block", "create_block"]
        assert harness.persistence.calls_to("update_block") == [("a", {"content": "Ahoy"})]

    def test_shortcut_transforms_block(self, persistence: FakePersistence, scheduler: FakeScheduler) -> None:
        harness = Harness(persistence, scheduler, contents={"a": ""})
        collection = harness.collection

        async def scenario() -> Any:
            editor = collection.mount("a", FakeHandle())
            editor.focus()
            editor.handle_input("##")
            outcome = collection.handle_key("a", " ")
            await collection.drain()
            return outcome

        outcome = asyncio.run(scenario())

        assert outcome.action is KeyAction.TRANSFORM
        assert collection.get("a").type is BlockType.HEADING_2
        assert collection.get("a").content == ""
        assert scheduler.pending == 0
        assert persistence.calls_to("update_block") == [
            ("a", {"type": BlockType.HEADING_2, "content": ""})
        ]

    def test_unmounted_block_inserts(self, harness: Harness) -> None:
        assert harness.collection.handle_key("a", "Enter").action is KeyAction.INSERT


# =============================================================================
# Reordering
# =============================================================================


class TestReorder:
    """Moves rewrite indices densely and submit the complete order."""

    def test_move_first_to_last(self, harness: Harness) -> None:
        collection = harness.collection

        async def scenario() -> None:
            collection.reorder(0, 2)
            await collection.drain()

        asyncio.run(scenario())

        assert collection.ids == ["b", "c", "a"]
        assert [b.order_index for b in collection.blocks] == [0, 1, 2]
        assert harness.persistence.calls_to("reorder_blocks") == [["b", "c", "a"]]

    def test_reorder_waits_for_pending_create(self, harness: Harness) -> None:
        collection = harness.collection
        persistence = harness.persistence

        async def scenario() -> None:
            persistence.hold_creates()
            task = asyncio.ensure_future(collection.add_after(2))
            await asyncio.sleep(0)
            collection.reorder(0, 1)
            await asyncio.sleep(0)
            assert persistence.calls_to("reorder_blocks") == []
            persistence.release_creates()
            await task
            await collection.drain()

        asyncio.run(scenario())

        assert persistence.calls_to("reorder_blocks") == [["b", "a", "c", "blk-1"]]
        assert collection.ids == ["b", "a", "c", "blk-1"]

    def test_out_of_range(self, harness: Harness) -> None:
        with pytest.raises(IndexError):
            harness.collection.reorder(0, 5)


# =============================================================================
# Reconciliation
# =============================================================================


class TestSync:
    """Externally sourced block lists against mounted editors."""

    def test_focused_editor_keeps_its_text(self, harness: Harness) -> None:
        collection = harness.collection
        editor_a = collection.mount("a", FakeHandle())
        editor_b = collection.mount("b", FakeHandle())
        editor_a.focus()
        editor_a.handle_input("local")

        incoming = [
            Block(id="a", page_id="page-1", content="remote a", order_index=0),
            Block(id="b", page_id="page-1", content="remote b", order_index=1),
            Block(id="c", page_id="page-1", content="remote c", order_index=2),
        ]
        assert collection.sync(incoming) is True

        assert editor_a.buffer == "local"
        assert collection.get("a").content == "A"
        assert editor_b.buffer == "remote b"
        assert collection.get("b").content == "remote b"

    def test_vanished_block_rebinds_editor_to_its_slot(self, harness: Harness) -> None:
        collection = harness.collection
        editor_b = collection.mount("b", FakeHandle())

        collection.sync([
            Block(id="a", page_id="page-1", content="A", order_index=0),
            Block(id="x", page_id="page-1", content="X", order_index=1),
            Block(id="c", page_id="page-1", content="C", order_index=2),
        ])

        assert collection.ids == ["a", "x", "c"]
        assert editor_b.block_id == "x"
        assert editor_b.buffer == "X"
        assert collection.editor("x") is editor_b
        assert "x" in collection.registry
        assert "b" not in collection.registry

    def test_vanished_block_without_slot_disposes_editor(self, harness: Harness) -> None:
        collection = harness.collection
        editor_c = collection.mount("c", FakeHandle())

        collection.sync([Block(id="a", page_id="page-1", content="A", order_index=0)])

        assert collection.ids == ["a"]
        assert editor_c.disposed
        assert "c" not in collection.registry

    def test_skipped_while_create_in_flight(self, harness: Harness) -> None:
        collection = harness.collection
        persistence = harness.persistence

        async def scenario() -> bool:
            persistence.hold_creates()
            task = asyncio.ensure_future(collection.add_after(0))
            await asyncio.sleep(0)
            synced = collection.sync([])
            persistence.release_creates()
            await task
            return synced

        assert asyncio.run(scenario()) is False
        assert collection.ids == ["a", "blk-1", "b", "c"]


# =============================================================================
# Against the sqlite store
# =============================================================================


def _stored(page_id: str) -> list[str]:
    return [b.content for b in blocks_db.list_blocks(page_id, owner_id=OWNER)]


def store_collection(page_id: str, scheduler: FakeScheduler, contents: list[str]) -> BlockCollection:
    blocks = [
        blocks_db.create_block(page_id=page_id, owner_id=OWNER, content=text) for text in contents
    ]
    return BlockCollection(
        page_id,
        blocks,
        LocalPersistence(owner_id=OWNER),
        scheduler=scheduler,
        quiet_period=QUIET,
    )


class TestStoreOrdering:
    """Local order and stored order agree after structural edits."""

    def test_add_after_following_a_delete(self, page_id: str, scheduler: FakeScheduler) -> None:
        collection = store_collection(page_id, scheduler, ["A", "B", "C", "D"])

        async def scenario() -> None:
            collection.delete(collection.ids[2])
            await collection.drain()
            added = await collection.add_after(2)
            assert added is not None
            collection.change(added.id, {"content": "E"})
            await collection.drain()

        asyncio.run(scenario())

        assert [b.content for b in collection.blocks] == ["A", "B", "D", "E"]
        assert _stored(page_id) == ["A", "B", "D", "E"]

    def test_add_after_then_reorder(self, page_id: str, scheduler: FakeScheduler) -> None:
        collection = store_collection(page_id, scheduler, ["A", "B", "C"])

        async def scenario() -> None:
            added = await collection.add_after(0)
            assert added is not None
            collection.change(added.id, {"content": "X"})
            collection.reorder(1, 3)
            await collection.drain()

        asyncio.run(scenario())

        assert [b.content for b in collection.blocks] == ["A", "B", "C", "X"]
        assert _stored(page_id) == ["A", "B", "C", "X"]
        stored = blocks_db.list_blocks(page_id, owner_id=OWNER)
        assert [b.order_index for b in stored] == [0, 1, 2, 3]
        assert collection.ids == [b.id for b in stored]

    def test_backspace_merge_then_enter(self, page_id: str, scheduler: FakeScheduler) -> None:
        collection = store_collection(page_id, scheduler, ["A", "", "C"])

        async def scenario() -> None:
            assert collection.backspace_on_empty(collection.ids[1])
            await collection.drain()
            await collection.add_after(0)
            await collection.drain()

        asyncio.run(scenario())

        assert [b.content for b in collection.blocks] == ["A", "", "C"]
        assert collection.ids == [b.id for b in blocks_db.list_blocks(page_id, owner_id=OWNER)]

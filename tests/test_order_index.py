"""Tests for dense sibling ordering."""

from __future__ import annotations

import pytest

from folio.editor.models import Block
from folio.editor.order_index import apply_order, assign_order, is_dense, move_item, renumber


def _blocks(*ids: str) -> list[Block]:
    return [Block(id=bid, page_id="p", order_index=i * 10) for i, bid in enumerate(ids)]


class TestAssignOrder:
    """Positional index assignment."""

    def test_permutation_yields_dense_indices(self) -> None:
        """Each id gets its 0-based position."""
        assert assign_order(["c", "a", "b"]) == {"c": 0, "a": 1, "b": 2}

    def test_empty(self) -> None:
        assert assign_order([]) == {}

    def test_duplicate_rejected(self) -> None:
        with pytest.raises(ValueError, match="Duplicate"):
            assign_order(["a", "b", "a"])


class TestApplyOrder:
    """Rewriting indices on block objects."""

    def test_indices_follow_submitted_order(self) -> None:
        blocks = _blocks("a", "b", "c")
        ordered = apply_order(blocks, ["b", "c", "a"])

        assert [b.id for b in ordered] == ["b", "c", "a"]
        assert [b.order_index for b in ordered] == [0, 1, 2]

    def test_partial_submission_leaves_omitted_index(self) -> None:
        """Omitted blocks keep their old index (documented limitation)."""
        blocks = _blocks("a", "b", "c")
        apply_order(blocks, ["c", "a"])

        by_id = {b.id: b.order_index for b in blocks}
        assert by_id == {"c": 0, "a": 1, "b": 10}


class TestMoveItem:
    """Splicing one item to a new position."""

    def test_move_first_to_last(self) -> None:
        assert move_item(["a", "b", "c"], 0, 2) == ["b", "c", "a"]

    def test_move_last_to_first(self) -> None:
        assert move_item(["a", "b", "c"], 2, 0) == ["c", "a", "b"]

    def test_same_position_is_identity(self) -> None:
        assert move_item(["a", "b"], 1, 1) == ["a", "b"]

    def test_input_not_mutated(self) -> None:
        items = ["a", "b", "c"]
        move_item(items, 0, 1)
        assert items == ["a", "b", "c"]

    @pytest.mark.parametrize("src,dst", [(3, 0), (0, 3), (-1, 0)])
    def test_out_of_range(self, src: int, dst: int) -> None:
        with pytest.raises(IndexError):
            move_item(["a", "b", "c"], src, dst)


class TestRenumber:
    def test_renumber_makes_dense(self) -> None:
        blocks = _blocks("a", "b", "c")
        assert not is_dense(blocks)

        renumber(blocks)

        assert [b.order_index for b in blocks] == [0, 1, 2]
        assert is_dense(blocks)

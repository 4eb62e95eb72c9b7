"""Dense sibling ordering.

Sibling blocks carry an integer ``order_index``. Every structural change
rewrites the indices of the affected siblings to ``0..n-1`` in display
order; the reorder protocol always submits the complete sibling order,
never a delta.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

from .models import Block

T = TypeVar("T")


def assign_order(block_ids: Sequence[str]) -> dict[str, int]:
    """Map each id to its 0-based position in ``block_ids``.

    Raises:
        ValueError: If an id appears twice.
    """
    order: dict[str, int] = {}
    for position, block_id in enumerate(block_ids):
        if block_id in order:
            raise ValueError(f"Duplicate block id in order: {block_id}")
        order[block_id] = position
    return order


def apply_order(blocks: Sequence[Block], block_ids: Sequence[str]) -> list[Block]:
    """Set ``order_index`` on ``blocks`` from a submitted id order.

    Blocks whose id is missing from ``block_ids`` keep their old index;
    callers are expected to submit the full sibling set.

    Returns:
        The blocks sorted by their new index.
    """
    order = assign_order(block_ids)
    for block in blocks:
        if block.id in order:
            block.order_index = order[block.id]
    return sorted(blocks, key=lambda b: b.order_index)


def renumber(blocks: Sequence[Block]) -> None:
    """Rewrite ``order_index`` of blocks already in display order."""
    for position, block in enumerate(blocks):
        block.order_index = position


def move_item(items: Sequence[T], from_index: int, to_index: int) -> list[T]:
    """Return a new list with the item at ``from_index`` moved to ``to_index``.

    Raises:
        IndexError: If either index is out of range.
    """
    size = len(items)
    if not 0 <= from_index < size:
        raise IndexError(f"from_index {from_index} out of range for {size} items")
    if not 0 <= to_index < size:
        raise IndexError(f"to_index {to_index} out of range for {size} items")

    result = list(items)
    moved = result.pop(from_index)
    result.insert(to_index, moved)
    return result


def is_dense(blocks: Sequence[Block]) -> bool:
    """True if the blocks' indices are exactly ``0..n-1`` in list order."""
    return [b.order_index for b in blocks] == list(range(len(blocks)))

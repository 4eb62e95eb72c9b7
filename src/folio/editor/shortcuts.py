"""Markdown-style block shortcuts.

Typing a trigger such as ``##`` or ``[]`` into a block and pressing space
turns the block into the matching type. The trigger text is consumed: the
block's content becomes empty and the space is not inserted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from .models import BlockType, heading_type

SPACE = " "

_HEADING_RE = re.compile(r"^(#{1,3})$")

# Checked in order after the heading rule; first match wins.
_TRIGGERS: tuple[tuple[frozenset[str], BlockType], ...] = (
    (frozenset({"-", "*"}), BlockType.BULLET_LIST),
    (frozenset({"1."}), BlockType.NUMBERED_LIST),
    (frozenset({"[]"}), BlockType.TODO),
    (frozenset({">"}), BlockType.QUOTE),
    (frozenset({"```"}), BlockType.CODE),
    (frozenset({"---", "***"}), BlockType.DIVIDER),
)


@dataclass(frozen=True)
class ShortcutTransition:
    """The type change a shortcut produces."""

    type: BlockType
    content: str = ""
    is_completed: bool | None = None

    def as_updates(self) -> dict[str, Any]:
        """Updates to merge into the block."""
        updates: dict[str, Any] = {"type": self.type, "content": self.content}
        if self.is_completed is not None:
            updates["is_completed"] = self.is_completed
        return updates


def match_trigger(text: str) -> BlockType | None:
    """Return the block type whose trigger equals the trimmed text."""
    trimmed = text.strip()
    if not trimmed:
        return None

    heading = _HEADING_RE.match(trimmed)
    if heading:
        return heading_type(len(heading.group(1)))

    for triggers, block_type in _TRIGGERS:
        if trimmed in triggers:
            return block_type
    return None


def resolve_shortcut(text: str, key: str, *, composing: bool = False) -> ShortcutTransition | None:
    """Decide whether a keypress turns the block into another type.

    Args:
        text: The block's text before the key is applied.
        key: The key being pressed.
        composing: Whether an IME composition session is open.

    Returns:
        The transition, or None when the key should be inserted normally.
    """
    if composing or key != SPACE:
        return None

    block_type = match_trigger(text)
    if block_type is None:
        return None
    if block_type is BlockType.TODO:
        return ShortcutTransition(type=block_type, is_completed=False)
    return ShortcutTransition(type=block_type)

"""Data models for the block-based page editor.

This module defines the core data structures: pages, typed blocks and the
trash records a deleted page leaves behind.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any


class BlockType(str, Enum):
    """The closed set of block types."""

    # Text blocks
    PARAGRAPH = "paragraph"
    HEADING_1 = "heading1"
    HEADING_2 = "heading2"
    HEADING_3 = "heading3"

    # List blocks
    BULLET_LIST = "bulletList"
    NUMBERED_LIST = "numberedList"
    TODO = "todo"

    # Special blocks
    QUOTE = "quote"
    CODE = "code"
    DIVIDER = "divider"
    IMAGE = "image"


# Block types with an editable text surface; divider and image keep the
# content field but never take input or shortcuts.
TEXT_TYPES = frozenset({
    BlockType.PARAGRAPH,
    BlockType.HEADING_1,
    BlockType.HEADING_2,
    BlockType.HEADING_3,
    BlockType.BULLET_LIST,
    BlockType.NUMBERED_LIST,
    BlockType.TODO,
    BlockType.QUOTE,
    BlockType.CODE,
})

HEADING_TYPES = (BlockType.HEADING_1, BlockType.HEADING_2, BlockType.HEADING_3)

# Fields a caller may change through an update; id, page and order are
# owned by the collection and the reorder protocol.
UPDATABLE_FIELDS = frozenset({
    "type",
    "content",
    "is_completed",
    "code_language",
    "image_url",
    "image_caption",
})


def coerce_block_type(value: BlockType | str) -> BlockType:
    """Convert a wire string to a BlockType.

    Raises:
        ValueError: If the string is not a known block type.
    """
    if isinstance(value, BlockType):
        return value
    return BlockType(value)


def heading_type(level: int) -> BlockType:
    """Map a heading level 1-3 to its block type."""
    if not 1 <= level <= 3:
        raise ValueError(f"Heading level must be 1-3, got {level}")
    return HEADING_TYPES[level - 1]


@dataclass
class Block:
    """A content block within a page.

    ``content`` is always a string, empty for fresh blocks and for the
    non-text types. ``is_completed`` only means something for to-dos.
    """

    id: str
    page_id: str
    type: BlockType = BlockType.PARAGRAPH
    content: str = ""
    order_index: int = 0
    parent_block_id: str | None = None
    is_completed: bool = False
    code_language: str | None = None
    image_url: str | None = None
    image_caption: str | None = None

    def __post_init__(self) -> None:
        self.type = coerce_block_type(self.type)
        if self.content is None:
            self.content = ""
        self.is_completed = bool(self.is_completed)

    def merged(self, updates: dict[str, Any]) -> Block:
        """Return a copy with ``updates`` applied (unknown keys ignored)."""
        known = {k: v for k, v in updates.items() if k in UPDATABLE_FIELDS}
        return replace(self, **known)

    def with_id(self, block_id: str) -> Block:
        return replace(self, id=block_id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "page_id": self.page_id,
            "parent_block_id": self.parent_block_id,
            "type": self.type.value,
            "content": self.content,
            "is_completed": self.is_completed,
            "order_index": self.order_index,
            "code_language": self.code_language,
            "image_url": self.image_url,
            "image_caption": self.image_caption,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Block:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            page_id=data["page_id"],
            type=coerce_block_type(data.get("type", BlockType.PARAGRAPH)),
            content=data.get("content") or "",
            order_index=int(data.get("order_index", 0)),
            parent_block_id=data.get("parent_block_id"),
            is_completed=bool(data.get("is_completed", False)),
            code_language=data.get("code_language"),
            image_url=data.get("image_url"),
            image_caption=data.get("image_caption"),
        )


@dataclass
class Page:
    """A titled document composed of ordered blocks."""

    id: str
    title: str = "Untitled"
    owner_id: str = ""
    icon: str | None = None
    banner_url: str | None = None
    parent_page_id: str | None = None
    is_archived: bool = False
    archived_at: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {f.name: getattr(self, f.name) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Page:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            title=data.get("title") or "Untitled",
            owner_id=data.get("owner_id", ""),
            icon=data.get("icon"),
            banner_url=data.get("banner_url"),
            parent_page_id=data.get("parent_page_id"),
            is_archived=bool(data.get("is_archived", False)),
            archived_at=data.get("archived_at"),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass
class TrashRecord:
    """A deleted page awaiting restore or permanent deletion."""

    id: str
    owner_id: str
    page_id: str
    page_data: dict[str, Any] = field(default_factory=dict)
    deleted_at: str = ""
    expires_at: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "page_id": self.page_id,
            "page_data": self.page_data,
            "deleted_at": self.deleted_at,
            "expires_at": self.expires_at,
        }

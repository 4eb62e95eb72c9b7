"""Parse Markdown into blocks.

This module converts Markdown text into block data using the mistletoe
library. Blocks carry plain text only: emphasis, links and inline code are
flattened to their text.
"""

from __future__ import annotations

import re
from typing import Any

from mistletoe import Document
from mistletoe.block_token import (
    BlockCode,
    CodeFence,
    Heading,
    List,
    ListItem,
    Paragraph,
    Quote,
    SetextHeading,
    ThematicBreak,
)
from mistletoe.span_token import Image, LineBreak, RawText

from ..editor.models import BlockType, heading_type

_CHECKBOX_RE = re.compile(r"^\[([xX ])\]\s*(.*)$", re.DOTALL)


def parse_markdown(markdown: str) -> list[dict[str, Any]]:
    """Parse Markdown text into block data structures.

    Args:
        markdown: The Markdown text to parse.

    Returns:
        Block data dictionaries in document order, each with ``type`` and
        ``content`` plus type-specific fields, ready for ``create_blocks``.
    """
    doc = Document(markdown)
    blocks: list[dict[str, Any]] = []

    for token in doc.children:
        block_data = _convert_token(token)
        if block_data is None:
            continue
        if isinstance(block_data, list):
            blocks.extend(block_data)
        else:
            blocks.append(block_data)

    return blocks


def _convert_token(token: Any) -> dict[str, Any] | list[dict[str, Any]] | None:
    """Convert a mistletoe token to block data."""
    if isinstance(token, (Heading, SetextHeading)):
        return _convert_heading(token)
    elif isinstance(token, Paragraph):
        return _convert_paragraph(token)
    elif isinstance(token, (BlockCode, CodeFence)):
        return _convert_code(token)
    elif isinstance(token, List):
        return _convert_list(token)
    elif isinstance(token, Quote):
        return _convert_quote(token)
    elif isinstance(token, ThematicBreak):
        return {"type": BlockType.DIVIDER, "content": ""}
    elif hasattr(token, "children") and token.children:
        # Unknown token type - keep its text
        text = _extract_text(token)
        if text.strip():
            return {"type": BlockType.PARAGRAPH, "content": text}
    return None


def _convert_heading(token: Heading | SetextHeading) -> dict[str, Any]:
    """Convert a heading token; levels below 3 collapse to heading3."""
    level = min(token.level, 3)
    return {"type": heading_type(level), "content": _extract_text(token)}


def _convert_paragraph(token: Paragraph) -> dict[str, Any]:
    """Convert a paragraph token (to-do or image when it looks like one)."""
    children = list(token.children or [])
    if len(children) == 1 and isinstance(children[0], Image):
        image = children[0]
        return {
            "type": BlockType.IMAGE,
            "content": "",
            "image_url": image.src,
            "image_caption": _extract_text(image) or None,
        }

    text = _extract_text(token)
    todo = _match_checkbox(text)
    if todo is not None:
        return todo
    return {"type": BlockType.PARAGRAPH, "content": text}


def _convert_code(token: BlockCode | CodeFence) -> dict[str, Any]:
    """Convert a code block token."""
    content = _extract_text(token) if token.children else ""
    result: dict[str, Any] = {"type": BlockType.CODE, "content": content.rstrip("\n")}
    language = getattr(token, "language", None)
    if language:
        result["code_language"] = language
    return result


def _convert_list(token: List) -> list[dict[str, Any]]:
    """Convert a list token into one block per item."""
    is_ordered = token.start is not None
    block_type = BlockType.NUMBERED_LIST if is_ordered else BlockType.BULLET_LIST
    blocks = []

    for item in token.children:
        if not isinstance(item, ListItem):
            continue
        text = "\n".join(
            _extract_text(child) for child in item.children if not isinstance(child, List)
        )
        todo = _match_checkbox(text)
        blocks.append(todo if todo is not None else {"type": block_type, "content": text})

        # Nested lists are flattened into following siblings
        for child in item.children:
            if isinstance(child, List):
                blocks.extend(_convert_list(child))

    return blocks


def _convert_quote(token: Quote) -> dict[str, Any]:
    """Convert a block quote; its paragraphs become lines of one block."""
    lines = [_extract_text(child) for child in token.children]
    return {"type": BlockType.QUOTE, "content": "\n".join(line for line in lines if line)}


def _match_checkbox(text: str) -> dict[str, Any] | None:
    match = _CHECKBOX_RE.match(text)
    if not match:
        return None
    return {
        "type": BlockType.TODO,
        "content": match.group(2),
        "is_completed": match.group(1).lower() == "x",
    }


def _extract_text(token: Any) -> str:
    """Extract plain text from a token."""
    if isinstance(token, RawText):
        return token.content
    elif isinstance(token, LineBreak):
        return "\n"
    elif hasattr(token, "children") and token.children:
        return "".join(_extract_text(child) for child in token.children)
    return ""

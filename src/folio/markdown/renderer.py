"""Render blocks to Markdown.

This module converts Block objects back to Markdown text for export.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from ..editor.models import Block, BlockType


def render_markdown(blocks: Sequence[Block], title: str | None = None) -> str:
    """Render a page's blocks to Markdown.

    Args:
        blocks: Blocks in display order.
        title: Optional page title, rendered as a leading ``#`` heading.

    Returns:
        Markdown text.
    """
    lines: list[str] = []
    if title:
        lines.append(f"# {title}")
        if blocks:
            lines.append("")

    for i, block in enumerate(blocks):
        lines.append(render_block(block))
        if i < len(blocks) - 1:
            lines.append("")

    return "\n".join(lines)


def render_block(block: Block) -> str:
    """Render a single block to Markdown.

    Raises:
        KeyError: If the block type has no renderer.
    """
    return _RENDERERS[block.type](block)


def _render_paragraph(block: Block) -> str:
    return block.content


def _heading(prefix: str) -> Callable[[Block], str]:
    def render(block: Block) -> str:
        return f"{prefix} {block.content}"
    return render


def _render_bullet(block: Block) -> str:
    return f"- {block.content}"


def _render_numbered(block: Block) -> str:
    return f"1. {block.content}"


def _render_todo(block: Block) -> str:
    checkbox = "[x]" if block.is_completed else "[ ]"
    return f"- {checkbox} {block.content}"


def _render_quote(block: Block) -> str:
    lines = block.content.split("\n") or [""]
    return "\n".join(f"> {line}" if line else ">" for line in lines)


def _render_code(block: Block) -> str:
    language = block.code_language or ""
    return f"```{language}\n{block.content}\n```"


def _render_divider(block: Block) -> str:
    return "---"


def _render_image(block: Block) -> str:
    return f"![{block.image_caption or ''}]({block.image_url or ''})"


_RENDERERS: dict[BlockType, Callable[[Block], str]] = {
    BlockType.PARAGRAPH: _render_paragraph,
    BlockType.HEADING_1: _heading("#"),
    BlockType.HEADING_2: _heading("##"),
    BlockType.HEADING_3: _heading("###"),
    BlockType.BULLET_LIST: _render_bullet,
    BlockType.NUMBERED_LIST: _render_numbered,
    BlockType.TODO: _render_todo,
    BlockType.QUOTE: _render_quote,
    BlockType.CODE: _render_code,
    BlockType.DIVIDER: _render_divider,
    BlockType.IMAGE: _render_image,
}

_missing = set(BlockType) - set(_RENDERERS)
if _missing:
    raise RuntimeError(f"No markdown renderer for block types: {sorted(t.value for t in _missing)}")

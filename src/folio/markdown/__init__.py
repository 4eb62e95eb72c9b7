"""Markdown import and export for pages."""

from .parser import parse_markdown
from .renderer import render_block, render_markdown

__all__ = ["parse_markdown", "render_block", "render_markdown"]

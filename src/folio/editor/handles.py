"""Focus handles for mounted block surfaces.

The collection owns one registry per page. A surface registers its handle
when it mounts and unregisters on unmount, so the registry holds exactly
the blocks that are present. Focus requests for a block whose surface has
not mounted yet (a freshly created block) are kept and replayed on
registration.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class Caret(str, Enum):
    START = "start"
    END = "end"


class FocusHandle(Protocol):
    """What a mounted surface exposes to the collection."""

    def focus(self, caret: Caret) -> None: ...


class HandleRegistry:
    """Block id -> focus handle."""

    def __init__(self) -> None:
        self._handles: dict[str, FocusHandle] = {}
        self._pending_focus: tuple[str, Caret] | None = None
        self._focused: str | None = None

    def __contains__(self, block_id: str) -> bool:
        return block_id in self._handles

    def __len__(self) -> int:
        return len(self._handles)

    @property
    def focused(self) -> str | None:
        """Id of the block most recently given focus."""
        return self._focused

    @property
    def pending_focus(self) -> tuple[str, Caret] | None:
        return self._pending_focus

    def register(self, block_id: str, handle: FocusHandle) -> None:
        self._handles[block_id] = handle
        if self._pending_focus and self._pending_focus[0] == block_id:
            _, caret = self._pending_focus
            self._pending_focus = None
            self._apply(block_id, handle, caret)

    def unregister(self, block_id: str) -> None:
        self._handles.pop(block_id, None)
        if self._focused == block_id:
            self._focused = None
        if self._pending_focus and self._pending_focus[0] == block_id:
            self._pending_focus = None

    def rekey(self, old_id: str, new_id: str) -> None:
        """Move a handle from a placeholder id to the canonical id."""
        handle = self._handles.pop(old_id, None)
        if handle is not None:
            self._handles[new_id] = handle
        if self._focused == old_id:
            self._focused = new_id
        if self._pending_focus and self._pending_focus[0] == old_id:
            self._pending_focus = (new_id, self._pending_focus[1])

    def focus(self, block_id: str, caret: Caret = Caret.END) -> bool:
        """Focus a block, or remember the request until it mounts.

        Returns:
            True if a mounted handle was focused now.
        """
        handle = self._handles.get(block_id)
        if handle is None:
            logger.debug("Deferring focus for unmounted block %s", block_id)
            self._pending_focus = (block_id, caret)
            return False
        self._pending_focus = None
        self._apply(block_id, handle, caret)
        return True

    def _apply(self, block_id: str, handle: FocusHandle, caret: Caret) -> None:
        self._focused = block_id
        handle.focus(caret)

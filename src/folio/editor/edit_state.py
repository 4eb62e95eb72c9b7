"""Local edit buffer for a single block surface.

The surface the user types into is decoupled from the authoritative block:
keystrokes land in a local buffer and are pushed to the collection only
after a quiet period. Pushing on every keystroke would re-render the
surface mid-typing, which moves the caret and flickers.

Content pushes are debounced. Structural changes (type transitions,
completion toggles) are committed immediately. While an IME composition
is open nothing is pushed and no shortcut is checked; closing the
composition flushes the buffer at once.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..settings import settings
from .models import TEXT_TYPES, Block, BlockType
from .reconcile import EditEvent, EditPhase, ReconcileAction, next_phase, reconcile
from .shortcuts import ShortcutTransition, resolve_shortcut
from .timers import DebounceTimer, Scheduler

logger = logging.getLogger(__name__)

ENTER = "Enter"
BACKSPACE = "Backspace"

CommitFn = Callable[[str, dict[str, Any]], None]


class KeyAction(str, Enum):
    INSERT = "insert"            # let the surface insert the key
    SOFT_BREAK = "soft_break"    # line break inside the block
    SPLIT = "split"              # create a new block after this one
    TRANSFORM = "transform"      # a shortcut changed the block type
    MERGE_BACK = "merge_back"    # backspace on an empty block


@dataclass(frozen=True)
class KeyOutcome:
    action: KeyAction
    transition: ShortcutTransition | None = None

    @property
    def prevent_default(self) -> bool:
        """Whether the surface must not apply the key itself."""
        return self.action is not KeyAction.INSERT


class BlockEditState:
    """Buffer, debounce timer and composition guard for one block."""

    def __init__(
        self,
        block: Block,
        *,
        commit: CommitFn,
        scheduler: Scheduler,
        quiet_period: float | None = None,
    ) -> None:
        if quiet_period is None:
            quiet_period = settings.debounce_ms / 1000
        self._block_id = block.id
        self._buffer = block.content
        self._type = block.type
        self._is_completed = block.is_completed
        self._commit = commit
        self._timer = DebounceTimer(scheduler, quiet_period)
        self._phase = EditPhase.UNFOCUSED
        self._dirty = False
        self._disposed = False

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def block_id(self) -> str:
        return self._block_id

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def type(self) -> BlockType:
        return self._type

    @property
    def is_completed(self) -> bool:
        return self._is_completed

    @property
    def phase(self) -> EditPhase:
        return self._phase

    @property
    def composing(self) -> bool:
        return self._phase is EditPhase.COMPOSING

    @property
    def dirty(self) -> bool:
        return self._dirty

    @property
    def pending(self) -> bool:
        """Whether a debounced push is waiting for its quiet period."""
        return self._timer.pending

    @property
    def disposed(self) -> bool:
        return self._disposed

    # -------------------------------------------------------------------------
    # Surface events
    # -------------------------------------------------------------------------

    def focus(self) -> None:
        self._transition(EditEvent.FOCUS)

    def blur(self) -> None:
        """Leave the surface; pending content is pushed first."""
        self.flush()
        self._transition(EditEvent.BLUR)

    def handle_input(self, text: str) -> None:
        """Record the surface's full text after an input event."""
        if self._disposed or self._type not in TEXT_TYPES:
            return
        if self._phase is EditPhase.UNFOCUSED:
            self._transition(EditEvent.KEYSTROKE)
        self._buffer = text
        self._dirty = True
        if self.composing:
            return
        self._timer.schedule(self._push)

    def composition_start(self) -> None:
        if self._phase is EditPhase.UNFOCUSED:
            self._transition(EditEvent.FOCUS)
        # An open composition must not be pushed half-way.
        self._timer.cancel()
        self._transition(EditEvent.COMPOSITION_START)

    def composition_end(self, text: str | None = None) -> bool:
        """Close the composition and push the buffer immediately.

        Args:
            text: Final surface text, if the end event carries it.

        Returns:
            True if content was pushed.
        """
        if not self.composing:
            return False
        self._transition(EditEvent.COMPOSITION_END)
        if text is not None and text != self._buffer:
            self._buffer = text
            self._dirty = True
        return self.flush()

    def handle_keydown(self, key: str, *, shift: bool = False) -> KeyOutcome:
        """Classify a keypress before the surface applies it."""
        if self._disposed or self.composing:
            return KeyOutcome(KeyAction.INSERT)
        if self._phase is EditPhase.UNFOCUSED:
            self._transition(EditEvent.KEYSTROKE)

        if key == ENTER:
            if shift:
                return KeyOutcome(KeyAction.SOFT_BREAK)
            self.flush()
            return KeyOutcome(KeyAction.SPLIT)

        if key == BACKSPACE and self._buffer == "":
            return KeyOutcome(KeyAction.MERGE_BACK)

        if self._type not in TEXT_TYPES:
            return KeyOutcome(KeyAction.INSERT)
        transition = resolve_shortcut(self._buffer, key, composing=self.composing)
        if transition is None:
            return KeyOutcome(KeyAction.INSERT)

        # The trigger text is consumed, so any pending push of it is stale.
        self._timer.cancel()
        self._buffer = transition.content
        self._type = transition.type
        if transition.is_completed is not None:
            self._is_completed = transition.is_completed
        self._dirty = False
        self._commit(self._block_id, transition.as_updates())
        return KeyOutcome(KeyAction.TRANSFORM, transition)

    def toggle_completed(self, value: bool | None = None) -> bool:
        """Flip (or set) the to-do checkbox, committing immediately."""
        self._is_completed = (not self._is_completed) if value is None else bool(value)
        self._commit(self._block_id, {"is_completed": self._is_completed})
        return self._is_completed

    # -------------------------------------------------------------------------
    # Pushing
    # -------------------------------------------------------------------------

    def flush(self) -> bool:
        """Push buffered content now, bypassing the quiet period."""
        if self._disposed:
            self._timer.cancel()
            return False
        if self._timer.flush():
            return True
        # Composition keeps the buffer dirty without a timer
        if not self._dirty:
            return False
        self._push()
        return True

    def _push(self) -> None:
        self._dirty = False
        self._commit(self._block_id, {"content": self._buffer})

    # -------------------------------------------------------------------------
    # Identity and reconciliation
    # -------------------------------------------------------------------------

    def receive(self, block: Block) -> ReconcileAction:
        """Offer an externally sourced block to this surface."""
        action = reconcile(self._phase, self._block_id, block.id)
        if action is ReconcileAction.RESET:
            # The old block's pending push must not land on the new one.
            self._timer.cancel()
            self._block_id = block.id
            self._load(block)
        elif action is ReconcileAction.ADOPT:
            self._load(block)
        else:
            logger.debug("Suppressed external update for focused block %s", block.id)
        return action

    def rekey(self, block_id: str) -> None:
        """Swap a placeholder id for the canonical one.

        Same logical block: the buffer, timer and phase are left alone.
        """
        logger.debug("Edit state %s now bound to %s", self._block_id, block_id)
        self._block_id = block_id

    def dispose(self, *, flush: bool = True) -> None:
        """Unmount the surface. Deleted blocks pass ``flush=False``."""
        if flush:
            self.flush()
        else:
            self._timer.cancel()
        self._disposed = True

    def _load(self, block: Block) -> None:
        self._buffer = block.content
        self._type = block.type
        self._is_completed = block.is_completed
        self._dirty = False

    def _transition(self, event: EditEvent) -> None:
        self._phase = next_phase(self._phase, event)

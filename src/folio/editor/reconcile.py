"""Reconciliation between the edit buffer and externally sourced blocks.

Each block surface is in one of three phases. Whether an incoming block
may replace the buffer depends on the phase and on identity:

- a different block id always hard-resets the buffer;
- the same block id replaces it only while the surface is unfocused;
- while editing or composing, same-id updates are suppressed so the local
  user's edits win.

Content equality never matters, only identity.
"""

from __future__ import annotations

import logging
from enum import Enum

logger = logging.getLogger(__name__)


class EditPhase(str, Enum):
    UNFOCUSED = "unfocused"
    EDITING = "editing"
    COMPOSING = "composing"


class EditEvent(str, Enum):
    FOCUS = "focus"
    KEYSTROKE = "keystroke"
    COMPOSITION_START = "composition_start"
    COMPOSITION_END = "composition_end"
    BLUR = "blur"


class ReconcileAction(str, Enum):
    ADOPT = "adopt"          # same block, safe to overwrite the buffer
    SUPPRESS = "suppress"    # same block, local edits win
    RESET = "reset"          # different block, discard the buffer


_TRANSITIONS: dict[tuple[EditPhase, EditEvent], EditPhase] = {
    (EditPhase.UNFOCUSED, EditEvent.FOCUS): EditPhase.EDITING,
    (EditPhase.UNFOCUSED, EditEvent.KEYSTROKE): EditPhase.EDITING,
    (EditPhase.EDITING, EditEvent.COMPOSITION_START): EditPhase.COMPOSING,
    (EditPhase.COMPOSING, EditEvent.COMPOSITION_END): EditPhase.EDITING,
    (EditPhase.EDITING, EditEvent.BLUR): EditPhase.UNFOCUSED,
    # Focus lost mid-composition; the buffer is flushed by the caller.
    (EditPhase.COMPOSING, EditEvent.BLUR): EditPhase.UNFOCUSED,
}


def next_phase(phase: EditPhase, event: EditEvent) -> EditPhase:
    """Apply an event to a phase.

    Events with no transition from the current phase leave it unchanged.
    """
    target = _TRANSITIONS.get((phase, event))
    if target is None:
        logger.debug("No transition for %s in phase %s", event.value, phase.value)
        return phase
    return target


def reconcile(phase: EditPhase, bound_id: str, incoming_id: str) -> ReconcileAction:
    """Decide what an externally sourced block does to the buffer."""
    if incoming_id != bound_id:
        return ReconcileAction.RESET
    if phase is EditPhase.UNFOCUSED:
        return ReconcileAction.ADOPT
    return ReconcileAction.SUPPRESS

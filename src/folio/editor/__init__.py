"""Block model and editing protocol.

Persistence adapters live in ``folio.editor.persistence`` and
``folio.editor.rpc_client`` and are imported from there.
"""

from .collection import BlockCollection, BlockEntry, EntryState
from .edit_state import BlockEditState, KeyAction, KeyOutcome
from .handles import Caret, FocusHandle, HandleRegistry
from .models import Block, BlockType, Page, TrashRecord
from .page_session import PageSession, SessionState
from .reconcile import EditPhase, ReconcileAction
from .shortcuts import ShortcutTransition, resolve_shortcut
from .timers import AsyncioScheduler, DebounceTimer

__all__ = [
    "AsyncioScheduler",
    "Block",
    "BlockCollection",
    "BlockEditState",
    "BlockEntry",
    "BlockType",
    "Caret",
    "DebounceTimer",
    "EditPhase",
    "EntryState",
    "FocusHandle",
    "HandleRegistry",
    "KeyAction",
    "KeyOutcome",
    "Page",
    "PageSession",
    "ReconcileAction",
    "SessionState",
    "ShortcutTransition",
    "TrashRecord",
    "resolve_shortcut",
]

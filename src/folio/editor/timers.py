"""Per-block debounce timers.

A ``DebounceTimer`` is an explicit resource owned by one edit state. It is
trailing-edge only: every ``schedule`` call cancels the previous one and
starts a new quiet period, and there is no maximum wait.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything that can run a callback after a delay in seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


class DebounceTimer:
    """Delay an action until a quiet period has elapsed."""

    def __init__(self, scheduler: Scheduler, delay: float) -> None:
        self._scheduler = scheduler
        self._delay = delay
        self._handle: TimerHandle | None = None
        self._action: Callable[[], None] | None = None

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, action: Callable[[], None]) -> None:
        """(Re)start the quiet period; ``action`` runs when it elapses."""
        self.cancel()
        self._action = action
        self._handle = self._scheduler.call_later(self._delay, self._fire)

    def cancel(self) -> bool:
        """Drop the pending action. Returns True if one was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._handle = None
        self._action = None
        return True

    def flush(self) -> bool:
        """Run the pending action now. Returns True if one was pending."""
        action = self._action
        if not self.cancel() or action is None:
            return False
        action()
        return True

    def _fire(self) -> None:
        action = self._action
        self._handle = None
        self._action = None
        if action is not None:
            action()

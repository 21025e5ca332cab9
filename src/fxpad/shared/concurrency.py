# src/fxpad/shared/concurrency.py
"""
Debouncer - Cancellable Deferred Execution

Coalesces rapid repeated triggers into a single delayed call. Each trigger
cancels the pending call and re-arms the timer with the latest arguments;
cancel() drops the pending call on cleanup and flush() runs it immediately.

Files that USE this module:
- fxpad.application.calculator (debounced lastAmount and history writes)

Files that this module USES:
- None (pure utility implementation)
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class Debouncer:
    """Delay a callback until triggers stop arriving for `delay` seconds."""

    def __init__(self, delay: float, callback: Callable[..., Any]):
        """
        Args:
            delay: Quiet period in seconds before the callback runs
            callback: Sync function or coroutine function to invoke
        """
        self.delay = delay
        self._callback = callback
        self._handle: Optional[asyncio.TimerHandle] = None
        self._pending_args: Optional[tuple] = None
        self._tasks: set[asyncio.Future] = set()

    @property
    def pending(self) -> bool:
        """True while a call is armed and has not fired yet."""
        return self._handle is not None

    def trigger(self, *args: Any) -> None:
        """
        Arm (or re-arm) the deferred call with the given arguments.

        Outside a running event loop there is nothing to defer on, so the
        callback runs immediately.
        """
        self.cancel()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._invoke(args)
            return
        self._pending_args = args
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        """Drop the pending call, if any."""
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._pending_args = None

    def flush(self) -> None:
        """Run the pending call now instead of waiting for the timer."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._fire()

    def _fire(self) -> None:
        args = self._pending_args or ()
        self._handle = None
        self._pending_args = None
        self._invoke(args)

    def _invoke(self, args: tuple) -> None:
        try:
            result = self._callback(*args)
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._task_done)
        except Exception as e:
            logger.error("Debounced callback failed: %s", e, exc_info=True)

    def _task_done(self, task: asyncio.Future) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error("Debounced callback failed: %s", error, exc_info=error)

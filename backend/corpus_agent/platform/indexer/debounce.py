"""Trailing-edge debouncer."""

import asyncio
import threading
from typing import Awaitable, Callable, Optional

AsyncCallable = Callable[[], Awaitable[None]]


class Debouncer:
    """Run only the last scheduled coroutine function, ``delay`` after it was scheduled.

    Each ``schedule`` call cancels the pending run, if any. ``schedule`` may be
    called from any thread; the run always happens on the debouncer's loop.
    """

    def __init__(self, delay: float, loop: Optional[asyncio.AbstractEventLoop] = None):
        """Initialize the debouncer.

        Args:
            delay: Seconds between the last ``schedule`` call and the run
            loop: Loop running the function, the running loop by default
        """
        self.delay = delay
        self._loop = loop or asyncio.get_running_loop()
        self._lock = threading.Lock()
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def pending(self) -> bool:
        """Whether a run is scheduled and has not started yet."""
        with self._lock:
            return self._handle is not None

    def schedule(self, fn: AsyncCallable) -> None:
        """Schedule ``fn``, replacing any pending function."""
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self._loop:
            self._reschedule(fn)
        else:
            self._loop.call_soon_threadsafe(self._reschedule, fn)

    def _reschedule(self, fn: AsyncCallable) -> None:
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
            self._handle = self._loop.call_later(self.delay, self._fire, fn)

    def _fire(self, fn: AsyncCallable) -> None:
        with self._lock:
            self._handle = None
            self._task = self._loop.create_task(fn())

    def cancel(self) -> None:
        """Drop the pending run and cancel a run in progress."""
        with self._lock:
            if self._handle is not None:
                self._handle.cancel()
                self._handle = None
            if self._task is not None and not self._task.done():
                self._task.cancel()
            self._task = None
